from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront import payments, storage
from storefront.database import get_db
from storefront.errors import NotFound
from storefront.schemas import (
    CustomerInfoIn,
    DonationPaymentIn,
    OrderOut,
    OrderPaymentIn,
    PaymentIntentOut,
    ProductOut,
)

router = APIRouter(prefix="/api", tags=["storefront"])


@router.get("/products")
def list_products(db: Session = Depends(get_db)):
    return {"products": [ProductOut.model_validate(p).model_dump(by_alias=True, mode="json")
                         for p in storage.list_products(db)]}


@router.get("/products/{slug}")
def get_product(slug: str, db: Session = Depends(get_db)):
    product = storage.get_product_by_slug(db, slug)
    if product is None:
        raise NotFound("Product not found")
    return {"product": ProductOut.model_validate(product).model_dump(by_alias=True, mode="json")}


@router.post("/orders/create-payment-intent", response_model=PaymentIntentOut, response_model_exclude_none=True)
def create_order_payment_intent(request: OrderPaymentIn, db: Session = Depends(get_db)):
    client_secret, order = payments.create_order_payment(db, request)
    return PaymentIntentOut(client_secret=client_secret, order_id=order.id)


@router.put("/orders/{order_id}/customer-info")
def update_customer_info(order_id: int, request: CustomerInfoIn, db: Session = Depends(get_db)):
    order = storage.update_customer_info(
        db,
        order_id,
        request.customer_email,
        request.customer_name.strip(),
        request.shipping_address.model_dump(by_alias=True) if request.shipping_address else None,
    )
    db.commit()
    return {"order": OrderOut.model_validate(order).model_dump(by_alias=True, mode="json")}


@router.post("/donations/create-payment-intent", response_model=PaymentIntentOut, response_model_exclude_none=True)
def create_donation_payment_intent(request: DonationPaymentIn, db: Session = Depends(get_db)):
    client_secret, donation = payments.create_donation_payment(db, request)
    return PaymentIntentOut(client_secret=client_secret, donation_id=donation.id)
