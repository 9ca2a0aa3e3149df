import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from storefront import email_service, payments, storage
from storefront.auth import clear_session_cookie, require_admin, set_session_cookie
from storefront.database import get_db
from storefront.errors import EmailDeliveryError, InvalidRequest, NotFound
from storefront.models import FulfillmentStatus, PaymentStatus
from storefront.schemas import (
    AdminEnvelope,
    AdminOut,
    DonationOut,
    EmailTestIn,
    LoginIn,
    OrderOut,
    OrderUpdateIn,
    ProductIn,
    ProductOut,
    ProductUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _dump(schema, obj):
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@router.post("/login", response_model=AdminEnvelope)
def login(request: LoginIn, response: Response, db: Session = Depends(get_db)):
    admin = storage.authenticate_admin(db, request.email, request.password)
    if admin is None:
        logger.warning("Failed admin login for %s", request.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    set_session_cookie(response, admin)
    logger.info("Admin %s logged in", admin.email)
    return AdminEnvelope(admin=AdminOut.model_validate(admin))


@router.get("/me", response_model=AdminEnvelope)
def me(admin=Depends(require_admin)):
    return AdminEnvelope(admin=AdminOut.model_validate(admin))


@router.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"message": "Logged out successfully"}


# ---------------------------------------------------------------------------
# Orders and donations
# ---------------------------------------------------------------------------

@router.get("/orders")
def list_orders(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return {"orders": [_dump(OrderOut, o) for o in storage.list_orders(db)]}


@router.put("/orders/{order_id}")
def update_order(
    order_id: int,
    request: OrderUpdateIn,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    order = storage.get_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")

    shipping = {FulfillmentStatus.SHIPPED.value, FulfillmentStatus.DELIVERED.value}
    if request.status in shipping and order.status != PaymentStatus.SUCCEEDED.value:
        raise InvalidRequest(f"Order is {order.status}; only paid orders can be {request.status}")

    changed = order.fulfillment_status != request.status
    order.fulfillment_status = request.status
    if request.tracking_number:
        order.tracking_number = request.tracking_number
    db.commit()
    logger.info("Order %s fulfillment set to %s by %s", order.order_number, order.fulfillment_status, admin.email)

    if changed and order.customer_email != payments.PLACEHOLDER_EMAIL:
        try:
            email_service.send_order_status_update(
                order,
                tracking_number=request.tracking_number,
                estimated_delivery=request.estimated_delivery,
            )
        except EmailDeliveryError:
            logger.exception("Status update email for %s failed", order.order_number)

    return {"order": _dump(OrderOut, order)}


@router.post("/orders/{order_id}/refund")
def refund_order(order_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    order = payments.refund_order(db, order_id)
    logger.info("Order %s refunded by %s", order.order_number, admin.email)
    return {"order": _dump(OrderOut, order)}


@router.get("/donations")
def list_donations(db: Session = Depends(get_db), admin=Depends(require_admin)):
    return {"donations": [_dump(DonationOut, d) for d in storage.list_donations(db)]}


@router.post("/donations/{donation_id}/refund")
def refund_donation(donation_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    donation = payments.refund_donation(db, donation_id)
    logger.info("Donation #%s refunded by %s", donation.id, admin.email)
    return {"donation": _dump(DonationOut, donation)}


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@router.post("/products")
def create_product(request: ProductIn, db: Session = Depends(get_db), admin=Depends(require_admin)):
    product = storage.create_product(db, request)
    db.commit()
    return {"product": _dump(ProductOut, product)}


@router.put("/products/{product_id}")
def update_product(
    product_id: int,
    request: ProductUpdate,
    db: Session = Depends(get_db),
    admin=Depends(require_admin),
):
    product = storage.update_product(db, product_id, request)
    db.commit()
    return {"product": _dump(ProductOut, product)}


@router.delete("/products/{product_id}")
def delete_product(product_id: int, db: Session = Depends(get_db), admin=Depends(require_admin)):
    storage.delete_product(db, product_id)
    db.commit()
    return {"message": "Product deleted successfully"}


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

@router.post("/test-email")
def send_test_email(request: EmailTestIn, admin=Depends(require_admin)):
    if not email_service.check_connection():
        raise EmailDeliveryError("Email service connection failed")

    email_service.send_test_email(request.email)
    return {
        "message": "Test email sent successfully",
        "recipient": request.email,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
