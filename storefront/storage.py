"""Query helpers over a SQLAlchemy session.

Functions flush but never commit; the caller owns the transaction.
"""

import logging
from decimal import Decimal

from sqlalchemy import select

from storefront.auth import check_password, hash_password
from storefront.errors import InvalidRequest, NotFound
from storefront.models import Admin, Donation, Order, PaymentStatus, Product, StripeEvent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Admins
# ---------------------------------------------------------------------------

def create_admin(db, email, password, name):
    admin = Admin(email=email.strip().lower(), password=hash_password(password), name=name)
    db.add(admin)
    db.flush()
    return admin


def find_admin_by_email(db, email):
    if not email:
        return None
    return db.scalars(select(Admin).where(Admin.email == email.strip().lower())).first()


def authenticate_admin(db, email, password):
    admin = find_admin_by_email(db, email)
    if admin is None or not check_password(password, admin.password):
        return None
    return admin


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def list_products(db):
    return db.scalars(select(Product).order_by(Product.created_at.desc(), Product.id.desc())).all()


def get_product(db, product_id):
    return db.get(Product, product_id)


def get_product_by_slug(db, slug):
    return db.scalars(select(Product).where(Product.slug == slug)).first()


def _product_values(data, exclude_unset=False) -> dict:
    """Column values from a validated product payload; variations stored as camelCase JSON."""
    values = data.model_dump(exclude_unset=exclude_unset)
    if "variations" in values:
        values["variations"] = [
            v.model_dump(by_alias=True, exclude_none=True, mode="json") for v in data.variations or []
        ]
    return values


def create_product(db, data):
    fields = _product_values(data)
    if get_product_by_slug(db, fields["slug"]):
        raise InvalidRequest(f"Product slug '{fields['slug']}' already exists")
    product = Product(**fields)
    db.add(product)
    db.flush()
    return product


def update_product(db, product_id, data):
    product = get_product(db, product_id)
    if product is None:
        raise NotFound("Product not found")

    fields = _product_values(data, exclude_unset=True)
    new_slug = fields.get("slug")
    if new_slug and new_slug != product.slug and get_product_by_slug(db, new_slug):
        raise InvalidRequest(f"Product slug '{new_slug}' already exists")

    for key, value in fields.items():
        setattr(product, key, value)
    db.flush()
    return product


def delete_product(db, product_id):
    product = get_product(db, product_id)
    if product is None:
        raise NotFound("Product not found")
    db.delete(product)
    db.flush()


def delete_all_products(db):
    count = 0
    for product in db.scalars(select(Product)).all():
        db.delete(product)
        count += 1
    db.flush()
    return count


def price_order_items(db, items, currency):
    """Check each item against the catalogue and price it in ``currency``.

    Returns ``(line_items, total)`` where ``line_items`` are the dicts stored
    on the order. Raises ``InvalidRequest`` for unknown products, products
    priced in another currency, unknown variations and insufficient inventory.
    """
    line_items = []
    total = Decimal("0")

    for item in items:
        product = get_product(db, item.product_id)
        if product is None:
            raise InvalidRequest(f"Product with ID {item.product_id} not found.")
        if product.currency.upper() != currency.upper():
            raise InvalidRequest(
                f"Product {product.name} is priced in {product.currency}, not {currency.upper()}."
            )

        unit_price = Decimal(str(product.price))
        selected = item.selected_variations or {}

        if selected:
            variations = product.variations or []
            if not variations:
                raise InvalidRequest(f"Product {product.name} does not have variations.")

            for variation_type, value in selected.items():
                variation = next((v for v in variations if v.get("type") == variation_type), None)
                if variation is None:
                    raise InvalidRequest(f"Product {product.name} does not have {variation_type} variation.")

                option = next((o for o in variation.get("options", []) if o.get("value") == value), None)
                if option is None:
                    raise InvalidRequest(
                        f"Invalid {variation_type} option '{value}' for product {product.name}."
                    )

                stock = option.get("inventory")
                if stock is not None and stock < item.quantity:
                    raise InvalidRequest(
                        f"Insufficient inventory for {product.name} ({variation_type}: {value}). "
                        f"Available: {stock}, Requested: {item.quantity}"
                    )
                if option.get("priceModifier"):
                    unit_price += Decimal(str(option["priceModifier"]))
        elif product.inventory < item.quantity:
            raise InvalidRequest(
                f"Insufficient inventory for {product.name}. "
                f"Available: {product.inventory}, Requested: {item.quantity}"
            )

        unit_price = unit_price.quantize(Decimal("0.01"))
        total += unit_price * item.quantity
        line_items.append({
            "productId": product.id,
            "productName": product.name,
            "quantity": item.quantity,
            "price": str(unit_price),
            "selectedVariations": dict(selected),
        })

    return line_items, total.quantize(Decimal("0.01"))


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def create_order(db, **fields):
    order = Order(**fields)
    db.add(order)
    db.flush()
    return order


def get_order(db, order_id):
    return db.get(Order, order_id)


def list_orders(db):
    return db.scalars(select(Order).order_by(Order.created_at.desc(), Order.id.desc())).all()


def find_order_by_intent(db, payment_intent_id):
    if not payment_intent_id:
        return None
    return db.scalars(select(Order).where(Order.stripe_payment_intent_id == payment_intent_id)).first()


def update_customer_info(db, order_id, email, name, shipping_address=None):
    order = get_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.status != PaymentStatus.PENDING.value:
        raise InvalidRequest("Customer details can only be changed before payment")
    order.customer_email = email
    order.customer_name = name
    if shipping_address is not None:
        order.shipping_address = shipping_address
    db.flush()
    return order


# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------

def create_donation(db, **fields):
    donation = Donation(**fields)
    db.add(donation)
    db.flush()
    return donation


def get_donation(db, donation_id):
    return db.get(Donation, donation_id)


def list_donations(db):
    return db.scalars(select(Donation).order_by(Donation.created_at.desc(), Donation.id.desc())).all()


def find_donation_by_intent(db, payment_intent_id):
    if not payment_intent_id:
        return None
    return db.scalars(
        select(Donation).where(Donation.stripe_payment_intent_id == payment_intent_id)
    ).first()


# ---------------------------------------------------------------------------
# Stripe event ledger
# ---------------------------------------------------------------------------

def event_processed(db, event_id):
    if not event_id:
        return False
    return db.scalars(select(StripeEvent).where(StripeEvent.event_id == event_id)).first() is not None


def record_event(db, event_id, event_type, object_id=None):
    if not event_id:
        return None
    entry = StripeEvent(event_id=event_id, type=event_type, object_id=object_id)
    db.add(entry)
    db.flush()
    return entry
