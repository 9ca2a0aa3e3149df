"""Payment-intent lifecycle for orders and donations.

Checkout stores a ``pending`` row and creates a Stripe PaymentIntent that
carries the row id in its metadata. Stripe webhooks then move the row
through the status graph in ``TRANSITIONS``. Each event id is written to the
``stripe_events`` ledger in the same transaction as the status change, so a
redelivered event is acknowledged without being applied twice.
"""

import logging
from decimal import Decimal

from storefront import config, email_service, storage, stripe_service
from storefront.errors import EmailDeliveryError, InvalidRequest, NotFound, PaymentsNotConfigured
from storefront.models import Donation, Order, PaymentStatus

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL = "pending@checkout.com"
PLACEHOLDER_NAME = "Pending Customer"

TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.CANCELED},
    PaymentStatus.FAILED: {PaymentStatus.SUCCEEDED, PaymentStatus.CANCELED},
    PaymentStatus.SUCCEEDED: {PaymentStatus.REFUNDED},
    PaymentStatus.CANCELED: set(),
    PaymentStatus.REFUNDED: set(),
}


def can_transition(current, target) -> bool:
    return PaymentStatus(target) in TRANSITIONS[PaymentStatus(current)]


def apply_status(record, target) -> bool:
    """Move ``record`` to ``target``; True if the row changed.

    Re-applying the current status is a no-op. A transition outside the
    graph is logged and ignored.
    """
    target = PaymentStatus(target)
    current = PaymentStatus(record.status)
    if current == target:
        return False
    if not can_transition(current, target):
        logger.warning(
            "Ignoring %s transition %s -> %s for #%s",
            type(record).__name__, current.value, target.value, record.id,
        )
        return False

    logger.info(
        "%s #%s: %s -> %s", type(record).__name__, record.id, current.value, target.value
    )
    record.status = target.value
    return True


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def create_order_payment(db, payload):
    """Store a pending order and open its PaymentIntent; returns ``(client_secret, order)``."""
    line_items, total = storage.price_order_items(db, payload.items, payload.currency)

    if payload.total_amount is not None:
        claimed = stripe_service.to_minor_units(payload.total_amount)
        if abs(claimed - stripe_service.to_minor_units(total)) > 1:
            raise InvalidRequest(
                f"Order total {payload.total_amount} does not match item prices ({total})"
            )

    if not stripe_service.is_configured():
        raise PaymentsNotConfigured()

    order = storage.create_order(
        db,
        customer_email=payload.customer_email or PLACEHOLDER_EMAIL,
        customer_name=(payload.customer_name or "").strip() or PLACEHOLDER_NAME,
        items=line_items,
        total_amount=total,
        currency=payload.currency,
        shipping_address=payload.shipping_address.model_dump(by_alias=True) if payload.shipping_address else None,
        status=PaymentStatus.PENDING.value,
    )

    try:
        intent = stripe_service.create_payment(
            total,
            order.currency,
            metadata={
                "orderId": str(order.id),
                "customerEmail": payload.customer_email or "",
                "customerName": payload.customer_name or "",
            },
            description=f"Order #{order.order_number}",
            idempotency_key=f"order-{order.id}-{int(order.created_at.timestamp())}",
        )
    except Exception:
        db.rollback()
        raise

    order.stripe_payment_intent_id = intent.id
    db.commit()
    logger.info("Order %s created with PaymentIntent %s", order.order_number, intent.id)
    return intent.client_secret, order


def create_donation_payment(db, payload):
    """Store a pending donation and open its PaymentIntent; returns ``(client_secret, donation)``."""
    if not stripe_service.is_configured():
        raise PaymentsNotConfigured()

    donation = storage.create_donation(
        db,
        donor_email=payload.donor_email,
        donor_name=payload.donor_name,
        amount=payload.amount.quantize(Decimal("0.01")),
        currency=payload.currency,
        frequency=payload.frequency,
        message=payload.message,
        anonymous=payload.anonymous,
        status=PaymentStatus.PENDING.value,
    )

    try:
        intent = stripe_service.create_payment(
            donation.amount,
            donation.currency,
            metadata={
                "donationId": str(donation.id),
                "donorEmail": donation.donor_email,
                "donorName": donation.donor_name,
            },
            description=f"Donation to {config.ORG_NAME} - {donation.frequency}",
            idempotency_key=f"donation-{donation.id}-{int(donation.created_at.timestamp())}",
        )
    except Exception:
        db.rollback()
        raise

    donation.stripe_payment_intent_id = intent.id
    db.commit()
    logger.info("Donation #%s created with PaymentIntent %s", donation.id, intent.id)
    return intent.client_secret, donation


def refund(db, record):
    """Admin-initiated full refund of a succeeded order or donation."""
    if record.status != PaymentStatus.SUCCEEDED.value:
        raise InvalidRequest(f"Only succeeded payments can be refunded (status is {record.status})")
    if not record.stripe_payment_intent_id:
        raise InvalidRequest("Record has no PaymentIntent")

    stripe_service.refund_payment(record.stripe_payment_intent_id)
    apply_status(record, PaymentStatus.REFUNDED)
    db.commit()
    return record


def refund_order(db, order_id):
    order = storage.get_order(db, order_id)
    if order is None:
        raise NotFound("Order not found")
    return refund(db, order)


def refund_donation(db, donation_id):
    donation = storage.get_donation(db, donation_id)
    if donation is None:
        raise NotFound("Donation not found")
    return refund(db, donation)


# ---------------------------------------------------------------------------
# Webhook reconciliation
# ---------------------------------------------------------------------------

def _metadata_id(metadata, key):
    try:
        return int(metadata.get(key))
    except (TypeError, ValueError):
        return None


def _locate(db, intent):
    """Rows tied to a PaymentIntent: by metadata id first, then by stored intent id."""
    intent_id = intent["id"]
    metadata = intent.get("metadata") or {}
    found = []

    for model, key, by_id, by_intent in (
        (Order, "orderId", storage.get_order, storage.find_order_by_intent),
        (Donation, "donationId", storage.get_donation, storage.find_donation_by_intent),
    ):
        record = None
        record_id = _metadata_id(metadata, key)
        if record_id is not None:
            record = by_id(db, record_id)
            if record is None:
                logger.error("%s %s from PaymentIntent %s not found", model.__name__, record_id, intent_id)
        if record is None:
            record = by_intent(db, intent_id)
        if record is None:
            continue

        if record.stripe_payment_intent_id and record.stripe_payment_intent_id != intent_id:
            logger.warning(
                "%s #%s belongs to PaymentIntent %s, not %s; skipping",
                model.__name__, record.id, record.stripe_payment_intent_id, intent_id,
            )
            continue
        found.append(record)

    if not found:
        logger.warning("No order or donation for PaymentIntent %s", intent_id)
    return found


def _amount_matches(record, intent) -> bool:
    received = intent.get("amount_received") or intent.get("amount")
    expected = stripe_service.to_minor_units(record.amount)
    currency = (intent.get("currency") or "").lower()
    if received != expected or currency != record.currency.lower():
        logger.error(
            "%s #%s amount mismatch: expected %s %s, PaymentIntent %s has %s %s",
            type(record).__name__, record.id, expected, record.currency.lower(),
            intent["id"], received, currency,
        )
        return False
    return True


def _billing_details(intent):
    charges = (intent.get("charges") or {}).get("data") or []
    if charges:
        return charges[0].get("billing_details") or {}
    return {}


def _fill_customer_details(order, intent):
    """Replace checkout placeholders with what the customer entered at Stripe."""
    billing = _billing_details(intent)
    email = billing.get("email") or intent.get("receipt_email")
    name = billing.get("name")

    if email and order.customer_email == PLACEHOLDER_EMAIL:
        order.customer_email = email
    if name and order.customer_name == PLACEHOLDER_NAME:
        order.customer_name = name

    address = billing.get("address") or {}
    if address.get("line1") and not order.shipping_address:
        order.shipping_address = {
            "line1": address.get("line1") or "",
            "line2": address.get("line2"),
            "city": address.get("city") or "",
            "state": address.get("state"),
            "postalCode": address.get("postal_code"),
            "country": address.get("country") or "GH",
        }


def _admin_recipient():
    return config.admin_email() or config.email_user()


def _order_notifications(order):
    def notify():
        if order.customer_email and order.customer_email != PLACEHOLDER_EMAIL:
            email_service.send_order_confirmation(order)
        admin = _admin_recipient()
        if admin:
            email_service.send_admin_order_notification(order, admin)
    return notify


def _donation_notifications(donation, transaction_id):
    def notify():
        email_service.send_donation_receipt(donation, transaction_id)
        admin = _admin_recipient()
        if admin:
            email_service.send_admin_donation_notification(donation, admin)
    return notify


def _on_intent_succeeded(db, intent):
    notifications = []
    for record in _locate(db, intent):
        if not _amount_matches(record, intent):
            continue
        if not apply_status(record, PaymentStatus.SUCCEEDED):
            continue
        if isinstance(record, Order):
            _fill_customer_details(record, intent)
            notifications.append(_order_notifications(record))
        else:
            notifications.append(_donation_notifications(record, intent["id"]))
    return notifications


def _on_intent_failed(db, intent):
    error = (intent.get("last_payment_error") or {}).get("message")
    if error:
        logger.info("PaymentIntent %s failed: %s", intent["id"], error)
    for record in _locate(db, intent):
        apply_status(record, PaymentStatus.FAILED)
    return []


def _on_intent_canceled(db, intent):
    for record in _locate(db, intent):
        apply_status(record, PaymentStatus.CANCELED)
    return []


def _on_charge_refunded(db, charge):
    intent_id = charge.get("payment_intent")
    if not intent_id:
        logger.info("Charge %s has no PaymentIntent; nothing to refund", charge.get("id"))
        return []

    fully_refunded = charge.get("refunded") or (
        charge.get("amount") is not None
        and (charge.get("amount_refunded") or 0) >= charge["amount"]
    )
    if not fully_refunded:
        logger.info(
            "Charge %s partially refunded (%s of %s); status unchanged",
            charge.get("id"), charge.get("amount_refunded"), charge.get("amount"),
        )
        return []

    records = [
        r for r in (storage.find_order_by_intent(db, intent_id), storage.find_donation_by_intent(db, intent_id))
        if r is not None
    ]
    if not records:
        logger.warning("No order or donation for refunded PaymentIntent %s", intent_id)
    for record in records:
        apply_status(record, PaymentStatus.REFUNDED)
    return []


EVENT_HANDLERS = {
    "payment_intent.succeeded": _on_intent_succeeded,
    "payment_intent.payment_failed": _on_intent_failed,
    "payment_intent.canceled": _on_intent_canceled,
    "charge.refunded": _on_charge_refunded,
}


def construct_event(payload: bytes, signature):
    return stripe_service.construct_event(payload, signature)


def handle_event(db, event) -> dict:
    """Apply a verified Stripe event; returns the acknowledgement body."""
    event_id = event.get("id")
    event_type = event["type"]
    obj = event["data"]["object"]
    logger.info("Received Stripe event %s (%s)", event_type, event_id)

    if storage.event_processed(db, event_id):
        logger.info("Stripe event %s already processed", event_id)
        return {"received": True, "eventType": event_type, "duplicate": True}

    handler = EVENT_HANDLERS.get(event_type)
    notifications = []
    if handler is None:
        logger.info("Unhandled Stripe event type: %s", event_type)
    else:
        notifications = handler(db, obj)

    storage.record_event(db, event_id, event_type, obj.get("id"))
    db.commit()

    for notify in notifications:
        try:
            notify()
        except EmailDeliveryError:
            logger.exception("Notification email for %s failed", event_id)

    return {"received": True, "eventType": event_type}
