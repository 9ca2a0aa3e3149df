import logging
from decimal import Decimal, ROUND_HALF_UP

import stripe

from storefront import config
from storefront.errors import PaymentProviderError, PaymentsNotConfigured, WebhookVerificationError

logger = logging.getLogger(__name__)


def to_minor_units(amount) -> int:
    """Major-unit decimal amount -> Stripe's integer minor units."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_configured() -> bool:
    return bool(config.stripe_secret_key())


def _api_key():
    key = config.stripe_secret_key()
    if not key:
        raise PaymentsNotConfigured()
    return key


def create_payment(amount, currency: str, metadata: dict, description: str, idempotency_key: str):
    try:
        return stripe.PaymentIntent.create(
            api_key=_api_key(),
            amount=to_minor_units(amount),
            currency=currency.lower(),
            automatic_payment_methods={"enabled": True},
            metadata=metadata,
            description=description,
            idempotency_key=idempotency_key,
        )
    except stripe.StripeError as e:
        logger.error("PaymentIntent creation failed: %s", e)
        raise PaymentProviderError(f"Payment provider error: {e.user_message or e}")


def refund_payment(payment_intent_id: str):
    try:
        return stripe.Refund.create(api_key=_api_key(), payment_intent=payment_intent_id)
    except stripe.StripeError as e:
        logger.error("Refund for %s failed: %s", payment_intent_id, e)
        raise PaymentProviderError(f"Payment provider error: {e.user_message or e}")


def construct_event(payload: bytes, signature):
    secret = config.stripe_webhook_secret()
    if not secret:
        raise WebhookVerificationError("Webhook secret not configured")
    if not signature:
        raise WebhookVerificationError("Missing stripe-signature header")

    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError:
        raise WebhookVerificationError("Invalid payload")
    except stripe.SignatureVerificationError:
        raise WebhookVerificationError("Invalid signature")
