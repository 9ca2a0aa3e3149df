import asyncio
import time

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from storefront.database import get_db
from storefront.main import app as fastapi_app
from storefront.models import Donation, Order, StripeEvent

from conftest import TestingSessionLocal


def post_event(client, mocker, event):
    mocker.patch("stripe.Webhook.construct_event", return_value=event)
    return client.post(
        "/api/webhooks/stripe",
        content="raw_stripe_payload",
        headers={"stripe-signature": "test_signature"},
    )


def test_full_order_lifecycle_integration(admin_client, db, make_product, mocker, intent_event):
    """
    Test the full lifecycle:
    1. Create order payment (API -> DB + Stripe mocked)
    2. Webhook success (Stripe -> API -> DB)
    3. Admin refund (API -> DB + Stripe mocked)
    4. Stripe's charge.refunded for the same refund is a no-op
    """
    client = admin_client
    confirmation = mocker.patch("storefront.email_service.send_order_confirmation")

    # --- 1. CREATE PAYMENT ---
    product_id = make_product(price=25)
    mock_pi = mocker.Mock()
    mock_pi.id = "pi_integration_test_123"
    mock_pi.client_secret = "secret_test_456"
    mocker.patch("stripe.PaymentIntent.create", return_value=mock_pi)

    response = client.post(
        "/api/orders/create-payment-intent",
        json={
            "items": [{"productId": product_id, "quantity": 1}],
            "customerEmail": "buyer@example.org",
            "customerName": "Ama Mensah",
        },
    )
    assert response.status_code == 200
    order_id = response.json()["orderId"]

    # --- 2. WEBHOOK SUCCESS ---
    event = intent_event(
        "payment_intent.succeeded", "pi_integration_test_123", 2500, "ghs",
        metadata={"orderId": str(order_id)}, event_id="evt_success",
    )
    webhook_response = post_event(client, mocker, event)

    assert webhook_response.status_code == 200
    assert webhook_response.json() == {"received": True, "eventType": "payment_intent.succeeded"}
    assert db.get(Order, order_id).status == "succeeded"
    confirmation.assert_called_once()

    # --- 3. REFUND ---
    refund = mocker.patch("stripe.Refund.create", return_value=mocker.Mock())
    refund_response = client.post(f"/api/admin/orders/{order_id}/refund")

    assert refund_response.status_code == 200
    assert refund_response.json()["order"]["status"] == "refunded"
    assert refund.call_args.kwargs["payment_intent"] == "pi_integration_test_123"

    # --- 4. STRIPE CONFIRMS THE REFUND ---
    charge_event = {
        "id": "evt_refund",
        "type": "charge.refunded",
        "data": {"object": {
            "id": "ch_1", "payment_intent": "pi_integration_test_123",
            "amount": 2500, "amount_refunded": 2500, "refunded": True,
        }},
    }
    assert post_event(client, mocker, charge_event).status_code == 200

    db.expire_all()
    assert db.get(Order, order_id).status == "refunded"
    assert db.query(StripeEvent).count() == 2


def test_donation_lifecycle_sends_receipt_and_admin_notice(client, db, make_donation, mocker, monkeypatch, intent_event):
    monkeypatch.setenv("ADMIN_EMAIL", "ops@example.org")
    receipt = mocker.patch("storefront.email_service.send_donation_receipt")
    notice = mocker.patch("storefront.email_service.send_admin_donation_notification")
    donation_id = make_donation()

    event = intent_event(
        "payment_intent.succeeded", "pi_donation_1", 5000, "usd",
        metadata={"donationId": str(donation_id)},
    )
    response = post_event(client, mocker, event)

    assert response.status_code == 200
    assert db.get(Donation, donation_id).status == "succeeded"
    assert receipt.call_args.args[1] == "pi_donation_1"
    assert notice.call_args.args[1] == "ops@example.org"


def test_redelivered_event_is_not_reapplied(client, db, make_order, mocker, intent_event):
    confirmation = mocker.patch("storefront.email_service.send_order_confirmation")
    order_id = make_order()
    event = intent_event(
        "payment_intent.succeeded", "pi_order_1", 3500, "ghs",
        metadata={"orderId": str(order_id)}, event_id="evt_dup",
    )

    first = post_event(client, mocker, event)
    second = post_event(client, mocker, event)

    assert first.json() == {"received": True, "eventType": "payment_intent.succeeded"}
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert db.query(StripeEvent).filter_by(event_id="evt_dup").count() == 1
    confirmation.assert_called_once()


def test_webhook_non_existent_payment(client, mocker, intent_event):
    """Events for unknown PaymentIntents are acknowledged so Stripe stops retrying."""
    event = intent_event("payment_intent.succeeded", "pi_unknown", 1000, "usd")

    response = post_event(client, mocker, event)

    assert response.status_code == 200


def test_unhandled_event_type_is_acknowledged(client, db, mocker):
    event = {"id": "evt_cust", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}

    response = post_event(client, mocker, event)

    assert response.status_code == 200
    assert response.json() == {"received": True, "eventType": "customer.created"}
    assert db.query(StripeEvent).filter_by(event_id="evt_cust").one().object_id == "cus_1"


def test_webhook_invalid_signature(client):
    response = client.post(
        "/api/webhooks/stripe",
        content='{"id": "evt_forged"}',
        headers={"stripe-signature": "t=1,v1=deadbeef"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}


def test_webhook_missing_signature_header(client):
    response = client.post("/api/webhooks/stripe", content="{}")

    assert response.status_code == 400
    assert response.json() == {"error": "Missing stripe-signature header"}


def test_webhook_secret_not_configured(client, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")

    response = client.post("/api/webhooks/stripe", content="{}", headers={"stripe-signature": "sig"})

    assert response.status_code == 400
    assert response.json() == {"error": "Webhook secret not configured"}


def test_webhook_processing_failure_returns_500(client, db, make_order, mocker, intent_event):
    """A database failure answers 500 so Stripe redelivers the event."""
    order_id = make_order()
    mocker.patch(
        "storefront.storage.record_event",
        side_effect=OperationalError("INSERT", {}, Exception("database is locked")),
    )
    event = intent_event(
        "payment_intent.payment_failed", "pi_order_1", 3500, "ghs", metadata={"orderId": str(order_id)},
    )

    response = post_event(client, mocker, event)

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook processing failed"}
    assert "database is locked" not in response.text
    assert db.get(Order, order_id).status == "pending"


@pytest.mark.parametrize(
    "event_type, expected",
    [
        ("payment_intent.payment_failed", "failed"),
        ("payment_intent.canceled", "canceled"),
    ],
)
def test_failure_events_update_order(client, db, make_order, mocker, intent_event, event_type, expected):
    order_id = make_order()
    event = intent_event(event_type, "pi_order_1", 3500, "ghs", metadata={"orderId": str(order_id)})

    response = post_event(client, mocker, event)

    assert response.status_code == 200
    assert db.get(Order, order_id).status == expected


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.mark.anyio
async def test_slow_notification_email_does_not_block_other_requests(db, make_donation, mocker, intent_event):
    """SMTP retries run in a worker thread, so the API keeps answering."""
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    donation_id = make_donation()
    event = intent_event(
        "payment_intent.succeeded", "pi_donation_1", 5000, "usd",
        metadata={"donationId": str(donation_id)},
    )
    mocker.patch("stripe.Webhook.construct_event", return_value=event)
    mocker.patch(
        "storefront.email_service.send_donation_receipt",
        side_effect=lambda *args: time.sleep(1.0),
    )

    fastapi_app.dependency_overrides[get_db] = override_get_db
    try:
        transport = httpx.ASGITransport(app=fastapi_app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
            webhook = asyncio.create_task(ac.post(
                "/api/webhooks/stripe",
                content="raw_stripe_payload",
                headers={"stripe-signature": "test_signature"},
            ))
            await asyncio.sleep(0.2)

            started = time.monotonic()
            health = await ac.get("/api/health")
            health_latency = time.monotonic() - started

            webhook_response = await webhook
    finally:
        fastapi_app.dependency_overrides.clear()

    assert health.status_code == 200
    assert health_latency < 0.5
    assert webhook_response.status_code == 200
    db.expire_all()
    assert db.get(Donation, donation_id).status == "succeeded"
