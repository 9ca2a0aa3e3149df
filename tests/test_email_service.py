import smtplib
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from storefront import email_service
from storefront.errors import EmailDeliveryError
from storefront.models import Donation, Order


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setenv("EMAIL_USER", "shop@example.org")
    monkeypatch.setenv("EMAIL_PASS", "app-password")


@pytest.fixture
def smtp(mocker):
    smtp_cls = mocker.patch("storefront.email_service.smtplib.SMTP")
    return smtp_cls.return_value.__enter__.return_value


@pytest.fixture
def no_sleep(mocker):
    return mocker.patch("storefront.email_service.time.sleep")


def _order(**overrides):
    fields = dict(
        id=42,
        customer_email="buyer@example.org",
        customer_name="Ama Mensah",
        items=[{
            "productName": "Volta Region Tote Bag",
            "quantity": 2,
            "price": "35.00",
            "selectedVariations": {"color": "blue"},
        }],
        total_amount=Decimal("70.00"),
        currency="GHS",
        status="succeeded",
        fulfillment_status="shipped",
        shipping_address={"line1": "12 Liberation Rd", "city": "Ho", "state": "Volta", "country": "GH"},
        created_at=datetime(2026, 3, 4, 10, 30, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Order(**fields)


def test_send_skipped_without_credentials(smtp):
    assert email_service.send_email("someone@example.org", "Hello", ["Hi"]) is False
    smtp.send_message.assert_not_called()


def test_send_uses_starttls_and_login(smtp_configured, smtp):
    assert email_service.send_email("someone@example.org", "Hello", ["Hi there"]) is True

    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("shop@example.org", "app-password")
    msg = smtp.send_message.call_args.args[0]
    assert msg["To"] == "someone@example.org"
    assert msg["Subject"] == "Hello"


def test_send_retries_with_backoff(smtp_configured, smtp, no_sleep):
    smtp.send_message.side_effect = [smtplib.SMTPServerDisconnected("gone"), OSError("reset"), None]

    assert email_service.send_email("someone@example.org", "Hello", ["Hi"]) is True

    assert smtp.send_message.call_count == 3
    assert [c.args[0] for c in no_sleep.call_args_list] == [1.0, 2.0]


def test_send_gives_up_after_retries(smtp_configured, smtp, no_sleep):
    smtp.send_message.side_effect = smtplib.SMTPServerDisconnected("gone")

    with pytest.raises(EmailDeliveryError) as exc:
        email_service.send_email("someone@example.org", "Hello", ["Hi"])

    assert "after 4 attempts" in exc.value.message
    assert smtp.send_message.call_count == 4
    assert no_sleep.call_count == 3


def test_order_confirmation_content(smtp_configured, smtp):
    email_service.send_order_confirmation(_order())

    msg = smtp.send_message.call_args.args[0]
    assert msg["Subject"] == "Order Confirmation - MF-00000042"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "Dear Ama Mensah," in text
    assert "Volta Region Tote Bag (color: blue) - Qty: 2 - GHS 35.00" in text
    assert "Total: GHS 70.00" in text
    assert "Ho, Volta" in text
    assert "March 4, 2026" in text


def test_html_body_is_escaped(smtp_configured, smtp):
    email_service.send_order_confirmation(_order(customer_name="<script>alert(1)</script>"))

    msg = smtp.send_message.call_args.args[0]
    body = msg.get_body(preferencelist=("html",)).get_content()
    assert "<script>" not in body
    assert "&lt;script&gt;" in body


def test_anonymous_donation_receipt(smtp_configured, smtp):
    donation = Donation(
        id=7,
        donor_email="donor@example.org",
        donor_name="Kofi Boateng",
        amount=Decimal("1250.00"),
        currency="USD",
        frequency="monthly",
        message="Keep going",
        anonymous=True,
        created_at=datetime(2026, 1, 15, tzinfo=timezone.utc),
    )

    email_service.send_donation_receipt(donation, "pi_abc")

    msg = smtp.send_message.call_args.args[0]
    assert msg["To"] == "donor@example.org"
    assert msg["Subject"] == "Donation Receipt - USD 1,250.00"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "Dear Anonymous Donor," in text
    assert "Kofi" not in text
    assert "Transaction ID: pi_abc" in text
    assert '"Keep going"' in text


def test_status_update_includes_tracking(smtp_configured, smtp):
    email_service.send_order_status_update(_order(), tracking_number="GH123", estimated_delivery="March 10")

    text = smtp.send_message.call_args.args[0].get_body(preferencelist=("plain",)).get_content()
    assert "Status: Shipped" in text
    assert "Tracking Number: GH123" in text
    assert "Estimated Delivery: March 10" in text


def test_check_connection(smtp_configured, smtp):
    assert email_service.check_connection() is True

    smtp.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
    assert email_service.check_connection() is False
