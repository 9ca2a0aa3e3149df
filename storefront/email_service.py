"""Transactional email over SMTP (STARTTLS).

Every message is sent as plain text with an HTML alternative generated
from the same paragraphs.
"""

import html
import logging
import smtplib
import time
from email.message import EmailMessage
from email.utils import formataddr

from storefront import config
from storefront.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

TAGLINE = "Supporting development in Ghana's Volta Region and pan-African initiatives"

STATUS_MESSAGES = {
    "processing": "Your order is being prepared.",
    "shipped": "Good news! Your order is on its way.",
    "delivered": "Your order has been delivered. We hope you enjoy it!",
    "unfulfilled": "Your order is waiting to be processed.",
}


def is_configured() -> bool:
    return bool(config.email_user() and config.email_pass())


def format_money(amount, currency):
    return f"{currency.upper()} {float(amount):,.2f}"


def format_date(value):
    return f"{value:%B} {value.day}, {value.year}"


def _render_html(title, paragraphs):
    body = "".join(
        "<p>{}</p>".format(html.escape(p).replace("\n", "<br>")) for p in paragraphs
    )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        "<body style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333; "
        "max-width: 600px; margin: 0 auto; padding: 20px;\">"
        f"<h1 style=\"color: #2c5530;\">{html.escape(config.ORG_NAME)}</h1>"
        f"{body}"
        f"<hr><p style=\"color: #666; font-size: 12px;\">{html.escape(TAGLINE)}</p>"
        "</body></html>"
    )


def build_message(to, subject, paragraphs):
    text = "\n\n".join(paragraphs + ["---", f"{config.ORG_NAME}\n{TAGLINE}"])

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = formataddr((config.ORG_NAME, config.email_user() or "noreply@mawufoundation.org"))
    msg["To"] = to
    msg.set_content(text)
    msg.add_alternative(_render_html(subject, paragraphs), subtype="html")
    return msg


def send_email(to, subject, paragraphs):
    """Send with exponential backoff; raises EmailDeliveryError when all attempts fail.

    Returns False without sending when SMTP credentials are not configured.
    """
    if not is_configured():
        logger.warning("Email not configured; skipping '%s' to %s", subject, to)
        return False

    msg = build_message(to, subject, paragraphs)
    attempts = config.EMAIL_MAX_RETRIES + 1

    for attempt in range(attempts):
        try:
            with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as smtp:
                smtp.starttls()
                smtp.login(config.email_user(), config.email_pass())
                smtp.send_message(msg)
            logger.info("Email '%s' sent to %s", subject, to)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email send attempt %d/%d failed: %s", attempt + 1, attempts, e)
            if attempt + 1 < attempts:
                time.sleep(config.EMAIL_RETRY_DELAY_SECONDS * (2 ** attempt))
            else:
                raise EmailDeliveryError(f"Failed to send email after {attempts} attempts: {e}")


def check_connection():
    if not is_configured():
        return False
    try:
        with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30) as smtp:
            smtp.starttls()
            smtp.login(config.email_user(), config.email_pass())
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error("SMTP connection test failed: %s", e)
        return False


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def _address_lines(address):
    if not address:
        return "Not provided"
    city_line = " ".join(
        part for part in (
            address.get("city", "") + ("," if address.get("state") else ""),
            address.get("state") or "",
            address.get("postalCode") or "",
        ) if part
    )
    lines = [address.get("line1", ""), address.get("line2") or "", city_line, address.get("country", "")]
    return "\n".join(line for line in lines if line)


def _item_line(item, currency):
    variations = item.get("selectedVariations") or {}
    suffix = ""
    if variations:
        suffix = " (" + ", ".join(f"{k}: {v}" for k, v in variations.items()) + ")"
    return (
        f"{item.get('productName', 'Item')}{suffix} - Qty: {item.get('quantity', 1)} - "
        f"{format_money(item.get('price', 0), currency)}"
    )


def send_order_confirmation(order):
    items = "\n".join(_item_line(item, order.currency) for item in order.items or [])
    return send_email(
        order.customer_email,
        f"Order Confirmation - {order.order_number}",
        [
            f"Dear {order.customer_name},",
            "Thank you for your order! Every purchase supports our mission in "
            "Ghana's Volta Region and pan-African initiatives.",
            f"Order Number: {order.order_number}\nOrder Date: {format_date(order.created_at)}",
            f"Items Ordered:\n{items}",
            f"Total: {format_money(order.total_amount, order.currency)}",
            f"Shipping Address:\n{_address_lines(order.shipping_address)}",
            "We'll send you a shipping confirmation with tracking information "
            "once your order is on its way.",
        ],
    )


def send_donation_receipt(donation, transaction_id):
    name = "Anonymous Donor" if donation.anonymous else donation.donor_name
    details = (
        f"Amount: {format_money(donation.amount, donation.currency)}\n"
        f"Frequency: {donation.frequency}\n"
        f"Date: {format_date(donation.created_at)}\n"
        f"Transaction ID: {transaction_id}"
    )
    if donation.message:
        details += f'\nMessage: "{donation.message}"'
    return send_email(
        donation.donor_email,
        f"Donation Receipt - {format_money(donation.amount, donation.currency)}",
        [
            f"Dear {name},",
            f"Thank you for your generous donation to the {config.ORG_NAME}!",
            details,
            f"This receipt serves as confirmation of your donation to the {config.ORG_NAME}. "
            "Please retain it for your tax records.",
        ],
    )


def send_admin_order_notification(order, admin_email):
    return send_email(
        admin_email,
        f"New Order - {order.order_number}",
        [
            f"A new order has been paid: {order.order_number}",
            f"Customer: {order.customer_name} <{order.customer_email}>\n"
            f"Amount: {format_money(order.total_amount, order.currency)}\n"
            f"Date: {format_date(order.created_at)}",
        ],
    )


def send_admin_donation_notification(donation, admin_email):
    donor = "Anonymous Donor" if donation.anonymous else donation.donor_name
    return send_email(
        admin_email,
        f"New Donation - {format_money(donation.amount, donation.currency)}",
        [
            f"A new {donation.frequency} donation has been received.",
            f"Donor: {donor}\n"
            f"Amount: {format_money(donation.amount, donation.currency)}\n"
            f"Date: {format_date(donation.created_at)}",
        ],
    )


def send_order_status_update(order, tracking_number=None, estimated_delivery=None):
    details = f"Order Number: {order.order_number}\nStatus: {order.fulfillment_status.title()}"
    if tracking_number:
        details += f"\nTracking Number: {tracking_number}"
    if estimated_delivery:
        details += f"\nEstimated Delivery: {estimated_delivery}"
    return send_email(
        order.customer_email,
        f"Order Update - {order.order_number}",
        [
            f"Dear {order.customer_name},",
            STATUS_MESSAGES.get(order.fulfillment_status, "Your order status has changed."),
            details,
        ],
    )


def send_test_email(to):
    return send_email(
        to,
        f"{config.ORG_NAME} - Test Email",
        [
            "This is a test email from the storefront API.",
            "If you received it, SMTP delivery is configured correctly.",
        ],
    )
