from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable

from craftstore.core.config import get_settings

logger = logging.getLogger("craftstore.email")


def send_email(subject: str, body: str, to: Iterable[str]) -> bool:
    """Send a plain-text email. Returns False when SMTP is not configured or sending failed."""
    settings = get_settings()
    recipients = [address for address in to if address]
    if not recipients:
        return False
    if not settings.smtp_host or not settings.smtp_sender:
        logger.warning("smtp_not_configured", extra={"subject": subject, "to": recipients})
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.smtp_sender
    msg["To"] = ", ".join(recipients)
    msg.set_content(body)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("smtp_send_failed", extra={"error": str(exc), "subject": subject})
        return False
    return True


def notify_order_placed(order) -> None:
    """Tell the shop about a new cash-on-delivery order, and the customer when an email was given."""
    settings = get_settings()
    lines = [
        f"{item.quantity} x {item.product_name} @ {item.product_price}" for item in order.items
    ]
    shop_recipient = settings.notification_email or settings.smtp_sender
    if shop_recipient:
        send_email(
            subject=f"New order {order.id} from {order.customer_name}",
            body=(
                f"Customer: {order.customer_name}\nPhone: {order.customer_phone}\n"
                f"Address: {order.road}, {order.district}\n"
                f"Items:\n" + "\n".join(lines) + f"\nTotal: {order.total}\n"
                f"Notes: {order.special_instructions or '-'}"
            ),
            to=[shop_recipient],
        )
    if order.customer_email:
        send_email(
            subject="We received your order",
            body=(
                f"Thanks for your order, {order.customer_name}.\n"
                f"Order {order.id} totals {order.total}, payable on delivery.\n"
                "We'll call you to confirm shortly."
            ),
            to=[order.customer_email],
        )
