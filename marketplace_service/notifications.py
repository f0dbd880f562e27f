"""
notifications.py — Notification Messages and Best-Effort Dispatch

This module owns everything the marketplace says to vendors and buyers:

    • Message templates for the four notification types
    • The prefilled order message shown on the confirmation view
    • WhatsApp deep links and ZAR currency formatting
    • NotificationDispatcher, the best-effort side channel used after an
      order was created or its status changed

Dispatch never influences the outcome of the triggering operation: failures
are logged, never raised.
"""

import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Tuple
from urllib.parse import quote

import httpx

from .clients import NotificationClient
from .logging_config import get_logger
from .models import (
    CASH_PAYMENT,
    NotificationType,
    OrderItemRecord,
    OrderRecord,
    RecipientType,
    Vendor,
)

log = get_logger(__name__)

COUNTRY_CODE = "27"
# encodeURIComponent leaves these unescaped; the client-side links did the same
_URI_COMPONENT_SAFE = "-_.!~*'()"


def format_currency(amount) -> str:
    """Formats an amount as South African Rand, e.g. ``R 1 234.50``."""
    value = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    whole, cents = f"{abs(value):.2f}".split(".")
    grouped = f"{int(whole):,}".replace(",", " ")
    return f"{sign}R {grouped}.{cents}"


def normalize_phone(phone: str) -> str:
    """Strips non-digits and makes sure the number carries the country code."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith(COUNTRY_CODE):
        return digits
    if digits.startswith("0"):
        digits = digits[1:]
    return f"{COUNTRY_CODE}{digits}"


def generate_whatsapp_link(phone: str, message: str) -> str:
    return f"https://wa.me/{normalize_phone(phone)}?text={quote(message, safe=_URI_COMPONENT_SAFE)}"


def build_notification_message(
    notification_type: NotificationType, order: OrderRecord, vendor: Vendor
) -> Tuple[str, Optional[str]]:
    """
    Renders the message for a notification and determines its recipient.

    Args:
        notification_type (NotificationType): Which event happened.
        order (OrderRecord): The order concerned.
        vendor (Vendor): The vendor the order belongs to.

    Returns:
        tuple: (message, recipient user id). Vendors receive `order_received`,
        buyers receive every other type.
    """
    total = format_currency(order.total)

    if notification_type == NotificationType.ORDER_RECEIVED:
        message = (
            f"🔔 New Order Alert!\n\n"
            f"You have received a new order from {order.buyer_name}.\n"
            f"Total: {total}\n"
            f"Delivery: {order.delivery_location}\n\n"
            f"Please check your dashboard to accept or reject the order."
        )
        return message, vendor.user_id

    if notification_type == NotificationType.ORDER_APPROVED:
        message = (
            f"✅ Order Approved!\n\n"
            f"Great news! Your order has been approved by {vendor.display_name}.\n"
            f"Order Total: {total}\n\n"
            f"The vendor will start preparing your order soon."
        )
    elif notification_type == NotificationType.ORDER_REJECTED:
        message = (
            f"❌ Order Rejected\n\n"
            f"We're sorry, but your order has been rejected by {vendor.display_name}.\n"
            f"Order Total: {total}\n\n"
            f"Please try ordering from a different vendor."
        )
    else:
        message = (
            f"🎉 Order Completed!\n\n"
            f"Your order has been completed and is ready for pickup/delivery.\n"
            f"Order Total: {total}\n\n"
            f"Thank you for your business!"
        )
    return message, order.user_id


def build_order_message(order: OrderRecord, items: Iterable[OrderItemRecord]) -> str:
    """
    Renders the prefilled message a buyer sends to the vendor after checkout.

    The message lists buyer name, delivery location and phone, every ordered
    item with its line total, the order total, the payment method and, for
    cash payments, the amount the buyer will hand over.
    """
    lines = [
        f"🛒 *New Order from {order.buyer_name}*",
        f"📍 Delivery to: {order.delivery_location}",
        f"📞 Phone: {order.buyer_phone}",
        "",
        "*Ordered Items:*",
    ]
    lines.extend(
        f"- {item.product_name} x{item.quantity} ({format_currency(item.total)})" for item in items
    )
    lines.extend([
        "",
        f"💰 *Total: {format_currency(order.total)}*",
        f"💳 *Payment: {order.payment_method}*",
    ])
    if order.payment_method == CASH_PAYMENT:
        lines.append(f"💵 *Customer will pay with: {format_currency(order.payment_amount)}*")
    return "\n".join(lines)


class NotificationDispatcher:
    """
    Best-effort notification side channel.

    `dispatch` is scheduled as a background task once the primary operation
    has committed. It never raises: failures are logged and reported through
    the return value.
    """

    def __init__(self, client: NotificationClient):
        self.client = client

    def dispatch(self, order_id: str, notification_type: NotificationType, recipient_type: RecipientType) -> bool:
        log_prefix = f"[Order: {order_id}]"
        try:
            self.client.send(order_id, notification_type, recipient_type)
            log.info(f"{log_prefix} Benachrichtigung '{notification_type.value}' an {recipient_type.value} gesendet.")
            return True
        except httpx.HTTPStatusError as e:
            log.error(
                f"{log_prefix} Benachrichtigung '{notification_type.value}' fehlgeschlagen "
                f"(HTTP {e.response.status_code}). Bestellung bleibt gültig."
            )
        except (httpx.TransportError, ValueError) as e:
            log.error(f"{log_prefix} Benachrichtigungsdienst nicht erreichbar ({e}). Bestellung bleibt gültig.")
        return False
