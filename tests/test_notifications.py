"""
Tests for notification messages, links and best-effort dispatch.
"""

from decimal import Decimal
from urllib.parse import unquote

import httpx
import pytest

from marketplace_service.clients import NotificationClient
from marketplace_service.models import (
    NotificationType,
    OrderItemRecord,
    OrderRecord,
    RecipientType,
    Vendor,
)
from marketplace_service.notifications import (
    NotificationDispatcher,
    build_notification_message,
    build_order_message,
    format_currency,
    generate_whatsapp_link,
    normalize_phone,
)

VENDOR = Vendor(id="V1", user_id="user-vendor-1", name="Sipho", store_name="Sipho's Kota",
                whatsapp_number="071 234 5678")


def _order(**overrides) -> OrderRecord:
    values = dict(
        id="order-1", buyer_name="Thandi", buyer_phone="0712345678", delivery_location="Res Block C",
        payment_method="Card", payment_amount="27.50", total="27.50", vendor_id="V1", user_id="user-buyer",
    )
    values.update(overrides)
    return OrderRecord(**values)


ITEMS = [
    OrderItemRecord(order_id="order-1", product_id="productA", product_name="Kota",
                    product_price="10", quantity=2, total="20"),
    OrderItemRecord(order_id="order-1", product_id="productC", product_name="Chips",
                    product_price="7.50", quantity=1, total="7.50"),
]


class TestFormatting:

    @pytest.mark.parametrize("amount, expected", [
        (Decimal("0"), "R 0.00"),
        (Decimal("7.5"), "R 7.50"),
        (Decimal("1234.5"), "R 1 234.50"),
        (Decimal("1000000"), "R 1 000 000.00"),
        (Decimal("2.005"), "R 2.01"),
    ])
    def test_format_currency(self, amount, expected):
        assert format_currency(amount) == expected

    @pytest.mark.parametrize("raw, expected", [
        ("071 234 5678", "27712345678"),
        ("+27 82 000 1111", "27820001111"),
        ("820001111", "27820001111"),
    ])
    def test_normalize_phone(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_whatsapp_link(self):
        link = generate_whatsapp_link("071 234 5678", "Hi there!")
        assert link == "https://wa.me/27712345678?text=Hi%20there!"

    def test_whatsapp_link_encodes_newlines(self):
        link = generate_whatsapp_link("0712345678", "a\nb")
        assert "a%0Ab" in link


class TestNotificationMessages:

    def test_order_received_goes_to_vendor(self):
        message, recipient = build_notification_message(NotificationType.ORDER_RECEIVED, _order(), VENDOR)
        assert recipient == "user-vendor-1"
        assert "Thandi" in message
        assert "Res Block C" in message
        assert "R 27.50" in message

    @pytest.mark.parametrize("notification_type", [
        NotificationType.ORDER_APPROVED,
        NotificationType.ORDER_REJECTED,
        NotificationType.ORDER_COMPLETED,
    ])
    def test_status_messages_go_to_buyer(self, notification_type):
        _, recipient = build_notification_message(notification_type, _order(), VENDOR)
        assert recipient == "user-buyer"

    def test_store_name_preferred(self):
        message, _ = build_notification_message(NotificationType.ORDER_APPROVED, _order(), VENDOR)
        assert "Sipho's Kota" in message

    def test_vendor_name_fallback(self):
        vendor = Vendor(id="V2", user_id="u", name="Naledi")
        message, _ = build_notification_message(NotificationType.ORDER_REJECTED, _order(), vendor)
        assert "Naledi" in message


class TestOrderMessage:

    def test_lists_items_and_total(self):
        message = build_order_message(_order(), ITEMS)
        assert "New Order from Thandi" in message
        assert "- Kota x2 (R 20.00)" in message
        assert "- Chips x1 (R 7.50)" in message
        assert "Total: R 27.50" in message
        assert "Payment: Card" in message
        assert "Customer will pay with" not in message

    def test_cash_shows_tendered_amount(self):
        message = build_order_message(_order(payment_method="Cash", payment_amount="50"), ITEMS)
        assert "Customer will pay with: R 50.00" in message

    def test_link_roundtrip_keeps_message(self):
        message = build_order_message(_order(), ITEMS)
        link = generate_whatsapp_link(VENDOR.whatsapp_number, message)
        assert unquote(link.split("?text=", 1)[1]) == message


class FailingClient:

    def __init__(self, error):
        self.error = error

    def send(self, order_id, notification_type, recipient_type):
        raise self.error


class TestDispatcher:

    def test_success_records_notification(self, dispatcher, seed_order, db):
        order = seed_order()
        assert dispatcher.dispatch(order["id"], NotificationType.ORDER_RECEIVED, RecipientType.VENDOR) is True

        rows = db.tables["notifications"]
        assert len(rows) == 1
        assert rows[0]["type"] == "order_received"
        assert rows[0]["user_id"] == "user-vendor-1"
        assert rows[0]["status"] == "sent"

    def test_unknown_order_is_swallowed(self, dispatcher, caplog):
        assert dispatcher.dispatch("missing", NotificationType.ORDER_APPROVED, RecipientType.CUSTOMER) is False
        assert "[Order: missing] Benachrichtigung 'order_approved' fehlgeschlagen" in caplog.text

    def test_transport_error_is_swallowed(self, caplog):
        dispatcher = NotificationDispatcher(FailingClient(httpx.ConnectError("refused")))
        assert dispatcher.dispatch("order-1", NotificationType.ORDER_COMPLETED, RecipientType.CUSTOMER) is False
        assert "Benachrichtigungsdienst nicht erreichbar" in caplog.text

    def test_client_posts_contract_payload(self, backend_client, seed_order):
        order = seed_order()
        result = NotificationClient(client=backend_client).send(
            order["id"], NotificationType.ORDER_RECEIVED, RecipientType.VENDOR
        )
        assert result["success"] is True
        assert result["orderId"] == order["id"]
        assert result["type"] == "order_received"
