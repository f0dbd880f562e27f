"""
Tests for the order status transition gate.
"""

import pytest

from conftest import make_profile
from marketplace_service.access import ADMIN_EMAIL
from marketplace_service.errors import AuthorizationError, NotFoundError
from marketplace_service.lifecycle import (
    ADMIN_SETTABLE,
    allowed_transitions,
    authorize_transition,
    change_order_status,
)
from marketplace_service.models import (
    NotificationType,
    OrderRecord,
    OrderStatus,
    RecipientType,
    UserRole,
    Vendor,
)

VENDOR_1 = Vendor(id="V1", user_id="user-vendor-1", name="Sipho")
VENDOR_2 = Vendor(id="V2", user_id="user-vendor-2", name="Naledi")

BUYER = make_profile("user-buyer", UserRole.BUYER)
VENDOR = make_profile("user-vendor-1", UserRole.VENDOR)
ADMIN = make_profile("user-admin", UserRole.ADMIN, email=ADMIN_EMAIL)
OTHER_ADMIN = make_profile("user-other-admin", UserRole.ADMIN, email="other@student.example")


def _order(status: OrderStatus, vendor_id="V1") -> OrderRecord:
    return OrderRecord(
        id="order-1",
        buyer_name="Thandi",
        buyer_phone="0712345678",
        delivery_location="Res",
        payment_method="Card",
        payment_amount="20",
        total="20",
        vendor_id=vendor_id,
        user_id="user-buyer",
        status=status,
    )


class Recorder:

    def __init__(self):
        self.calls = []

    def __call__(self, order_id, notification_type, recipient_type):
        self.calls.append((order_id, notification_type, recipient_type))


# ============================================================================
# Policy
# ============================================================================


class TestVendorPolicy:

    @pytest.mark.parametrize("current, target", [
        (OrderStatus.PENDING, OrderStatus.CONFIRMED),
        (OrderStatus.PENDING, OrderStatus.REJECTED),
        (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
        (OrderStatus.PREPARING, OrderStatus.READY),
        (OrderStatus.READY, OrderStatus.COMPLETED),
        (OrderStatus.ACCEPTED, OrderStatus.PREPARING),
    ])
    def test_chain_steps_allowed(self, current, target):
        authorize_transition(VENDOR, _order(current), target, VENDOR_1)

    @pytest.mark.parametrize("current, target", [
        (OrderStatus.PENDING, OrderStatus.READY),
        (OrderStatus.PENDING, OrderStatus.PREPARING),
        (OrderStatus.CONFIRMED, OrderStatus.COMPLETED),
        (OrderStatus.READY, OrderStatus.PENDING),
        (OrderStatus.PENDING, OrderStatus.CANCELLED),
    ])
    def test_skips_and_backward_moves_rejected(self, current, target):
        with pytest.raises(AuthorizationError):
            authorize_transition(VENDOR, _order(current), target, VENDOR_1)

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.REJECTED, OrderStatus.CANCELLED])
    def test_no_transition_out_of_terminal_state(self, terminal):
        assert allowed_transitions(VENDOR, _order(terminal), VENDOR_1) == frozenset()

    def test_other_vendors_order_rejected(self):
        with pytest.raises(AuthorizationError) as exc:
            authorize_transition(VENDOR, _order(OrderStatus.PENDING, vendor_id="V2"), OrderStatus.CONFIRMED, VENDOR_1)
        assert "another vendor" in exc.value.message

    def test_vendor_without_account_rejected(self):
        with pytest.raises(AuthorizationError):
            authorize_transition(VENDOR, _order(OrderStatus.PENDING), OrderStatus.CONFIRMED, None)


class TestAdminPolicy:

    def test_admin_may_skip_states(self):
        authorize_transition(ADMIN, _order(OrderStatus.PENDING), OrderStatus.READY)

    @pytest.mark.parametrize("target", sorted(ADMIN_SETTABLE, key=lambda s: s.value))
    def test_admin_may_set_any_status(self, target):
        authorize_transition(ADMIN, _order(OrderStatus.COMPLETED), target)

    def test_legacy_accepted_cannot_be_set(self):
        with pytest.raises(AuthorizationError):
            authorize_transition(ADMIN, _order(OrderStatus.PENDING), OrderStatus.ACCEPTED)

    def test_admin_role_with_other_email_rejected(self):
        with pytest.raises(AuthorizationError):
            authorize_transition(OTHER_ADMIN, _order(OrderStatus.PENDING), OrderStatus.READY)


class TestBuyerPolicy:

    @pytest.mark.parametrize("current", list(OrderStatus))
    def test_buyer_never_allowed(self, current):
        for target in OrderStatus:
            with pytest.raises(AuthorizationError):
                authorize_transition(BUYER, _order(current), target)


# ============================================================================
# Applying transitions
# ============================================================================


class TestChangeOrderStatus:

    def test_vendor_confirms_and_buyer_is_notified(self, store, seed_order, db):
        order = seed_order(status="pending")
        notify = Recorder()

        updated = change_order_status(order["id"], OrderStatus.CONFIRMED, VENDOR, store, notify)

        assert updated.status == OrderStatus.CONFIRMED
        assert db.find("orders", order["id"])["status"] == "confirmed"
        assert notify.calls == [(order["id"], NotificationType.ORDER_APPROVED, RecipientType.CUSTOMER)]

    def test_ready_to_completed_then_nothing_further(self, store, seed_order, db):
        order = seed_order(status="ready")
        notify = Recorder()

        updated = change_order_status(order["id"], OrderStatus.COMPLETED, VENDOR, store, notify)

        assert updated.status == OrderStatus.COMPLETED
        assert notify.calls == [(order["id"], NotificationType.ORDER_COMPLETED, RecipientType.CUSTOMER)]
        for target in OrderStatus:
            with pytest.raises(AuthorizationError):
                change_order_status(order["id"], target, VENDOR, store, notify)
        assert db.find("orders", order["id"])["status"] == "completed"

    def test_rejection_notifies_buyer(self, store, seed_order):
        order = seed_order(status="pending")
        notify = Recorder()
        change_order_status(order["id"], OrderStatus.REJECTED, VENDOR, store, notify)
        assert notify.calls[0][1] == NotificationType.ORDER_REJECTED

    def test_preparing_sends_no_notification(self, store, seed_order):
        order = seed_order(status="confirmed")
        notify = Recorder()
        change_order_status(order["id"], OrderStatus.PREPARING, VENDOR, store, notify)
        assert notify.calls == []

    def test_rejected_transition_mutates_nothing(self, store, seed_order, db):
        order = seed_order(status="pending")
        before = dict(db.find("orders", order["id"]))
        notify = Recorder()

        with pytest.raises(AuthorizationError):
            change_order_status(order["id"], OrderStatus.READY, VENDOR, store, notify)

        assert db.find("orders", order["id"]) == before
        assert db.tables["order_status_history"] == []
        assert notify.calls == []

    def test_admin_sets_ready_directly(self, store, seed_order, db):
        order = seed_order(status="pending")
        change_order_status(order["id"], OrderStatus.READY, ADMIN, store)
        assert db.find("orders", order["id"])["status"] == "ready"

    def test_buyer_cannot_change_own_order(self, store, seed_order):
        order = seed_order(status="pending", user_id="user-buyer")
        with pytest.raises(AuthorizationError):
            change_order_status(order["id"], OrderStatus.CANCELLED, BUYER, store)

    def test_history_records_actor(self, store, seed_order, db):
        order = seed_order(status="pending")
        change_order_status(order["id"], OrderStatus.CONFIRMED, VENDOR, store, notes="on it")

        history = db.tables["order_status_history"]
        assert len(history) == 1
        assert history[0]["status"] == "confirmed"
        assert history[0]["changed_by"] == "user-vendor-1"
        assert history[0]["notes"] == "on it"

    def test_updated_at_is_refreshed(self, store, seed_order, db):
        order = seed_order(status="pending")
        created = db.find("orders", order["id"])["updated_at"]
        updated = change_order_status(order["id"], OrderStatus.CONFIRMED, VENDOR, store)
        assert updated.updated_at.isoformat() != created

    def test_concurrent_change_wins_over_stale_vendor_step(self, store, seed_order, db, monkeypatch):
        order = seed_order(status="pending")
        read_order = store.get_order

        def read_then_cancel(order_id):
            snapshot = read_order(order_id)
            db.find("orders", order_id)["status"] = "cancelled"
            return snapshot

        monkeypatch.setattr(store, "get_order", read_then_cancel)
        notify = Recorder()

        with pytest.raises(AuthorizationError) as exc:
            change_order_status(order["id"], OrderStatus.CONFIRMED, VENDOR, store, notify)

        assert "cancelled" in exc.value.message
        assert db.find("orders", order["id"])["status"] == "cancelled"
        assert db.tables["order_status_history"] == []
        assert notify.calls == []

    def test_admin_override_is_not_conditional(self, store, seed_order, db):
        order = seed_order(status="cancelled")
        change_order_status(order["id"], OrderStatus.PENDING, ADMIN, store)
        assert db.find("orders", order["id"])["status"] == "pending"

    def test_unknown_order(self, store):
        with pytest.raises(NotFoundError):
            change_order_status("missing", OrderStatus.CONFIRMED, VENDOR, store)
