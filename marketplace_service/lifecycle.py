"""
lifecycle.py — Order Lifecycle and Status Transition Gate

Order states:

    pending → confirmed → preparing → ready → completed
    pending → rejected
    (any)   → cancelled        administrator only

completed, rejected and cancelled are terminal for vendors.

Role policy:
    - VENDOR: only on orders of their own vendor account, and only the single
      step whose source is the order's current status.
    - ADMIN (configured administrator address): any settable status, trusted.
    - BUYER: read-only.

Transitions to confirmed, rejected and completed notify the buyer.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Optional

from .access import is_administrator
from .clients import DataStoreClient
from .errors import AuthorizationError, PersistenceError
from .logging_config import get_logger
from .models import NotificationType, OrderRecord, OrderStatus, Profile, RecipientType, UserRole, Vendor

log = get_logger(__name__)

Notify = Callable[[str, NotificationType, RecipientType], object]

VENDOR_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.REJECTED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING}),
    # Legacy rows; treated like confirmed
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PREPARING}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED, OrderStatus.CANCELLED})

ADMIN_SETTABLE = frozenset(status for status in OrderStatus if status != OrderStatus.ACCEPTED)

STATUS_NOTIFICATIONS: Dict[OrderStatus, NotificationType] = {
    OrderStatus.CONFIRMED: NotificationType.ORDER_APPROVED,
    OrderStatus.REJECTED: NotificationType.ORDER_REJECTED,
    OrderStatus.COMPLETED: NotificationType.ORDER_COMPLETED,
}


def allowed_transitions(
    profile: Profile, order: OrderRecord, vendor: Optional[Vendor] = None
) -> FrozenSet[OrderStatus]:
    """
    Returns the statuses the principal may move the order to.

    Args:
        profile (Profile): Acting principal.
        order (OrderRecord): The order in its current state.
        vendor (Vendor, optional): The principal's vendor account, if any.
    """
    if is_administrator(profile):
        return ADMIN_SETTABLE
    if profile.role == UserRole.VENDOR and vendor is not None and vendor.id == order.vendor_id:
        return VENDOR_TRANSITIONS.get(order.status, frozenset())
    return frozenset()


def authorize_transition(
    profile: Profile, order: OrderRecord, target: OrderStatus, vendor: Optional[Vendor] = None
) -> None:
    """
    Raises AuthorizationError unless the principal may move the order to `target`.
    """
    if target in allowed_transitions(profile, order, vendor):
        return

    if profile.role == UserRole.BUYER:
        reason = "Buyers cannot change order status"
    elif profile.role == UserRole.ADMIN and not is_administrator(profile):
        reason = "This account is not permitted to administer orders"
    elif profile.role == UserRole.ADMIN:
        reason = f"Status '{target.value}' cannot be set"
    elif vendor is None or vendor.id != order.vendor_id:
        reason = "This order belongs to another vendor"
    elif order.status in TERMINAL_STATES:
        reason = f"Order is already {order.status.value}"
    else:
        reason = f"Cannot move order from {order.status.value} to {target.value}"
    raise AuthorizationError(reason)


def change_order_status(
    order_id: str,
    target: OrderStatus,
    profile: Profile,
    store: DataStoreClient,
    notify: Optional[Notify] = None,
    notes: Optional[str] = None,
) -> OrderRecord:
    """
    Applies a status transition after checking the role policy.

    Args:
        order_id (str): Order to update.
        target (OrderStatus): Requested status.
        profile (Profile): Acting principal.
        store (DataStoreClient): Hosted data store.
        notify (callable, optional): Called as notify(order_id, type, recipient_type)
            when the new status has a buyer notification.
        notes (str, optional): Free text stored with the status history entry.

    Returns:
        OrderRecord: The updated order.

    Raises:
        NotFoundError: The order does not exist.
        AuthorizationError: The transition is not permitted, or a vendor step lost
            against a concurrent change; nothing was changed.
        PersistenceError: The update could not be stored.
    """
    log_prefix = f"[Order: {order_id}]"

    order = store.get_order(order_id)
    vendor = store.get_vendor_by_user(profile.id) if profile.role == UserRole.VENDOR else None

    try:
        authorize_transition(profile, order, target, vendor)
    except AuthorizationError as e:
        log.warning(
            f"{log_prefix} Statuswechsel {order.status.value} -> {target.value} abgelehnt "
            f"({profile.role.value} {profile.id}): {e.message}"
        )
        raise

    # Vendor steps are only valid from the status they were checked against
    expected = order.status if profile.role == UserRole.VENDOR else None
    updated = store.update_order(order_id, {
        "status": target.value,
        "updated_at": datetime.now(timezone.utc),
    }, expected_status=expected)
    if updated is None:
        current = store.get_order(order_id)
        log.warning(
            f"{log_prefix} Statuswechsel {order.status.value} -> {target.value} verworfen: "
            f"Bestellung wurde zwischenzeitlich auf {current.status.value} geändert."
        )
        raise AuthorizationError(
            f"The order was changed to '{current.status.value}' in the meantime; reload and try again"
        )
    log.info(f"{log_prefix} Status geändert: {order.status.value} -> {target.value} durch {profile.role.value}.")

    try:
        store.add_status_history(order_id, target, changed_by=profile.id, notes=notes)
    except PersistenceError as e:
        log.error(f"{log_prefix} Statushistorie konnte nicht gespeichert werden: {e}")

    notification_type = STATUS_NOTIFICATIONS.get(target)
    if notification_type is not None and notify is not None:
        notify(order_id, notification_type, RecipientType.CUSTOMER)

    return updated
