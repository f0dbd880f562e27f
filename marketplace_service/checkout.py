"""
checkout.py — Checkout Orchestration

This module converts a session cart into persisted orders. A cart may hold
products of several vendors; every vendor gets its own order.

Workflow Overview:
1. Validate the cart and the buyer's checkout form (nothing is persisted on failure)
2. Partition the cart by vendor, in order of first appearance
3. Per vendor group: create the order, then batch-create its order items
   (compensation: delete the group's order if its items cannot be stored)
4. Request an `order_received` notification for each created order (best effort)
5. Clear the cart and return the summary for the confirmation view

Vendor groups are processed sequentially. Groups that were committed before a
later group failed stay persisted; the error reports their ids.
"""

from decimal import Decimal
from typing import Callable, List, Optional

from .cart import Cart, group_by_vendor
from .clients import DataStoreClient
from .errors import CheckoutValidationError, PersistenceError
from .logging_config import get_logger
from .models import (
    CASH_PAYMENT,
    CartItem,
    CheckoutDetails,
    CheckoutSummary,
    NotificationType,
    OrderRecord,
    OrderStatus,
    RecipientType,
)
from .notifications import format_currency

log = get_logger(__name__)

Notify = Callable[[str, NotificationType, RecipientType], object]

ZERO = Decimal("0")


def cart_total(items: List[CartItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)


def validate_checkout(items: List[CartItem], details: CheckoutDetails) -> None:
    """
    Checks the checkout preconditions.

    Raises:
        CheckoutValidationError: If the cart is empty, a required field is
            missing or blank, or the cash amount does not cover the cart total.
    """
    if not items:
        raise CheckoutValidationError("Empty Cart", "Please add items to your cart before checking out")

    required = (details.buyer_name, details.buyer_phone, details.delivery_location, details.payment_method)
    if any(not value or not value.strip() for value in required):
        raise CheckoutValidationError("Missing Information", "Please fill in all required fields")

    if details.payment_method == CASH_PAYMENT:
        total = cart_total(items)
        if details.payment_amount is None or details.payment_amount < total:
            raise CheckoutValidationError(
                "Insufficient Cash Amount",
                f"Please enter at least {format_currency(total)} for cash payment",
            )


def allocate_payment_amounts(subtotals: List[Decimal], details: CheckoutDetails) -> List[Decimal]:
    """
    Splits the buyer's payment over the vendor orders.

    Non-cash payments record each vendor subtotal. For cash, every order
    records its own subtotal and the change (tendered minus cart total) is
    added to the first order, so the recorded amounts add up to the cash the
    buyer tendered and each order is covered.
    """
    amounts = list(subtotals)
    if details.payment_method == CASH_PAYMENT and amounts:
        change = details.payment_amount - sum(subtotals, ZERO)
        amounts[0] += change
    return amounts


def process_checkout(
    cart: Cart,
    details: CheckoutDetails,
    user_id: str,
    store: DataStoreClient,
    notify: Optional[Notify] = None,
) -> CheckoutSummary:
    """
    Executes the complete checkout for one session cart.

    Args:
        cart (Cart): The session cart. Cleared only when every vendor group was persisted.
        details (CheckoutDetails): Buyer name, phone, delivery location and payment.
        user_id (str): Authenticated buyer.
        store (DataStoreClient): Hosted data store.
        notify (callable, optional): Called as notify(order_id, type, recipient_type)
            after each vendor group was committed. The API passes a function that
            schedules the dispatch as a background task.

    Returns:
        CheckoutSummary: Created orders plus the data shown on the confirmation view.

    Raises:
        CheckoutValidationError: Preconditions failed; nothing was persisted.
        PersistenceError: A vendor group could not be stored. `committed_order_ids`
            lists the orders of earlier groups, which remain persisted.
    """
    log_prefix = f"[Checkout: {cart.session_id}]"
    items = cart.items

    validate_checkout(items, details)

    groups = group_by_vendor(items)
    subtotals = [cart_total(vendor_items) for vendor_items in groups.values()]
    payment_amounts = allocate_payment_amounts(subtotals, details)

    log.info(f"{log_prefix} Starte Checkout: {len(items)} Artikel von {len(groups)} Anbieter(n).")

    created: List[OrderRecord] = []
    for (vendor_id, vendor_items), vendor_total, payment_amount in zip(groups.items(), subtotals, payment_amounts):
        order = _persist_vendor_group(
            vendor_id, vendor_items, vendor_total, payment_amount, details, user_id, store, created, log_prefix
        )
        created.append(order)

        if notify is not None:
            notify(order.id, NotificationType.ORDER_RECEIVED, RecipientType.VENDOR)

    total = sum(subtotals, ZERO)
    summary = CheckoutSummary(
        orders=created,
        items=items,
        buyer_name=details.buyer_name,
        buyer_phone=details.buyer_phone,
        delivery_location=details.delivery_location,
        payment_method=details.payment_method,
        payment_amount=details.payment_amount if details.payment_method == CASH_PAYMENT else total,
        total=total,
    )

    cart.clear()
    log.info(f"{log_prefix} Checkout erfolgreich abgeschlossen. Bestellungen: {[o.id for o in created]}")
    return summary


def _persist_vendor_group(
    vendor_id, vendor_items, vendor_total, payment_amount, details, user_id, store, created, log_prefix
) -> OrderRecord:
    committed = [o.id for o in created]

    try:
        order = store.create_order({
            "buyer_name": details.buyer_name,
            "buyer_phone": details.buyer_phone,
            "delivery_location": details.delivery_location,
            "payment_method": details.payment_method,
            "payment_amount": payment_amount,
            "total": vendor_total,
            "vendor_id": vendor_id,
            "user_id": user_id,
            "status": OrderStatus.PENDING.value,
        })
    except PersistenceError as e:
        log.error(f"{log_prefix} Bestellung für Anbieter {vendor_id} fehlgeschlagen. Bereits gespeichert: {committed}")
        raise PersistenceError(e.message, committed_order_ids=committed) from e

    log.info(f"{log_prefix} Bestellung {order.id} für Anbieter {vendor_id} angelegt (Summe {vendor_total}).")

    order_items = [
        {
            "order_id": order.id,
            "product_id": item.product.id,
            "product_name": item.product.name,
            "product_price": item.product.price,
            "quantity": item.quantity,
            "total": item.line_total,
        }
        for item in vendor_items
    ]
    try:
        store.create_order_items(order_items)
    except PersistenceError as e:
        log.error(f"{log_prefix} Bestellpositionen für {order.id} fehlgeschlagen. Starte Kompensation.")
        # KOMPENSATION: keine Bestellung ohne Positionen zurücklassen
        try:
            store.delete_order(order.id)
            log.info(f"{log_prefix} Kompensation erfolgreich: Bestellung {order.id} entfernt.")
        except PersistenceError as comp_e:
            log.critical(f"{log_prefix} KRITISCH: Kompensation für {order.id} fehlgeschlagen! {comp_e}")
        raise PersistenceError(e.message, committed_order_ids=committed) from e

    return order
