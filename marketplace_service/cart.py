"""
cart.py — Session Cart and Cart Store

The cart is owned by exactly one browsing session. Instead of a process-wide
global, each session gets its own Cart instance from the CartStore, and all
mutations go through the Cart's methods.

Classes:
    - Cart: Ordered collection of CartItems with add/remove/update/clear.
    - CartStore: Maps session ids to their Cart.
"""

import threading
from contextlib import contextmanager
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Optional

from .errors import CheckoutValidationError
from .logging_config import get_logger
from .models import CartItem, Product

log = get_logger(__name__)


class Cart:
    """
    Shopping cart of a single session.

    Items keep the order in which products were first added. A product appears
    at most once; adding it again increases its quantity.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.lock = threading.RLock()
        self._items: Dict[str, CartItem] = OrderedDict()

    @property
    def items(self) -> List[CartItem]:
        return list(self._items.values())

    def is_empty(self) -> bool:
        return not self._items

    def add_item(self, product: Product, quantity: int = 1) -> CartItem:
        """
        Adds a product to the cart or increases its quantity.

        Args:
            product (Product): Product to add.
            quantity (int): Units to add. Must be at least one.

        Returns:
            CartItem: The resulting cart line.

        Raises:
            CheckoutValidationError: If the product is unavailable or quantity < 1.
        """
        if quantity < 1:
            raise CheckoutValidationError("Invalid Quantity", "Quantity must be at least 1")
        if not product.available:
            raise CheckoutValidationError(
                "Product Unavailable", f"{product.name} is currently not available"
            )

        existing = self._items.get(product.id)
        if existing:
            existing.quantity += quantity
            log.info(f"[Cart: {self.session_id}] Menge erhöht: {product.name} -> {existing.quantity}")
            return existing

        item = CartItem(product=product, quantity=quantity)
        self._items[product.id] = item
        log.info(f"[Cart: {self.session_id}] Artikel hinzugefügt: {product.name} x{quantity}")
        return item

    def remove_item(self, product_id: str) -> None:
        removed = self._items.pop(product_id, None)
        if removed:
            log.info(f"[Cart: {self.session_id}] Artikel entfernt: {removed.product.name}")

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Sets the quantity of a cart line; a quantity below one removes it."""
        if quantity < 1:
            self.remove_item(product_id)
            return
        item = self._items.get(product_id)
        if item:
            item.quantity = quantity

    def clear(self) -> None:
        self._items.clear()
        log.info(f"[Cart: {self.session_id}] Warenkorb geleert.")

    def total(self) -> Decimal:
        return sum((item.line_total for item in self._items.values()), Decimal("0"))

    def item_count(self) -> int:
        return sum(item.quantity for item in self._items.values())

    def group_by_vendor(self) -> "OrderedDict[str, List[CartItem]]":
        return group_by_vendor(self.items)


def group_by_vendor(items: List[CartItem]) -> "OrderedDict[str, List[CartItem]]":
    """
    Partitions cart items by vendor.

    Groups appear in the order of the vendor's first item in the cart, and
    items keep their relative order within a group.
    """
    groups: "OrderedDict[str, List[CartItem]]" = OrderedDict()
    for item in items:
        groups.setdefault(item.product.vendor_id, []).append(item)
    return groups


class CartStore:
    """
    Holds one Cart per session id.

    Only adding an item creates a cart; an emptied or checked-out cart is
    discarded so the mapping holds live carts only.

    The API serves requests from a thread pool: the store lock guards the
    mapping, each cart's own lock serialises the mutations of that cart.
    """

    def __init__(self):
        self._carts: Dict[str, Cart] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Cart:
        with self._lock:
            cart = self._carts.get(session_id)
            if cart is None:
                cart = Cart(session_id)
                self._carts[session_id] = cart
            return cart

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._carts.pop(session_id, None)

    def peek(self, session_id: str) -> Optional[Cart]:
        """Returns the session's cart without creating one."""
        with self._lock:
            return self._carts.get(session_id)

    def __len__(self):
        with self._lock:
            return len(self._carts)

    @contextmanager
    def locked(self, session_id: str, create: bool = True):
        """
        Yields the session's cart with its lock held, or None when the session
        has no cart and `create` is False.

        A cart that is empty when the block exits is dropped from the store.
        """
        while True:
            cart = self.get(session_id) if create else self.peek(session_id)
            if cart is None:
                yield None
                return
            with cart.lock:
                # Lost a race against a discard; retry with the live cart
                if self.peek(session_id) is not cart:
                    continue
                try:
                    yield cart
                finally:
                    if cart.is_empty():
                        self.discard(session_id)
                return
