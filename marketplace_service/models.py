"""
models.py — Data Models for the Campus Marketplace

This module defines the data structures exchanged with the single-page client
and the rows persisted in the hosted data store. It uses Pydantic models to
ensure type safety and automatic validation of incoming data.

Client-facing models use camelCase aliases (the client speaks JSON in camelCase),
store rows keep the snake_case column names of the hosted database.

Models:
    - Product: Catalog entry as supplied by the catalog collaborator (read-only).
    - CartItem: A product and quantity held in a session cart.
    - CheckoutDetails: Buyer-supplied checkout form.
    - Order / OrderItem: Persisted order records.
    - Profile / Vendor: Principal profile and vendor account.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


CASH_PAYMENT = "Cash"


class UserRole(str, Enum):
    BUYER = "BUYER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class OrderStatus(str, Enum):
    """
    Order status values as declared by the hosted database enum.

    ACCEPTED is a legacy value: rows may still carry it, but no transition
    produces it.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    ORDER_RECEIVED = "order_received"
    ORDER_APPROVED = "order_approved"
    ORDER_REJECTED = "order_rejected"
    ORDER_COMPLETED = "order_completed"


class RecipientType(str, Enum):
    VENDOR = "vendor"
    CUSTOMER = "customer"


class AuthState(str, Enum):
    ABSENT = "absent"
    PENDING = "pending"
    PRESENT = "present"


class ApiModel(BaseModel):
    """Base for client-facing payloads: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Product(ApiModel):
    """
    Represents a product listed by a vendor.

    Attributes:
        id (str): Product identifier.
        name (str): Display name.
        price (Decimal): Unit price, never negative.
        image (str): Image URL.
        vendor_id (str): Identifier of the listing vendor.
        available (bool): Whether the product can currently be ordered.
        category (str): Category name or identifier.
    """
    id: str
    name: str
    price: Decimal = Field(..., ge=0)
    image: str = ""
    vendor_id: str
    available: bool = True
    category: str = ""


class CartItem(ApiModel):
    """
    A product held in a session cart.

    Attributes:
        product (Product): Snapshot of the product when it was added.
        quantity (int): Number of units. Must be at least one.
    """
    product: Product
    quantity: int = Field(..., ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity


class AddCartItemRequest(ApiModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class UpdateCartItemRequest(ApiModel):
    quantity: int


class CartView(ApiModel):
    items: List[CartItem]
    item_count: int
    total: Decimal


class CheckoutDetails(ApiModel):
    """
    Buyer-supplied checkout form.

    Fields default to empty values so that a half-filled form reaches the
    checkout validation step and is answered with a readable message instead
    of a schema error.

    Attributes:
        buyer_name (str): Buyer's full name.
        buyer_phone (str): Buyer's phone number.
        delivery_location (str): Where the order should be delivered.
        payment_method (str): "Cash", "Card" or "Mobile Money".
        payment_amount (Decimal | None): Cash tendered, required for cash payment.
    """
    buyer_name: str = ""
    buyer_phone: str = ""
    delivery_location: str = ""
    payment_method: str = ""
    payment_amount: Optional[Decimal] = None


class OrderRecord(BaseModel):
    """Row of the `orders` table."""
    id: str
    buyer_name: str
    buyer_phone: str
    delivery_location: str
    payment_method: str
    payment_amount: Decimal
    total: Decimal
    vendor_id: str
    user_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderItemRecord(BaseModel):
    """Row of the `order_items` table. Name and price are snapshots taken at checkout."""
    id: Optional[str] = None
    order_id: str
    product_id: str
    product_name: str
    product_price: Decimal
    quantity: int = Field(..., ge=1)
    total: Decimal


class NotificationRecord(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    type: str
    message: str
    status: Optional[str] = None
    sent_at: Optional[datetime] = None


class Profile(BaseModel):
    """Authenticated principal's profile, read from the `profiles` table."""
    id: str
    name: str
    email: str
    role: UserRole
    phone: Optional[str] = None


class Vendor(BaseModel):
    """Row of the `vendors` table (subset used by the service)."""
    id: str
    user_id: str
    name: str
    store_name: Optional[str] = None
    email: str = ""
    whatsapp_number: str = ""
    description: str = ""
    verified: bool = False
    rejection_reason: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.store_name or self.name


class StatusUpdateRequest(ApiModel):
    status: OrderStatus
    notes: Optional[str] = None


class VendorRejectionRequest(ApiModel):
    reason: str = "Application rejected by admin"


class OrderWithItems(ApiModel):
    order: OrderRecord
    items: List[OrderItemRecord]


class CheckoutSummary(ApiModel):
    """
    Details handed to the confirmation view after a successful checkout.

    Attributes:
        orders (List[OrderRecord]): One created order per vendor group.
        items (List[CartItem]): The checked-out cart contents.
        buyer_name, buyer_phone, delivery_location, payment_method: Echo of the form.
        payment_amount (Decimal): Amount tendered (cash) or the cart total.
        total (Decimal): Sum over all vendor groups.
    """
    orders: List[OrderRecord]
    items: List[CartItem]
    buyer_name: str
    buyer_phone: str
    delivery_location: str
    payment_method: str
    payment_amount: Decimal
    total: Decimal


class ConfirmationView(ApiModel):
    order_id: str
    vendor_name: str
    message: str
    whatsapp_link: str


class AccessDecision(ApiModel):
    """
    Outcome of the view access gate.

    action is one of "render", "loading" or "redirect"; redirect_to is set
    only for redirects.
    """
    view: str
    action: str
    redirect_to: Optional[str] = None
