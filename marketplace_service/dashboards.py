"""
The dashboard payload is a tagged union keyed on `role`; each variant carries
only what that role's dashboard shows.
"""

from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import Field

from .access import is_administrator
from .clients import DataStoreClient
from .models import ApiModel, OrderRecord, OrderStatus, Profile, UserRole, Vendor


class BuyerDashboard(ApiModel):
    role: Literal[UserRole.BUYER] = UserRole.BUYER
    orders: List[OrderRecord]


class VendorDashboard(ApiModel):
    role: Literal[UserRole.VENDOR] = UserRole.VENDOR
    vendor: Optional[Vendor] = None
    orders: List[OrderRecord] = []
    status_counts: Dict[OrderStatus, int] = {}
    completed_revenue: Decimal = Decimal("0")


class AdminDashboard(ApiModel):
    role: Literal[UserRole.ADMIN] = UserRole.ADMIN
    pending_vendors: List[Vendor]
    verified_vendor_count: int
    customer_count: int
    completed_order_count: int
    total_sales: Decimal


Dashboard = Annotated[Union[BuyerDashboard, VendorDashboard, AdminDashboard], Field(discriminator="role")]


def build_dashboard(profile: Profile, store: DataStoreClient) -> Dashboard:
    """
    Builds the dashboard variant for the principal's role.

    An ADMIN profile that is not the configured administrator address gets the
    buyer view of its own orders.
    """
    if profile.role == UserRole.VENDOR:
        return _vendor_dashboard(profile, store)
    if profile.role == UserRole.ADMIN and is_administrator(profile):
        return _admin_dashboard(store)
    return BuyerDashboard(orders=store.list_orders(user_id=profile.id))


def _vendor_dashboard(profile: Profile, store: DataStoreClient) -> VendorDashboard:
    vendor = store.get_vendor_by_user(profile.id)
    if vendor is None:
        # registration not completed yet
        return VendorDashboard()

    orders = store.list_orders(vendor_id=vendor.id)
    counts: Dict[OrderStatus, int] = {}
    for order in orders:
        counts[order.status] = counts.get(order.status, 0) + 1
    revenue = sum((o.total for o in orders if o.status == OrderStatus.COMPLETED), Decimal("0"))
    return VendorDashboard(vendor=vendor, orders=orders, status_counts=counts, completed_revenue=revenue)


def _admin_dashboard(store: DataStoreClient) -> AdminDashboard:
    vendors = store.list_vendors()
    completed = store.list_orders(status=OrderStatus.COMPLETED)
    return AdminDashboard(
        pending_vendors=[v for v in vendors if not v.verified],
        verified_vendor_count=sum(1 for v in vendors if v.verified),
        customer_count=len(store.list_profiles(role=UserRole.BUYER)),
        completed_order_count=len(completed),
        total_sales=sum((o.total for o in completed), Decimal("0")),
    )
