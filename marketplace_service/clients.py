"""
This module provides communication clients for the hosted backend used by the marketplace service:
- Data Store (PostgREST-style REST API over the hosted database)
- Notification Function (edge function `send-notifications`)
- Auth Service (session/principal lookup)
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import logging
import os
from typing import Any, List, Optional

import httpx
from pydantic import TypeAdapter

from .errors import AuthenticationError, NotFoundError, PersistenceError
from .models import (
    NotificationType,
    OrderItemRecord,
    OrderRecord,
    OrderStatus,
    Product,
    Profile,
    RecipientType,
    UserRole,
    Vendor,
)

# Service-Adressen (normalerweise aus Env Vars)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "http://localhost:54321")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY", "service-role-key")

log = logging.getLogger(__name__)

_payload_adapter = TypeAdapter(Any)


def _to_json(payload):
    """Converts Decimal and datetime values to their JSON form (Decimal as string)."""
    return _payload_adapter.dump_python(payload, mode="json")


def _new_http_client() -> httpx.Client:
    timeout_config = httpx.Timeout(5.0, read=8.0)
    return httpx.Client(base_url=SUPABASE_URL, timeout=timeout_config)


class _BackendClient:
    """
    Shared plumbing for clients of the hosted backend.

    An already configured httpx.Client can be injected (tests pass a FastAPI
    TestClient bound to the mock backend); otherwise one is created and owned.
    """

    def __init__(self, client: Optional[httpx.Client] = None, api_key: str = SUPABASE_SERVICE_KEY):
        self._owns_client = client is None
        self.client = client if client is not None else _new_http_client()
        self.headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}

    def __del__(self):
        """Closes the HTTP client session if this instance created it."""
        if getattr(self, "_owns_client", False):
            self.client.close()

    def close(self):
        if self._owns_client:
            self.client.close()


# --- Data Store Client (REST) ---
class DataStoreClient(_BackendClient):
    """
    Client for the hosted data store (PostgREST conventions).

    Every failed call (transport error or 4xx/5xx) is translated into
    PersistenceError so callers only deal with domain errors.
    """

    def _request(self, method: str, path: str, context: str = "", **kwargs) -> httpx.Response:
        headers = dict(self.headers)
        headers.update(kwargs.pop("headers", {}))
        try:
            response = self.client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()  # Löst HTTPStatusError bei 4xx/5xx aus
            return response
        except httpx.HTTPStatusError as e:
            log.error(f"{context} Data Store antwortete mit HTTP {e.response.status_code} auf {method} {path}.")
            raise PersistenceError("The data store rejected the request.") from e
        except httpx.TransportError as e:
            log.error(f"{context} Data Store nicht erreichbar ({type(e).__name__}): {e}")
            raise PersistenceError("The data store is unreachable.") from e

    def _select(self, table: str, filters: dict, order: Optional[str] = None, context: str = "") -> List[dict]:
        params = {"select": "*"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        if order:
            params["order"] = order
        return self._request("GET", f"/rest/v1/{table}", context, params=params).json()

    def _insert(self, table: str, rows, context: str = "") -> List[dict]:
        response = self._request(
            "POST",
            f"/rest/v1/{table}",
            context,
            json=_to_json(rows),
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    def _update(
        self, table: str, row_id: str, changes: dict, context: str = "", match: Optional[dict] = None
    ) -> List[dict]:
        params = {"id": f"eq.{row_id}"}
        params.update({column: f"eq.{value}" for column, value in (match or {}).items()})
        response = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            context,
            params=params,
            json=_to_json(changes),
            headers={"Prefer": "return=representation"},
        )
        return response.json()

    # Catalog
    def get_product(self, product_id: str) -> Product:
        rows = self._select("products", {"id": product_id})
        if not rows:
            raise NotFoundError("Product not found")
        row = rows[0]
        return Product(
            id=row["id"],
            name=row["name"],
            price=row["price"],
            image=row.get("image") or "",
            vendor_id=row["vendor_id"],
            available=row.get("available", True),
            category=row.get("category_id") or "",
        )

    # Orders
    def create_order(self, record: dict) -> OrderRecord:
        """
        Inserts a new order row.

        Args:
            record (dict): Column values without id/timestamps.

        Returns:
            OrderRecord: The persisted row including its generated id.

        Raises:
            PersistenceError: If the insert fails.
        """
        context = f"[Vendor: {record.get('vendor_id')}]"
        rows = self._insert("orders", record, context)
        return OrderRecord(**rows[0])

    def delete_order(self, order_id: str) -> None:
        self._request("DELETE", "/rest/v1/orders", f"[Order: {order_id}]", params={"id": f"eq.{order_id}"})

    def create_order_items(self, records: List[dict]) -> List[OrderItemRecord]:
        """Batch-inserts the line items of one order."""
        context = f"[Order: {records[0]['order_id']}]" if records else ""
        rows = self._insert("order_items", records, context)
        return [OrderItemRecord(**row) for row in rows]

    def get_order(self, order_id: str) -> OrderRecord:
        rows = self._select("orders", {"id": order_id}, context=f"[Order: {order_id}]")
        if not rows:
            raise NotFoundError("Order not found")
        return OrderRecord(**rows[0])

    def list_orders(
        self,
        vendor_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> List[OrderRecord]:
        """Lists orders, newest first, optionally filtered by vendor, buyer or status."""
        filters = {}
        if vendor_id:
            filters["vendor_id"] = vendor_id
        if user_id:
            filters["user_id"] = user_id
        if status:
            filters["status"] = status.value
        rows = self._select("orders", filters, order="created_at.desc")
        return [OrderRecord(**row) for row in rows]

    def list_order_items(self, order_id: str) -> List[OrderItemRecord]:
        rows = self._select("order_items", {"order_id": order_id}, context=f"[Order: {order_id}]")
        return [OrderItemRecord(**row) for row in rows]

    def update_order(
        self, order_id: str, changes: dict, expected_status: Optional[OrderStatus] = None
    ) -> Optional[OrderRecord]:
        """
        Updates one order.

        With `expected_status` the update only applies while the stored status
        still equals it; None is returned when no row matched.
        """
        match = {"status": expected_status.value} if expected_status is not None else None
        rows = self._update("orders", order_id, changes, f"[Order: {order_id}]", match=match)
        if not rows:
            if expected_status is not None:
                return None
            raise NotFoundError("Order not found")
        return OrderRecord(**rows[0])

    def add_status_history(self, order_id: str, status: OrderStatus, changed_by: str, notes: Optional[str] = None):
        self._insert(
            "order_status_history",
            {"order_id": order_id, "status": status.value, "changed_by": changed_by, "notes": notes},
            f"[Order: {order_id}]",
        )

    # Profiles & vendors
    def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = self._select("profiles", {"id": user_id})
        return Profile(**rows[0]) if rows else None

    def list_profiles(self, role: Optional[UserRole] = None) -> List[Profile]:
        filters = {"role": role.value} if role else {}
        return [Profile(**row) for row in self._select("profiles", filters, order="created_at.desc")]

    def get_vendor(self, vendor_id: str) -> Vendor:
        rows = self._select("vendors", {"id": vendor_id})
        if not rows:
            raise NotFoundError("Vendor not found")
        return Vendor(**rows[0])

    def get_vendor_by_user(self, user_id: str) -> Optional[Vendor]:
        rows = self._select("vendors", {"user_id": user_id})
        return Vendor(**rows[0]) if rows else None

    def list_vendors(self, verified: Optional[bool] = None) -> List[Vendor]:
        filters = {"verified": str(verified).lower()} if verified is not None else {}
        return [Vendor(**row) for row in self._select("vendors", filters, order="created_at.desc")]

    def update_vendor(self, vendor_id: str, changes: dict) -> Vendor:
        rows = self._update("vendors", vendor_id, changes, f"[Vendor: {vendor_id}]")
        if not rows:
            raise NotFoundError("Vendor not found")
        return Vendor(**rows[0])


# --- Notification Client (REST) ---
class NotificationClient(_BackendClient):
    """
    Client for the hosted `send-notifications` edge function.
    The function resolves the order's vendor/buyer contact info itself and
    records a notification row.
    """

    def send(self, order_id: str, notification_type: NotificationType, recipient_type: RecipientType) -> dict:
        """
        Invokes the notification function for one order.

        Args:
            order_id (str): Order the notification is about.
            notification_type (NotificationType): Which message to send.
            recipient_type (RecipientType): Vendor or customer.

        Returns:
            dict: JSON response of the function.

        Raises:
            httpx.HTTPStatusError: If the function returns an error status.
            httpx.TransportError: If the function is unreachable or times out.
        """
        payload = {
            "orderId": order_id,
            "type": notification_type.value,
            "recipientType": recipient_type.value,
        }
        response = self.client.post("/functions/v1/send-notifications", json=payload, headers=self.headers)
        response.raise_for_status()
        return response.json()


# --- Auth Client (REST) ---
class AuthClient(_BackendClient):
    """Resolves a bearer access token to the authenticated principal's id."""

    def get_user_id(self, access_token: str) -> str:
        headers = {"apikey": self.headers["apikey"], "Authorization": f"Bearer {access_token}"}
        try:
            response = self.client.get("/auth/v1/user", headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                raise AuthenticationError("Invalid or expired session") from e
            log.error(f"Auth Service antwortete mit HTTP {e.response.status_code}.")
            raise PersistenceError("The authentication service rejected the request.") from e
        except httpx.TransportError as e:
            log.error(f"Auth Service nicht erreichbar: {e}")
            raise PersistenceError("The authentication service is unreachable.") from e
        return response.json()["id"]
