"""
mock_supabase.py — Mock Implementation of the Hosted Backend (REST API)

This module provides a simulated backend-as-a-service for local runs and tests
of the marketplace service. It exposes a FastAPI application that mimics the
subset of the hosted platform the service relies on:

    • Data API (PostgREST conventions) — /rest/v1/{table}
        GET with `col=eq.value` filters and `order=col.asc|desc`,
        POST (single row or batch, returns the representation),
        PATCH and DELETE filtered by `id=eq.value`
    • Auth — GET /auth/v1/user resolves a bearer token to the user id
    • Edge function — POST /functions/v1/send-notifications

Simulation Scenarios:
    • vendor_id containing "FAIL-ORDER"   → order insert fails (HTTP 500)
    • product_id containing "FAIL-ITEMS"  → order item insert fails (HTTP 500)
    • buyer_name containing "FAIL-NOTIFY" → notification function fails (HTTP 500)

Port:
    Default: 54321 (HTTP)
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi import Body, FastAPI, Header, HTTPException, Request, Response

from marketplace_service.models import NotificationType, OrderRecord, RecipientType, Vendor
from marketplace_service.notifications import build_notification_message, generate_whatsapp_link

logging.basicConfig(level=logging.INFO)

TABLES = ("profiles", "vendors", "products", "orders", "order_items", "order_status_history", "notifications")
TIMESTAMPED = ("orders", "vendors", "profiles", "products", "order_items")


class MockDatabase:
    """
    In-memory tables of the mock backend.

    Timestamps are strictly increasing so that `order=created_at.desc`
    reflects insertion order even for rows created within the same microsecond.
    """

    def __init__(self, seed: Optional[Dict[str, List[dict]]] = None, tokens: Optional[Dict[str, str]] = None):
        self.tables: Dict[str, List[dict]] = {name: [] for name in TABLES}
        self.tokens: Dict[str, str] = dict(tokens or {})
        self._last_timestamp = datetime.now(timezone.utc)
        for table, rows in (seed or {}).items():
            for row in rows:
                self.insert(table, dict(row))

    def now(self) -> str:
        current = datetime.now(timezone.utc)
        if current <= self._last_timestamp:
            current = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = current
        return current.isoformat()

    def insert(self, table: str, row: dict) -> dict:
        row.setdefault("id", str(uuid.uuid4()))
        if table in TIMESTAMPED:
            timestamp = self.now()
            row.setdefault("created_at", timestamp)
            if table != "order_items":
                row.setdefault("updated_at", timestamp)
        self.tables[table].append(row)
        return row

    def select(self, table: str, filters: Dict[str, str], order: Optional[str] = None) -> List[dict]:
        rows = [row for row in self.tables[table] if _matches(row, filters)]
        if order:
            column, _, direction = order.partition(".")
            rows = sorted(rows, key=lambda r: _as_text(r.get(column)), reverse=(direction == "desc"))
        return rows

    def find(self, table: str, row_id: str) -> Optional[dict]:
        rows = self.select(table, {"id": f"eq.{row_id}"})
        return rows[0] if rows else None


def _as_text(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _matches(row: dict, filters: Dict[str, str]) -> bool:
    for column, expression in filters.items():
        operator, _, value = expression.partition(".")
        if operator != "eq":
            raise HTTPException(status_code=400, detail=f"Unsupported operator: {operator}")
        if _as_text(row.get(column)) != value:
            return False
    return True


def _filters(request: Request) -> Dict[str, str]:
    return {k: v for k, v in request.query_params.multi_items() if k not in ("select", "order")}


def create_app(seed: Optional[Dict[str, List[dict]]] = None, tokens: Optional[Dict[str, str]] = None) -> FastAPI:
    """
    Builds a mock backend with its own in-memory database.

    Args:
        seed (dict, optional): Initial rows per table name.
        tokens (dict, optional): Access token → user id for the auth endpoint.

    Returns:
        FastAPI: The mock application; its database is available as `app.state.db`.
    """
    app = FastAPI(title="Mock Supabase Backend")
    db = MockDatabase(seed, tokens)
    app.state.db = db

    def _table(name: str) -> List[dict]:
        if name not in db.tables:
            raise HTTPException(status_code=404, detail=f"Relation '{name}' does not exist")
        return db.tables[name]

    @app.get("/rest/v1/{table}")
    def select_rows(table: str, request: Request, order: Optional[str] = None):
        _table(table)
        return db.select(table, _filters(request), order)

    @app.post("/rest/v1/{table}", status_code=201)
    def insert_rows(table: str, payload=Body(...)):
        """
        Inserts one row or a batch of rows.

        Batches are all-or-nothing: a failing scenario rejects the whole batch.
        """
        _table(table)
        rows = payload if isinstance(payload, list) else [payload]

        # Scenario simulation
        if table == "orders" and any("FAIL-ORDER" in str(r.get("vendor_id", "")) for r in rows):
            logging.error("[DB] Simulierter Fehler beim Anlegen einer Bestellung.")
            raise HTTPException(status_code=500, detail="Simulated order insert failure")
        if table == "order_items" and any("FAIL-ITEMS" in str(r.get("product_id", "")) for r in rows):
            logging.error("[DB] Simulierter Fehler beim Anlegen der Bestellpositionen.")
            raise HTTPException(status_code=500, detail="Simulated order item insert failure")

        created = [db.insert(table, dict(row)) for row in rows]
        logging.info(f"[DB] {len(created)} Zeile(n) in '{table}' angelegt.")
        return created

    @app.patch("/rest/v1/{table}")
    def update_rows(table: str, request: Request, changes: dict = Body(...)):
        _table(table)
        rows = db.select(table, _filters(request))
        for row in rows:
            row.update(changes)
            if table in TIMESTAMPED and "updated_at" not in changes and table != "order_items":
                row["updated_at"] = db.now()
        return rows

    @app.delete("/rest/v1/{table}", status_code=204)
    def delete_rows(table: str, request: Request):
        rows = _table(table)
        doomed = db.select(table, _filters(request))
        rows[:] = [row for row in rows if row not in doomed]
        logging.info(f"[DB] {len(doomed)} Zeile(n) aus '{table}' gelöscht.")
        return Response(status_code=204)

    @app.get("/auth/v1/user")
    def current_user(authorization: Optional[str] = Header(default=None)):
        token = authorization.split(" ", 1)[1] if authorization and " " in authorization else None
        user_id = db.tokens.get(token) if token else None
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid JWT")
        return {"id": user_id}

    @app.post("/functions/v1/send-notifications")
    def send_notifications(payload: dict = Body(...)):
        """
        Mimics the `send-notifications` edge function.

        Resolves the order and its vendor, renders the message, records a
        notification row with status "sent" and, for vendor recipients, logs
        the WhatsApp link that would be delivered.

        Raises:
            HTTPException(500): Unknown order, or the FAIL-NOTIFY scenario.
        """
        order_row = db.find("orders", payload.get("orderId", ""))
        if order_row is None:
            raise HTTPException(status_code=500, detail={"error": "Order not found"})
        if "FAIL-NOTIFY" in order_row.get("buyer_name", ""):
            logging.error(f"[FN] Simulierter Fehler beim Versand für {order_row['id']}.")
            raise HTTPException(status_code=500, detail={"error": "Simulated notification failure"})

        vendor_row = db.find("vendors", order_row["vendor_id"])
        if vendor_row is None:
            raise HTTPException(status_code=500, detail={"error": "Vendor not found"})

        order = OrderRecord(**order_row)
        vendor = Vendor(**vendor_row)
        notification_type = NotificationType(payload["type"])
        recipient_type = RecipientType(payload["recipientType"])

        message, recipient_user_id = build_notification_message(notification_type, order, vendor)
        db.insert("notifications", {
            "user_id": recipient_user_id,
            "order_id": order.id,
            "type": notification_type.value,
            "message": message,
            "status": "sent",
            "sent_at": db.now(),
        })

        if recipient_type == RecipientType.VENDOR and vendor.whatsapp_number:
            link = generate_whatsapp_link(vendor.whatsapp_number, message)
            logging.info(f"[FN] WhatsApp-Benachrichtigung an {vendor.whatsapp_number}: {link}")

        return {
            "success": True,
            "message": "Notification sent successfully",
            "orderId": order.id,
            "type": notification_type.value,
        }

    return app


DEMO_SEED = {
    "profiles": [
        {"id": "user-buyer", "name": "Thandi Buyer", "email": "thandi@student.example", "role": "BUYER"},
        {"id": "user-vendor", "name": "Sipho Vendor", "email": "sipho@student.example", "role": "VENDOR"},
    ],
    "vendors": [
        {"id": "vendor-1", "user_id": "user-vendor", "name": "Sipho Vendor", "store_name": "Sipho's Kota",
         "email": "sipho@student.example", "whatsapp_number": "071 234 5678", "verified": True},
    ],
    "products": [
        {"id": "prod-kota", "name": "Kota", "price": "35.00", "image": "", "vendor_id": "vendor-1",
         "available": True, "category_id": "meals"},
    ],
}

app = create_app(DEMO_SEED, tokens={"buyer-token": "user-buyer", "vendor-token": "user-vendor"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=54321)
