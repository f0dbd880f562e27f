"""
Shared test fixtures for the marketplace service test suite.

Every test gets a fresh mock backend (mock_services.mock_supabase) and clients
bound to it through FastAPI's TestClient.
"""

import copy
import os
from decimal import Decimal

os.environ.setdefault("MARKETPLACE_LOG_FILE", "")

import pytest
from fastapi.testclient import TestClient

from marketplace_service import main
from marketplace_service.access import ADMIN_EMAIL
from marketplace_service.cart import Cart, CartStore
from marketplace_service.clients import AuthClient, DataStoreClient, NotificationClient
from marketplace_service.models import CheckoutDetails, Product, Profile, UserRole
from marketplace_service.notifications import NotificationDispatcher
from mock_services.mock_supabase import create_app


SEED = {
    "profiles": [
        {"id": "user-buyer", "name": "Thandi", "email": "thandi@student.example", "role": "BUYER"},
        {"id": "user-buyer-2", "name": "Lerato", "email": "lerato@student.example", "role": "BUYER"},
        {"id": "user-vendor-1", "name": "Sipho", "email": "sipho@student.example", "role": "VENDOR"},
        {"id": "user-vendor-2", "name": "Naledi", "email": "naledi@student.example", "role": "VENDOR"},
        {"id": "user-admin", "name": "Admin", "email": ADMIN_EMAIL, "role": "ADMIN"},
        {"id": "user-other-admin", "name": "Other", "email": "other@student.example", "role": "ADMIN"},
    ],
    "vendors": [
        {"id": "V1", "user_id": "user-vendor-1", "name": "Sipho", "store_name": "Sipho's Kota",
         "email": "sipho@student.example", "whatsapp_number": "071 234 5678", "verified": True},
        {"id": "V2", "user_id": "user-vendor-2", "name": "Naledi", "store_name": None,
         "email": "naledi@student.example", "whatsapp_number": "+27 82 000 1111", "verified": True},
        {"id": "V3", "user_id": "user-applicant", "name": "Applicant",
         "email": "applicant@student.example", "whatsapp_number": "0830000000", "verified": False},
    ],
    "products": [
        {"id": "productA", "name": "Kota", "price": "10", "image": "", "vendor_id": "V1",
         "available": True, "category_id": "meals"},
        {"id": "productB", "name": "Vetkoek", "price": "5", "image": "", "vendor_id": "V2",
         "available": True, "category_id": "snacks"},
        {"id": "productC", "name": "Chips", "price": "7.50", "image": "", "vendor_id": "V1",
         "available": True, "category_id": "snacks"},
        {"id": "sold-out", "name": "Bunny Chow", "price": "45", "image": "", "vendor_id": "V1",
         "available": False, "category_id": "meals"},
    ],
}

TOKENS = {
    "buyer-token": "user-buyer",
    "buyer2-token": "user-buyer-2",
    "vendor1-token": "user-vendor-1",
    "vendor2-token": "user-vendor-2",
    "admin-token": "user-admin",
    "other-admin-token": "user-other-admin",
    "no-profile-token": "user-without-profile",
}


# ============================================================================
# Helpers
# ============================================================================


def make_product(product_id="productA", vendor_id="V1", price="10", name=None, available=True) -> Product:
    return Product(
        id=product_id,
        name=name or product_id,
        price=Decimal(price),
        vendor_id=vendor_id,
        available=available,
    )


def make_details(**overrides) -> CheckoutDetails:
    values = {
        "buyer_name": "Thandi",
        "buyer_phone": "0712345678",
        "delivery_location": "Res Block C, Room 12",
        "payment_method": "Card",
    }
    values.update(overrides)
    return CheckoutDetails(**values)


def make_profile(user_id="user-buyer", role=UserRole.BUYER, email=None) -> Profile:
    return Profile(id=user_id, name=user_id, email=email or f"{user_id}@student.example", role=role)


def auth(token: str, session: str = "session-1") -> dict:
    return {"Authorization": f"Bearer {token}", "X-Session-Id": session}


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def backend():
    return create_app(copy.deepcopy(SEED), TOKENS)


@pytest.fixture
def db(backend):
    return backend.state.db


@pytest.fixture
def backend_client(backend):
    with TestClient(backend) as client:
        yield client


@pytest.fixture
def store(backend_client):
    return DataStoreClient(client=backend_client)


@pytest.fixture
def dispatcher(backend_client):
    return NotificationDispatcher(NotificationClient(client=backend_client))


@pytest.fixture
def cart():
    return Cart("session-1")


@pytest.fixture
def seed_order(db):
    """Inserts an order row directly into the mock backend and returns it."""

    def _seed(status="pending", vendor_id="V1", user_id="user-buyer", total="20", **extra):
        row = {
            "buyer_name": "Thandi",
            "buyer_phone": "0712345678",
            "delivery_location": "Res Block C",
            "payment_method": "Card",
            "payment_amount": total,
            "total": total,
            "vendor_id": vendor_id,
            "user_id": user_id,
            "status": status,
        }
        row.update(extra)
        return db.insert("orders", row)

    return _seed


@pytest.fixture
def api(backend_client, store, dispatcher):
    main.app.dependency_overrides[main.get_data_store] = lambda: store
    main.app.dependency_overrides[main.get_auth_client] = lambda: AuthClient(client=backend_client)
    main.app.dependency_overrides[main.get_dispatcher] = lambda: dispatcher
    main.app.state.carts = CartStore()
    with TestClient(main.app) as client:
        yield client
    main.app.dependency_overrides.clear()
