"""
Pytest configuration and shared fixtures for the OpsMetrics test suite.

Factories build raw documents in the document store's own key conventions
(``$id``, ``$createdAt``, camelCase attributes) so that every test exercises
the same validation path as production reads.
"""

import os
import tempfile
import uuid as _uuid
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

import pytest

# Set testing environment BEFORE importing app
_test_db_path = os.path.join(
    tempfile.gettempdir(), f"opsmetrics_test_{_uuid.uuid4().hex[:8]}.duckdb"
)
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path


from opsmetrics.engine.assembler import MetricsAssembler
from opsmetrics.models.enums import EntityKind
from opsmetrics.models.filters import CollectionQuery
from opsmetrics.storage.base import CollectionStore, StorageError
from opsmetrics.storage.memory_storage import InMemoryCollectionStore

# Reference instant used across the suite: Tuesday 2026-02-10 12:00 UTC
NOW = datetime(2026, 2, 10, 12, 0, 0)


def _iso(moment: datetime) -> str:
    return moment.isoformat() + "Z"


# ---------------------------------------------------------------------------
# Raw document factories
# ---------------------------------------------------------------------------


def make_store(name: str = "Sillage Plateau", store_id: Optional[str] = None, **overrides) -> dict:
    """Factory function for store documents."""
    doc = {"$id": store_id or f"st_{uuid4().hex[:8]}", "name": name}
    doc.update(overrides)
    return doc


def make_seller(
    name: str = "Awa Ndiaye",
    seller_id: Optional[str] = None,
    store_id: Optional[str] = None,
    **overrides,
) -> dict:
    """Factory function for seller (user) documents."""
    sid = seller_id or f"usr_{uuid4().hex[:8]}"
    doc = {
        "$id": sid,
        "fullName": name,
        "email": f"{sid}@example.com",
        "storeId": store_id,
    }
    doc.update(overrides)
    return doc


def make_client(
    name: str = "Moussa Diop",
    client_id: Optional[str] = None,
    total_spent: float = 0.0,
    last_purchase: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    segment: Optional[str] = "bronze",
    **overrides,
) -> dict:
    """Factory function for client documents."""
    cid = client_id or f"cl_{uuid4().hex[:8]}"
    doc = {
        "$id": cid,
        "fullName": name,
        "email": f"{cid}@example.com",
        "totalSpent": total_spent,
        "loyaltyPoints": 0,
        "segment": segment,
        "lastPurchase": _iso(last_purchase) if last_purchase else None,
        "$createdAt": _iso(created_at or NOW - timedelta(days=400)),
    }
    doc.update(overrides)
    return doc


def make_product(
    name: str = "Parfum Oud 50ml",
    product_id: Optional[str] = None,
    unit_cost: float = 10000.0,
    category_id: Optional[str] = None,
    **overrides,
) -> dict:
    """Factory function for product documents."""
    doc = {
        "$id": product_id or f"prd_{uuid4().hex[:8]}",
        "name": name,
        "unitCost": unit_cost,
        "categoryId": category_id,
    }
    doc.update(overrides)
    return doc


def make_sale(
    amount: float = 100.0,
    store_id: Optional[str] = None,
    seller_id: Optional[str] = None,
    client_id: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
    status: Optional[str] = "completed",
    payment_method: Optional[str] = "cash",
    sale_id: Optional[str] = None,
    **overrides,
) -> dict:
    """Factory function for sale documents (seller stored as ``userId``)."""
    doc = {
        "$id": sale_id or f"sale_{uuid4().hex[:8]}",
        "totalAmount": amount,
        "storeId": store_id,
        "userId": seller_id,
        "clientId": client_id,
        "status": status,
        "paymentMethod": payment_method,
        "saleDate": _iso(occurred_at or NOW - timedelta(hours=1)),
    }
    doc.update(overrides)
    return doc


def make_line_item(
    sale_id: str,
    product_id: str,
    quantity: float = 1,
    unit_price: float = 100.0,
    discount_amount: float = 0.0,
    **overrides,
) -> dict:
    """Factory function for sale line item documents."""
    doc = {
        "$id": f"item_{uuid4().hex[:8]}",
        "saleId": sale_id,
        "productId": product_id,
        "quantity": quantity,
        "unitPrice": unit_price,
        "discountAmount": discount_amount,
    }
    doc.update(overrides)
    return doc


def make_reservation(
    store_id: Optional[str] = None,
    client_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    amount: float = 0.0,
    **overrides,
) -> dict:
    """Factory function for reservation documents."""
    doc = {
        "$id": f"res_{uuid4().hex[:8]}",
        "storeId": store_id,
        "clientId": client_id,
        "totalAmount": amount,
        "$createdAt": _iso(created_at or NOW - timedelta(hours=2)),
    }
    doc.update(overrides)
    return doc


def make_ticket(
    status: Optional[str] = "nouvelle",
    store_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    **overrides,
) -> dict:
    """Factory function for service ticket documents."""
    doc = {
        "$id": f"sav_{uuid4().hex[:8]}",
        "storeId": store_id,
        "status": status,
        "$createdAt": _iso(created_at or NOW - timedelta(hours=3)),
    }
    doc.update(overrides)
    return doc


def make_stock_level(
    product_id: str,
    quantity: float = 10,
    min_quantity: float = 5,
    max_quantity: Optional[float] = 50,
    store_id: Optional[str] = None,
    **overrides,
) -> dict:
    """Factory function for stock level documents."""
    doc = {
        "$id": f"stk_{uuid4().hex[:8]}",
        "productId": product_id,
        "storeId": store_id,
        "quantity": quantity,
        "minQuantity": min_quantity,
        "maxQuantity": max_quantity,
    }
    doc.update(overrides)
    return doc


def make_stock_movement(
    product_id: str,
    quantity: float = 1,
    created_at: Optional[datetime] = None,
    **overrides,
) -> dict:
    """Factory function for stock movement documents."""
    doc = {
        "$id": f"mvt_{uuid4().hex[:8]}",
        "productId": product_id,
        "quantity": quantity,
        "$createdAt": _iso(created_at or NOW - timedelta(days=1)),
    }
    doc.update(overrides)
    return doc


# ---------------------------------------------------------------------------
# Store doubles
# ---------------------------------------------------------------------------


class FailingStore(CollectionStore):
    """Delegates to an inner store but fails reads of the given kinds."""

    def __init__(self, inner: CollectionStore, failing: set):
        self.inner = inner
        self.failing = set(failing)
        self.calls: list[EntityKind] = []

    def fetch(self, kind: EntityKind, query: Optional[CollectionQuery] = None) -> list[dict]:
        self.calls.append(kind)
        if kind in self.failing:
            raise StorageError(f"simulated outage for {kind.value}")
        return self.inner.fetch(kind, query)

    def write_documents(self, kind: EntityKind, documents: list[dict]) -> int:
        return self.inner.write_documents(kind, documents)

    def clear(self, kind: Optional[EntityKind] = None) -> None:
        self.inner.clear(kind)


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def memory_store():
    """Fresh empty in-memory collection store for each test."""
    return InMemoryCollectionStore()


@pytest.fixture
def sample_documents() -> dict:
    """
    A small but complete back office: three stores across two brands, three
    sellers, clients, products, sales in the last week and supporting
    reservations, tickets and stock.
    """
    plateau = make_store("Sillage Plateau", store_id="st_plateau")
    almadies = make_store("Sillage Almadies", store_id="st_almadies")
    sea = make_store("Gemaber Sea", store_id="st_sea")

    seller_a = make_seller("Seller A", seller_id="usr_a", store_id="st_plateau")
    seller_b = make_seller("Seller B", seller_id="usr_b", store_id="st_almadies")
    seller_c = make_seller("Seller C", seller_id="usr_c", store_id="st_sea")

    clients = [
        make_client("Client One", client_id="cl_1", total_spent=500000,
                    last_purchase=NOW - timedelta(days=2), segment="premium"),
        make_client("Client Two", client_id="cl_2", total_spent=20000,
                    last_purchase=NOW - timedelta(days=300), segment="silver"),
        make_client("Client Three", client_id="cl_3", total_spent=0,
                    created_at=NOW - timedelta(days=1), segment=None),
    ]

    oud = make_product("Parfum Oud", product_id="prd_oud", unit_cost=20, category_id="cat_parfum")
    musc = make_product("Musc Blanc", product_id="prd_musc", unit_cost=5, category_id="cat_parfum")

    sales = [
        make_sale(100, "st_plateau", "usr_a", "cl_1", NOW - timedelta(days=1), sale_id="sale_1"),
        make_sale(50, "st_almadies", "usr_b", "cl_2", NOW - timedelta(days=2), sale_id="sale_2",
                  payment_method="card"),
        make_sale(30, "st_sea", "usr_c", "cl_1", NOW - timedelta(days=3), sale_id="sale_3",
                  status="pending", payment_method=None),
    ]
    items = [
        make_line_item("sale_1", "prd_oud", quantity=2, unit_price=40),
        make_line_item("sale_1", "prd_musc", quantity=1, unit_price=20),
        make_line_item("sale_2", "prd_musc", quantity=5, unit_price=10),
        make_line_item("sale_3", "prd_oud", quantity=1, unit_price=30),
    ]

    return {
        EntityKind.STORES: [plateau, almadies, sea],
        EntityKind.SELLERS: [seller_a, seller_b, seller_c],
        EntityKind.CLIENTS: clients,
        EntityKind.PRODUCTS: [oud, musc],
        EntityKind.CATEGORIES: [{"$id": "cat_parfum", "name": "Parfums"}],
        EntityKind.SALES: sales,
        EntityKind.LINE_ITEMS: items,
        EntityKind.RESERVATIONS: [
            make_reservation("st_plateau", "cl_1"),
            make_reservation("st_sea", "cl_2"),
        ],
        EntityKind.SERVICE_TICKETS: [
            make_ticket("Terminée", "st_plateau"),
            make_ticket("en cours", "st_sea"),
        ],
        EntityKind.STOCK_LEVELS: [
            make_stock_level("prd_oud", quantity=10, min_quantity=5, max_quantity=50),
            make_stock_level("prd_musc", quantity=0),
        ],
        EntityKind.STOCK_MOVEMENTS: [
            make_stock_movement("prd_oud", quantity=3, created_at=NOW - timedelta(days=30)),
            make_stock_movement("prd_musc", quantity=7, created_at=NOW - timedelta(days=1)),
        ],
    }


@pytest.fixture
def populated_store(sample_documents):
    """In-memory store loaded with ``sample_documents``."""
    return InMemoryCollectionStore(sample_documents)


@pytest.fixture
def assembler(populated_store):
    """Assembler with default limits over the populated store."""
    return MetricsAssembler(store=populated_store)
