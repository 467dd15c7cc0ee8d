"""
Golden Path (End-to-End) Tests for the OpsMetrics engine.

These tests verify the documented scenarios with fixed datasets, then run
complete snapshot builds over a fixed back office and check every section
against hand-computed values.

Requirements:
- End-to-end scenarios with fixed datasets
- Comprehensive validation
- Clear documentation
"""

import asyncio
import json
from datetime import timedelta

from opsmetrics.engine.assembler import MetricsAssembler
from opsmetrics.engine.ranker import top_n
from opsmetrics.engine.status_normalizer import StatusNormalizer
from opsmetrics.engine.store_groups import aggregate_groups, group_stores
from opsmetrics.models.enums import EntityKind, Granularity
from opsmetrics.models.filters import SnapshotFilters
from opsmetrics.models.records import SaleRecord, Store
from opsmetrics.models.snapshot import OperationalSnapshot
from opsmetrics.services.snapshot_service import SnapshotService
from opsmetrics.storage.duckdb_storage import DuckDBCollectionStore
from tests.conftest import NOW, FailingStore, make_sale, make_store


# ============================================================================
# Scenario 1: Store group roll-up
# ============================================================================


def test_golden_store_groups_sillage_and_gemaber():
    """
    Golden path: three stores, two brands.

    Sales of 100 and 50 in two Sillage stores and 30 in a Gemaber store roll
    up to Sillage 150 and Gemaber 30.
    """
    stores = [
        Store.model_validate(make_store("Sillage Plateau", store_id="st_1")),
        Store.model_validate(make_store("Sillage Almadies", store_id="st_2")),
        Store.model_validate(make_store("Gemaber Sea", store_id="st_3")),
    ]
    sales = [
        SaleRecord.model_validate(make_sale(amount=100, store_id="st_1")),
        SaleRecord.model_validate(make_sale(amount=50, store_id="st_2")),
        SaleRecord.model_validate(make_sale(amount=30, store_id="st_3")),
    ]

    groups = aggregate_groups(group_stores(stores), sales)

    assert {g.group_name: g.aggregate_revenue for g in groups} == {"Sillage": 150, "Gemaber": 30}
    assert [g.group_name for g in groups] == ["Sillage", "Gemaber"]


# ============================================================================
# Scenario 2: Ticket status normalization
# ============================================================================


def test_golden_ticket_status_counts():
    """
    Golden path: French free-text statuses plus one unknown value.

    "bogus" is counted as in progress alongside "en cours".
    """
    normalizer = StatusNormalizer()

    result = normalizer.breakdown(["Terminée", "annulee", "en cours", "nouvelle", "bogus"])

    assert result.resolved == 1
    assert result.cancelled == 1
    assert result.in_progress == 2
    assert result.pending == 1
    assert result.total == 5
    assert normalizer.unrecognized == 1


# ============================================================================
# Scenario 3: Seller ranking
# ============================================================================


def test_golden_top_two_sellers():
    """
    Golden path: five sales across three sellers.

    Revenues [40, 40, 20, 10, 10] for sellers A, A, B, C, C give the top two
    [A 80, B 20]; B wins the tie with C because it is seen first.
    """
    sales = [
        SaleRecord.model_validate(make_sale(amount=amount, seller_id=seller))
        for amount, seller in [(40, "A"), (40, "A"), (20, "B"), (10, "C"), (10, "C")]
    ]

    ranked = top_n(sales, lambda s: s.seller_id, lambda s: s.total_amount, 2)

    assert [(e.key, e.metric_value) for e in ranked] == [("A", 80), ("B", 20)]


# ============================================================================
# Scenario 4: Full snapshot over the sample back office
# ============================================================================


def test_golden_full_snapshot(assembler):
    """
    Golden path: every section of a 7-day snapshot over the sample data.
    """
    snapshot = asyncio.run(assembler.build_snapshot(SnapshotFilters(period="7d"), now=NOW))

    # Window and metadata
    assert snapshot.window.start == NOW - timedelta(days=7)
    assert snapshot.window.end == NOW
    assert snapshot.granularity == Granularity.DAY
    assert snapshot.filters == {"period": "7d"}
    assert not snapshot.is_degraded

    # Overview
    overview = snapshot.overview
    assert (overview.total_revenue, overview.total_sales, overview.average_basket) == (180, 3, 60)
    assert overview.units_sold == 9
    assert overview.new_clients == 1

    # Groups, rankings and breakdowns
    assert [(g.group_name, g.aggregate_revenue, g.aggregate_count) for g in snapshot.store_groups] == [
        ("Sillage", 150, 2),
        ("Gemaber", 30, 1),
    ]
    assert [e.label for e in snapshot.sellers.top] == ["Seller A", "Seller B", "Seller C"]
    assert [e.secondary_metric for e in snapshot.top_products] == [3, 6]
    assert {e.key: e.label for e in snapshot.sales_by_status} == {
        "pending": "En attente",
        "completed": "Terminée",
    }
    assert {e.key: e.label for e in snapshot.sales_by_payment_method} == {
        "unspecified": "Non spécifié",
        "card": "Carte bancaire",
        "cash": "Espèces",
    }

    # Trends
    assert [b.label for b in snapshot.revenue_trend] == ["7 févr.", "8 févr.", "9 févr."]
    assert [(b.key, b.count, b.revenue) for b in snapshot.ticket_trend] == [("2026-02-10", 2, 0.0)]

    # Clients and stock
    segments = {s.segment.value: s.count for s in snapshot.clients.segmentation}
    assert segments == {"premium": 1, "gold": 0, "silver": 1, "bronze": 0}
    assert snapshot.clients.average_lifetime_value == (500000 + 20000) / 3
    assert snapshot.clients.risk_clients == ()
    assert snapshot.stock.inventory_turnover == 1.0
    assert [e.key for e in snapshot.stock.top_moving] == ["prd_musc", "prd_oud"]
    slow = snapshot.stock.slow_moving[0]
    assert (slow.product_name, slow.days_without_movement, slow.value) == ("Parfum Oud", 30, 200)

    # Data quality
    quality = snapshot.data_quality
    assert quality.rejected_records == {}
    assert quality.unresolved_references == {}
    assert quality.fallback_seller_assignments == 0
    assert quality.unrecognized_statuses == 0
    assert quality.orphan_line_items == 0


def test_golden_snapshot_json_contract(assembler):
    """
    Golden path: the snapshot serializes to plain JSON with stable field names
    and validates back into an identical snapshot.
    """
    snapshot = asyncio.run(assembler.build_snapshot(SnapshotFilters(period="30d"), now=NOW))

    payload = json.loads(snapshot.model_dump_json())

    assert payload["is_degraded"] is False
    assert payload["window"]["preset"] == "30d"
    assert payload["stock"]["slow_moving"][0]["category"] == "Parfums"
    assert {
        "overview",
        "store_groups",
        "top_products",
        "sellers",
        "revenue_trend",
        "ticket_statuses",
        "data_quality",
        "failed_collections",
    } <= set(payload)

    payload.pop("is_degraded")
    assert OperationalSnapshot.model_validate(payload).model_dump() == snapshot.model_dump()


# ============================================================================
# Scenario 5: Degraded builds
# ============================================================================


def test_golden_degraded_snapshot_still_builds(populated_store):
    """
    Golden path: every lookup collection is down.

    Sales still total correctly; names fall back to placeholders and sellers
    cannot be attributed, so seller rankings are empty.
    """
    lookups = {
        EntityKind.STORES,
        EntityKind.SELLERS,
        EntityKind.CLIENTS,
        EntityKind.PRODUCTS,
        EntityKind.CATEGORIES,
    }
    assembler = MetricsAssembler(store=FailingStore(populated_store, lookups))

    snapshot = asyncio.run(assembler.build_snapshot(SnapshotFilters(period="7d"), now=NOW))

    assert snapshot.is_degraded
    assert set(snapshot.failed_collections) == lookups
    assert snapshot.failed_sections == ()
    assert snapshot.overview.total_revenue == 180
    assert snapshot.store_groups == ()
    assert snapshot.sellers.top == ()
    assert snapshot.recent_sales[0].client_name == "Unknown client"
    assert snapshot.top_products[0].label == "Unknown product"
    assert snapshot.data_quality.unresolved_references["store"] == 3
    assert snapshot.stock.total_value == 0


# ============================================================================
# Scenario 6: DuckDB-backed service
# ============================================================================


def test_golden_duckdb_service_pipeline(sample_documents, tmp_path):
    """
    Golden path: documents persisted in DuckDB, snapshot served through the
    latest-wins service, filtered to one store.
    """
    store = DuckDBCollectionStore(db_path=str(tmp_path / "golden.duckdb"))
    try:
        for kind, documents in sample_documents.items():
            store.write_documents(kind, documents)

        service = SnapshotService(MetricsAssembler(store=store))
        snapshot = asyncio.run(
            service.refresh(SnapshotFilters(period="7d", store_id="st_almadies"), now=NOW)
        )
    finally:
        store.close()

    assert service.latest is snapshot
    assert snapshot.window.start == NOW - timedelta(days=7)
    assert snapshot.overview.total_revenue == 50
    assert snapshot.overview.units_sold == 5
    assert [e.key for e in snapshot.sellers.top] == ["usr_b"]
    assert snapshot.overview.total_service_tickets == 0
    # Stock levels without a store never match a store filter
    assert snapshot.stock.out_of_stock_count == 0
    assert snapshot.stock.top_moving[0].key == "prd_musc"
