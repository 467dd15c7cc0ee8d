"""
Pydantic v2 data models for the operational metrics engine.

Model Organization:
    - enums: Closed vocabularies (entity kinds, canonical statuses, periods)
    - records: Raw entities read from the document store
    - filters: Snapshot filters, resolved time window, collection queries
    - snapshot: Derived sections and the root OperationalSnapshot

Usage:
    >>> from opsmetrics.models import SaleRecord, SnapshotFilters
    >>> sale = SaleRecord.model_validate(
    ...     {"$id": "S-1", "storeId": "st-1", "totalAmount": 100, "$createdAt": "2026-02-10T14:30:00Z"}
    ... )
"""

from .enums import (
    CanonicalStatus,
    ClientSegment,
    EntityKind,
    Granularity,
    PeriodPreset,
    StockStatus,
)
from .filters import CollectionQuery, SnapshotFilters, TimeWindow
from .records import (
    RECORD_MODELS,
    Category,
    Client,
    LineItem,
    Product,
    RawRecord,
    Reservation,
    SaleRecord,
    Seller,
    ServiceTicket,
    StockLevel,
    StockMovement,
    Store,
)
from .snapshot import (
    SNAPSHOT_SCHEMA_VERSION,
    BreakdownEntry,
    ClientAnalytics,
    ClientRiskEntry,
    DataQualityReport,
    OperationalSnapshot,
    OverviewTotals,
    RankedEntry,
    RecentSale,
    RecentSaleProduct,
    SegmentStats,
    SellerRankings,
    SlowMovingProduct,
    StockAnalytics,
    StoreGroup,
    StorePerformance,
    TicketStatusBreakdown,
    TimeBucket,
)

__all__ = [
    # Enumerations
    "CanonicalStatus",
    "ClientSegment",
    "EntityKind",
    "Granularity",
    "PeriodPreset",
    "StockStatus",
    # Filters
    "CollectionQuery",
    "SnapshotFilters",
    "TimeWindow",
    # Raw records
    "RECORD_MODELS",
    "Category",
    "Client",
    "LineItem",
    "Product",
    "RawRecord",
    "Reservation",
    "SaleRecord",
    "Seller",
    "ServiceTicket",
    "StockLevel",
    "StockMovement",
    "Store",
    # Snapshot
    "SNAPSHOT_SCHEMA_VERSION",
    "BreakdownEntry",
    "ClientAnalytics",
    "ClientRiskEntry",
    "DataQualityReport",
    "OperationalSnapshot",
    "OverviewTotals",
    "RankedEntry",
    "RecentSale",
    "RecentSaleProduct",
    "SegmentStats",
    "SellerRankings",
    "SlowMovingProduct",
    "StockAnalytics",
    "StoreGroup",
    "StorePerformance",
    "TicketStatusBreakdown",
    "TimeBucket",
]
