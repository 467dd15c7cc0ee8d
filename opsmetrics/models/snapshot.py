"""
Derived analytics models and the root ``OperationalSnapshot``.

Everything in this module is computed, never stored. The snapshot is the
sole output contract of the engine: a frozen, JSON-serializable structure
with stable snake_case field names that a UI or report layer can consume
without knowing how it was computed.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .enums import CanonicalStatus, ClientSegment, EntityKind, Granularity
from .filters import TimeWindow

SNAPSHOT_SCHEMA_VERSION = "snapshot_v1"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class TimeBucket(FrozenModel):
    """
    One period of a trend series.

    ``key`` is the canonical sort key (``YYYY-MM-DD`` for days and for the
    Monday of a week, ``YYYY-MM`` for months); ``label`` is for display.
    Bucket bounds are clamped to the reporting window.
    """

    key: str
    label: str
    start_inclusive: datetime
    end_exclusive: datetime
    count: int = 0
    revenue: float = 0.0


class RankedEntry(FrozenModel):
    """One row of a ranking, ordered by non-increasing (or non-decreasing) metric."""

    key: str
    label: str
    metric_value: float
    secondary_metric: float = 0.0


class StoreGroup(FrozenModel):
    """
    Brand-level roll-up of stores.

    Invariant: ``aggregate_revenue`` equals the sum of ``total_amount`` over
    the sales whose ``store_id`` is in ``member_store_ids``.
    """

    group_name: str
    member_store_ids: tuple[str, ...] = ()
    aggregate_revenue: float = 0.0
    aggregate_count: int = 0
    reservation_count: int = 0


class OverviewTotals(FrozenModel):
    total_revenue: float = 0.0
    total_sales: int = 0
    average_basket: float = 0.0
    units_sold: float = 0.0
    new_clients: int = 0
    total_reservations: int = 0
    total_service_tickets: int = 0


class TicketStatusBreakdown(FrozenModel):
    """Service ticket counts per canonical status."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    resolved: int = 0
    cancelled: int = 0

    def as_counts(self) -> dict[CanonicalStatus, int]:
        return {
            CanonicalStatus.PENDING: self.pending,
            CanonicalStatus.IN_PROGRESS: self.in_progress,
            CanonicalStatus.RESOLVED: self.resolved,
            CanonicalStatus.CANCELLED: self.cancelled,
        }


class BreakdownEntry(FrozenModel):
    """Count and revenue for one value of a categorical sale attribute."""

    key: str
    label: str
    count: int = 0
    revenue: float = 0.0


class StorePerformance(FrozenModel):
    store_id: str
    store_name: str
    sales_count: int = 0
    revenue: float = 0.0
    average_ticket: float = 0.0


class SellerRankings(FrozenModel):
    top: tuple[RankedEntry, ...] = ()
    bottom: tuple[RankedEntry, ...] = ()


class RecentSaleProduct(FrozenModel):
    name: str
    quantity: float = 0


class RecentSale(FrozenModel):
    sale_id: str
    occurred_at: datetime
    client_name: str
    client_email: str
    store_name: str
    seller_name: str
    seller_email: str
    amount: float = 0.0
    status: str = "pending"
    products: tuple[RecentSaleProduct, ...] = ()


class SegmentStats(FrozenModel):
    segment: ClientSegment
    count: int = 0
    revenue: float = 0.0


class ClientRiskEntry(FrozenModel):
    client_id: str
    name: str
    total_spent: float = 0.0
    last_purchase: Optional[datetime] = None
    days_since_purchase: Optional[int] = None


class ClientAnalytics(FrozenModel):
    total_clients: int = 0
    new_clients: int = 0
    recent_clients: int = 0
    average_lifetime_value: float = 0.0
    segmentation: tuple[SegmentStats, ...] = ()
    top_clients: tuple[RankedEntry, ...] = ()
    risk_clients: tuple[ClientRiskEntry, ...] = ()


class SlowMovingProduct(FrozenModel):
    product_id: str
    product_name: str
    category: str
    days_without_movement: int
    quantity: float = 0
    value: float = 0.0


class StockAnalytics(FrozenModel):
    total_value: float = 0.0
    out_of_stock_count: int = 0
    low_stock_count: int = 0
    normal_stock_count: int = 0
    excess_stock_count: int = 0
    inventory_turnover: float = 0.0
    top_moving: tuple[RankedEntry, ...] = ()
    slow_moving: tuple[SlowMovingProduct, ...] = ()


class DataQualityReport(FrozenModel):
    """
    Counters of every local recovery the engine performed.

    Attributes:
        rejected_records: Documents dropped because they failed validation, per kind
        unresolved_references: Distinct foreign keys that did not resolve, per reference kind
        fallback_seller_assignments: Sales attributed to the first known seller
        unrecognized_statuses: Ticket statuses that matched no keyword
        orphan_line_items: Line items without a sale reference
    """

    rejected_records: dict[str, int] = Field(default_factory=dict)
    unresolved_references: dict[str, int] = Field(default_factory=dict)
    fallback_seller_assignments: int = 0
    unrecognized_statuses: int = 0
    orphan_line_items: int = 0


class OperationalSnapshot(FrozenModel):
    """
    Point-in-time analytics snapshot of the back office.

    Created fresh on every build and never mutated afterwards. Collections
    are fetched independently, so the snapshot is best-effort: it carries no
    cross-collection transactional guarantee.

    Attributes:
        generated_at: Build completion time (naive UTC)
        window: Resolved reporting window
        filters: Applied caller filters
        granularity: Granularity of both trend series
        overview: Scalar totals
        store_groups: Brand-level roll-ups in first-encounter order
        top_products: Products ranked by line revenue
        sellers: Top and bottom sellers by revenue
        store_performance: Individual stores ranked by revenue
        sales_by_status: Sale counts per raw status
        sales_by_payment_method: Sale counts and revenue per payment method
        ticket_statuses: Service tickets per canonical status
        revenue_trend: Sales bucketed by time
        ticket_trend: Service tickets bucketed by time
        recent_sales: Most recent sales with resolved references
        clients: Client analytics
        stock: Stock analytics
        data_quality: Local recovery counters
        failed_collections: Entity kinds whose fetch failed (rows replaced by [])
        failed_sections: Derived sections replaced by their empty default
    """

    schema_version: str = SNAPSHOT_SCHEMA_VERSION
    generated_at: datetime
    window: TimeWindow
    filters: dict = Field(default_factory=dict)
    granularity: Granularity
    overview: OverviewTotals = Field(default_factory=OverviewTotals)
    store_groups: tuple[StoreGroup, ...] = ()
    top_products: tuple[RankedEntry, ...] = ()
    sellers: SellerRankings = Field(default_factory=SellerRankings)
    store_performance: tuple[StorePerformance, ...] = ()
    sales_by_status: tuple[BreakdownEntry, ...] = ()
    sales_by_payment_method: tuple[BreakdownEntry, ...] = ()
    ticket_statuses: TicketStatusBreakdown = Field(default_factory=TicketStatusBreakdown)
    revenue_trend: tuple[TimeBucket, ...] = ()
    ticket_trend: tuple[TimeBucket, ...] = ()
    recent_sales: tuple[RecentSale, ...] = ()
    clients: ClientAnalytics = Field(default_factory=ClientAnalytics)
    stock: StockAnalytics = Field(default_factory=StockAnalytics)
    data_quality: DataQualityReport = Field(default_factory=DataQualityReport)
    failed_collections: tuple[EntityKind, ...] = ()
    failed_sections: tuple[str, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_degraded(self) -> bool:
        """True when part of the snapshot was built from substituted data."""
        return bool(self.failed_collections or self.failed_sections)
