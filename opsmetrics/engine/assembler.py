"""
Metrics Assembler - builds one immutable OperationalSnapshot.

Build pipeline:
1. Resolve the reporting window from the caller filters
2. Fetch every entity kind concurrently through the collection access port
3. Validate raw documents into typed records, dropping invalid ones
4. Resolve references, group stores, normalize ticket statuses
5. Bucket sales and tickets over time, rank sellers, products, clients,
   stores and stock items
6. Assemble the frozen snapshot

The build is best-effort. A failing fetch becomes an empty collection and
is reported in ``failed_collections``; a failing derived section becomes
its empty default and is reported in ``failed_sections``. Collections are
read at slightly different instants, so the snapshot carries no
cross-collection consistency guarantee.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError

from opsmetrics.config import Settings, get_settings
from opsmetrics.models.enums import EntityKind
from opsmetrics.models.filters import CollectionQuery, SnapshotFilters, TimeWindow
from opsmetrics.models.records import (
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
    to_naive_utc,
)
from opsmetrics.models.snapshot import (
    BreakdownEntry,
    ClientAnalytics,
    DataQualityReport,
    OperationalSnapshot,
    OverviewTotals,
    RankedEntry,
    RecentSale,
    RecentSaleProduct,
    SellerRankings,
    StockAnalytics,
    StorePerformance,
    TicketStatusBreakdown,
    TimeBucket,
)
from opsmetrics.storage.base import CollectionStore, document_id

from .client_analytics import ClientAnalyzer
from .periods import resolve_window
from .ranker import aggregate, top_n
from .reference_resolver import (
    UNKNOWN_SELLER,
    UNKNOWN_STORE,
    Lookups,
    ReferenceResolver,
    ResolvedSale,
)
from .status_normalizer import StatusNormalizer
from .stock_analytics import StockAnalyzer
from .store_groups import aggregate_groups, group_stores
from .time_bucketer import TimeBucketer, select_granularity

logger = structlog.get_logger()

T = TypeVar("T")

# Sales without a status are counted as pending
DEFAULT_SALE_STATUS = "pending"
UNSPECIFIED_PAYMENT = "unspecified"

SALE_STATUS_LABELS = {
    "completed": "Terminée",
    "pending": "En attente",
    "cancelled": "Annulée",
}

PAYMENT_METHOD_LABELS = {
    "cash": "Espèces",
    "especes": "Espèces",
    "card": "Carte bancaire",
    "carte": "Carte bancaire",
    "mobile": "Paiement mobile",
    "wave": "Wave",
    "orange_money": "Orange Money",
    "cheque": "Chèque",
    "cheque_cadeau": "Chèque cadeau",
    "virement": "Virement",
    UNSPECIFIED_PAYMENT: "Non spécifié",
}


class MetricsAssembler:
    """
    Orchestrates one snapshot build over a collection store.

    Attributes:
        store: Collection access port
        bucketer: Time bucketer for the revenue and ticket trends
        client_analyzer: Client analytics section builder
        stock_analyzer: Stock analytics section builder
        seller_fallback_to_first: Attribute unresolved sellers to the first seller

    Example:
        >>> assembler = MetricsAssembler(store=InMemoryCollectionStore(documents))
        >>> snapshot = asyncio.run(assembler.build_snapshot(SnapshotFilters(period="30d")))
        >>> snapshot.overview.total_revenue
    """

    def __init__(
        self,
        store: CollectionStore,
        top_sellers_limit: int = 3,
        top_products_limit: int = 5,
        top_stores_limit: int = 5,
        recent_sales_limit: int = 3,
        seller_fallback_to_first: bool = True,
        bucketer: Optional[TimeBucketer] = None,
        client_analyzer: Optional[ClientAnalyzer] = None,
        stock_analyzer: Optional[StockAnalyzer] = None,
    ):
        self.store = store
        self.top_sellers_limit = top_sellers_limit
        self.top_products_limit = top_products_limit
        self.top_stores_limit = top_stores_limit
        self.recent_sales_limit = recent_sales_limit
        self.seller_fallback_to_first = seller_fallback_to_first
        self.bucketer = bucketer or TimeBucketer()
        self.client_analyzer = client_analyzer or ClientAnalyzer()
        self.stock_analyzer = stock_analyzer or StockAnalyzer()

    @classmethod
    def from_settings(
        cls, store: CollectionStore, settings: Optional[Settings] = None
    ) -> "MetricsAssembler":
        """Build an assembler with limits and thresholds taken from settings."""
        settings = settings or get_settings()
        return cls(
            store=store,
            top_sellers_limit=settings.top_sellers_limit,
            top_products_limit=settings.top_products_limit,
            top_stores_limit=settings.top_stores_limit,
            recent_sales_limit=settings.recent_sales_limit,
            seller_fallback_to_first=settings.seller_fallback_to_first,
            bucketer=TimeBucketer(locale=settings.bucket_label_locale),
            client_analyzer=ClientAnalyzer(
                top_clients_limit=settings.top_clients_limit,
                risk_clients_limit=settings.risk_clients_limit,
                inactive_months=settings.risk_inactive_months,
                spend_ceiling=settings.risk_spend_ceiling,
                no_purchase_spend_ceiling=settings.risk_no_purchase_spend_ceiling,
                recent_months=settings.recent_client_months,
            ),
            stock_analyzer=StockAnalyzer(
                top_moving_limit=settings.top_moving_limit,
                slow_moving_limit=settings.slow_moving_limit,
                slow_moving_min_days=settings.slow_moving_min_days,
            ),
        )

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    @staticmethod
    def build_queries(
        filters: SnapshotFilters, window: TimeWindow
    ) -> dict[EntityKind, CollectionQuery]:
        """
        Per-kind queries for one build.

        Sales, reservations and tickets are restricted to the window and the
        store; the client filter applies to sales and reservations and the
        status filter to sales. Lookup collections are read unfiltered.
        """
        sale_equals = {}
        if filters.client_id is not None:
            sale_equals["clientId"] = filters.client_id
        if filters.status is not None:
            sale_equals["status"] = filters.status

        reservation_equals = {}
        if filters.client_id is not None:
            reservation_equals["clientId"] = filters.client_id

        queries = {kind: CollectionQuery() for kind in EntityKind}
        queries[EntityKind.SALES] = CollectionQuery(
            start=window.start, end=window.end, store_id=filters.store_id, equals=sale_equals
        )
        queries[EntityKind.RESERVATIONS] = CollectionQuery(
            start=window.start,
            end=window.end,
            store_id=filters.store_id,
            equals=reservation_equals,
        )
        queries[EntityKind.SERVICE_TICKETS] = CollectionQuery(
            start=window.start, end=window.end, store_id=filters.store_id
        )
        queries[EntityKind.STOCK_LEVELS] = CollectionQuery(store_id=filters.store_id)
        return queries

    async def fetch_all(
        self, queries: dict[EntityKind, CollectionQuery]
    ) -> tuple[dict[EntityKind, list[dict]], list[EntityKind]]:
        """
        Fetch every kind concurrently and wait until all have settled.

        Returns:
            (documents per kind, kinds whose fetch failed)
        """
        kinds = list(queries)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.store.fetch, kind, queries[kind]) for kind in kinds),
            return_exceptions=True,
        )

        documents: dict[EntityKind, list[dict]] = {}
        failed: list[EntityKind] = []
        for kind, result in zip(kinds, results):
            if isinstance(result, Exception):
                logger.warning(
                    "collection_fetch_failed",
                    kind=kind.value,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                documents[kind] = []
                failed.append(kind)
            elif isinstance(result, BaseException):
                raise result
            else:
                documents[kind] = result

        return documents, failed

    @staticmethod
    def validate_documents(
        kind: EntityKind, documents: list[dict], rejected: dict[str, int]
    ) -> list[RawRecord]:
        """Validate raw documents one by one; invalid documents are counted and dropped."""
        model = RECORD_MODELS[kind]
        records = []
        for document in documents:
            try:
                records.append(model.model_validate(document))
            except ValidationError as e:
                rejected[kind.value] += 1
                logger.warning(
                    "record_rejected",
                    kind=kind.value,
                    doc_id=document_id(document) if isinstance(document, dict) else None,
                    error_count=e.error_count(),
                )
        return records

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def build_snapshot(
        self, filters: SnapshotFilters, now: Optional[datetime] = None
    ) -> OperationalSnapshot:
        """
        Build a fresh snapshot for the given filters.

        Args:
            filters: Caller filters
            now: Reference instant for period resolution and ages (default: now, UTC)

        Returns:
            Frozen snapshot; degraded rather than raising on data failures

        Raises:
            ValueError: If the filters describe an invalid period
        """
        now = to_naive_utc(now) if now is not None else datetime.utcnow()
        window = resolve_window(filters, now)
        granularity, _ = select_granularity(
            window.days, window.custom, window.calendar_month
        )

        logger.info(
            "snapshot_build_started",
            period=filters.period.value,
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
            granularity=granularity.value,
        )

        raw, failed_collections = await self.fetch_all(self.build_queries(filters, window))

        rejected: dict[str, int] = defaultdict(int)
        records = {
            kind: self.validate_documents(kind, raw.get(kind, []), rejected)
            for kind in EntityKind
        }
        sales: list[SaleRecord] = records[EntityKind.SALES]
        line_items: list[LineItem] = records[EntityKind.LINE_ITEMS]
        products: list[Product] = records[EntityKind.PRODUCTS]
        categories: list[Category] = records[EntityKind.CATEGORIES]
        stores: list[Store] = records[EntityKind.STORES]
        clients: list[Client] = records[EntityKind.CLIENTS]
        sellers: list[Seller] = records[EntityKind.SELLERS]
        reservations: list[Reservation] = records[EntityKind.RESERVATIONS]
        tickets: list[ServiceTicket] = records[EntityKind.SERVICE_TICKETS]
        stock_levels: list[StockLevel] = records[EntityKind.STOCK_LEVELS]
        movements: list[StockMovement] = records[EntityKind.STOCK_MOVEMENTS]

        failed_sections: list[str] = []

        def guarded(name: str, compute: Callable[[], T], default: T) -> T:
            try:
                return compute()
            except Exception as e:
                logger.error(
                    "snapshot_section_failed", section=name, error=str(e), exc_info=True
                )
                failed_sections.append(name)
                return default

        resolver = ReferenceResolver(
            Lookups(
                products=products,
                stores=stores,
                clients=clients,
                sellers=sellers,
                categories=categories,
            ),
            fallback_to_first_seller=self.seller_fallback_to_first,
        )
        resolved = guarded("reference_resolution", lambda: resolver.resolve_sales(sales), [])
        guarded(
            "reference_resolution",
            lambda: resolver.resolve_store_references([*reservations, *tickets]),
            {},
        )

        sale_ids = {sale.id for sale in sales}
        window_items = [item for item in line_items if item.sale_id in sale_ids]
        orphan_items = sum(1 for item in line_items if not item.sale_id)

        normalizer = StatusNormalizer()
        ticket_statuses = guarded(
            "ticket_statuses",
            lambda: normalizer.breakdown(ticket.status for ticket in tickets),
            TicketStatusBreakdown(),
        )

        overview = guarded(
            "overview",
            lambda: self.overview(sales, window_items, clients, reservations, tickets, window),
            OverviewTotals(),
        )
        store_groups = guarded(
            "store_groups",
            lambda: aggregate_groups(group_stores(stores), sales, reservations),
            [],
        )
        top_products = guarded(
            "top_products", lambda: self.top_products(window_items, resolver), []
        )
        seller_rankings = guarded(
            "sellers", lambda: self.seller_rankings(resolved, sellers), SellerRankings()
        )
        store_performance = guarded(
            "store_performance", lambda: self.store_performance(resolved), []
        )
        sales_by_status = guarded(
            "sales_by_status",
            lambda: breakdown(
                sales,
                lambda sale: sale.status or DEFAULT_SALE_STATUS,
                SALE_STATUS_LABELS,
            ),
            [],
        )
        sales_by_payment = guarded(
            "sales_by_payment_method",
            lambda: breakdown(
                sales,
                lambda sale: sale.payment_method or UNSPECIFIED_PAYMENT,
                PAYMENT_METHOD_LABELS,
            ),
            [],
        )
        revenue_trend: list[TimeBucket] = guarded(
            "revenue_trend",
            lambda: self.bucketer.bucket(
                sales,
                window.start,
                window.end,
                timestamp_of=lambda sale: sale.occurred_at,
                amount_of=lambda sale: sale.total_amount,
                custom=window.custom,
                calendar_month=window.calendar_month,
            ),
            [],
        )
        ticket_trend: list[TimeBucket] = guarded(
            "ticket_trend",
            lambda: self.bucketer.bucket(
                tickets,
                window.start,
                window.end,
                timestamp_of=lambda ticket: ticket.created_at,
                custom=window.custom,
                calendar_month=window.calendar_month,
            ),
            [],
        )
        recent_sales = guarded(
            "recent_sales", lambda: self.recent_sales(resolved, window_items, resolver), []
        )
        client_analytics = guarded(
            "clients",
            lambda: self.client_analyzer.analyze(clients, resolved, window, now),
            ClientAnalytics(),
        )
        stock = guarded(
            "stock",
            lambda: self.stock_analyzer.analyze(stock_levels, movements, resolver, now),
            StockAnalytics(),
        )

        data_quality = DataQualityReport(
            rejected_records=dict(rejected),
            unresolved_references=resolver.unresolved_counts(),
            fallback_seller_assignments=resolver.fallback_seller_assignments,
            unrecognized_statuses=normalizer.unrecognized,
            orphan_line_items=orphan_items,
        )

        snapshot = OperationalSnapshot(
            generated_at=datetime.utcnow(),
            window=window,
            filters=filters.describe(),
            granularity=granularity,
            overview=overview,
            store_groups=tuple(store_groups),
            top_products=tuple(top_products),
            sellers=seller_rankings,
            store_performance=tuple(store_performance),
            sales_by_status=tuple(sales_by_status),
            sales_by_payment_method=tuple(sales_by_payment),
            ticket_statuses=ticket_statuses,
            revenue_trend=tuple(revenue_trend),
            ticket_trend=tuple(ticket_trend),
            recent_sales=tuple(recent_sales),
            clients=client_analytics,
            stock=stock,
            data_quality=data_quality,
            failed_collections=tuple(failed_collections),
            failed_sections=tuple(failed_sections),
        )

        logger.info(
            "snapshot_build_completed",
            sales=overview.total_sales,
            revenue=overview.total_revenue,
            buckets=len(revenue_trend),
            failed_collections=[kind.value for kind in failed_collections],
            failed_sections=failed_sections,
            degraded=snapshot.is_degraded,
        )
        return snapshot

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    @staticmethod
    def overview(
        sales: list[SaleRecord],
        window_items: list[LineItem],
        clients: list[Client],
        reservations: list[Reservation],
        tickets: list[ServiceTicket],
        window: TimeWindow,
    ) -> OverviewTotals:
        total_revenue = sum(sale.total_amount for sale in sales)
        total_sales = len(sales)

        return OverviewTotals(
            total_revenue=total_revenue,
            total_sales=total_sales,
            average_basket=total_revenue / total_sales if total_sales else 0.0,
            units_sold=sum(item.quantity for item in window_items),
            new_clients=sum(
                1
                for client in clients
                if client.created_at is not None and window.contains(client.created_at)
            ),
            total_reservations=len(reservations),
            total_service_tickets=len(tickets),
        )

    def top_products(
        self, window_items: list[LineItem], resolver: ReferenceResolver
    ) -> list[RankedEntry]:
        """Products by line revenue; the secondary metric is the quantity sold."""
        return top_n(
            window_items,
            key_fn=lambda item: item.product_id,
            metric_fn=lambda item: item.revenue,
            n=self.top_products_limit,
            label_fn=resolver.product_name,
            secondary_fn=lambda item: item.quantity,
        )

    def seller_rankings(
        self, resolved: list[ResolvedSale], sellers: list[Seller]
    ) -> SellerRankings:
        """
        Top and bottom sellers by revenue, both ranked over the sellers with
        sales in the window.
        """
        labels = {seller.id: seller.name or UNKNOWN_SELLER for seller in sellers}
        labels.update({rs.seller_id: rs.seller_name for rs in resolved if rs.seller_id})

        def label(seller_id: str) -> str:
            return labels.get(seller_id, UNKNOWN_SELLER)

        top = top_n(
            resolved,
            key_fn=lambda rs: rs.seller_id,
            metric_fn=lambda rs: rs.sale.total_amount,
            n=self.top_sellers_limit,
            label_fn=label,
        )

        bottom = top_n(
            resolved,
            key_fn=lambda rs: rs.seller_id,
            metric_fn=lambda rs: rs.sale.total_amount,
            n=self.top_sellers_limit,
            ascending=True,
            label_fn=label,
        )

        return SellerRankings(top=tuple(top), bottom=tuple(bottom))

    def store_performance(self, resolved: list[ResolvedSale]) -> list[StorePerformance]:
        names = {rs.sale.store_id: rs.store_name for rs in resolved}
        ranked = top_n(
            resolved,
            key_fn=lambda rs: rs.sale.store_id,
            metric_fn=lambda rs: rs.sale.total_amount,
            n=self.top_stores_limit,
        )
        return [
            StorePerformance(
                store_id=entry.key,
                store_name=names.get(entry.key, UNKNOWN_STORE),
                sales_count=int(entry.secondary_metric),
                revenue=entry.metric_value,
                average_ticket=entry.metric_value / entry.secondary_metric
                if entry.secondary_metric
                else 0.0,
            )
            for entry in ranked
        ]

    def recent_sales(
        self,
        resolved: list[ResolvedSale],
        window_items: list[LineItem],
        resolver: ReferenceResolver,
    ) -> list[RecentSale]:
        """Most recent sales first, with their line items resolved to product names."""
        items_by_sale: dict[str, list[LineItem]] = defaultdict(list)
        for item in window_items:
            items_by_sale[item.sale_id].append(item)

        latest = sorted(resolved, key=lambda rs: rs.sale.occurred_at, reverse=True)
        return [
            RecentSale(
                sale_id=rs.sale.id,
                occurred_at=rs.sale.occurred_at,
                client_name=rs.client_name,
                client_email=rs.client_email,
                store_name=rs.store_name,
                seller_name=rs.seller_name,
                seller_email=rs.seller_email,
                amount=rs.sale.total_amount,
                status=rs.sale.status or DEFAULT_SALE_STATUS,
                products=tuple(
                    RecentSaleProduct(
                        name=resolver.product_name(item.product_id),
                        quantity=item.quantity,
                    )
                    for item in items_by_sale.get(rs.sale.id, [])
                ),
            )
            for rs in latest[: self.recent_sales_limit]
        ]


def breakdown(
    sales: list[SaleRecord],
    key_fn: Callable[[SaleRecord], str],
    labels: dict[str, str],
) -> list[BreakdownEntry]:
    """Sale count and revenue per categorical value, in first-seen order."""
    totals = aggregate(sales, key_fn, lambda sale: sale.total_amount)
    return [
        BreakdownEntry(
            key=key,
            label=labels.get(key, key),
            count=int(count),
            revenue=revenue,
        )
        for key, (revenue, count) in totals.items()
    ]

