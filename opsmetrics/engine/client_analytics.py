"""
Client analytics section.

Lifetime figures (total clients, average lifetime value, segmentation, risk)
come from the client records themselves; the top-client ranking comes from
the sales inside the reporting window.
"""

from datetime import datetime
from typing import Optional

import structlog

from opsmetrics.models.enums import ClientSegment
from opsmetrics.models.filters import TimeWindow
from opsmetrics.models.records import Client
from opsmetrics.models.snapshot import (
    ClientAnalytics,
    ClientRiskEntry,
    RankedEntry,
    SegmentStats,
)

from .periods import months_before
from .ranker import rank, top_n
from .reference_resolver import UNKNOWN_CLIENT, ResolvedSale

logger = structlog.get_logger()

EPOCH = datetime(1970, 1, 1)

# Highest lifetime spenders never appear on the risk list
RISK_EXCLUDED_TOP_SPENDERS = 5


class ClientAnalyzer:
    """
    Computes the client analytics section.

    Attributes:
        top_clients_limit: Clients kept in the spend ranking
        risk_clients_limit: Clients kept in the risk list
        inactive_months: Months without purchase before a client is at risk
        spend_ceiling: Lifetime spend under which inactivity is a risk
        no_purchase_spend_ceiling: Ceiling for clients with spend but no last purchase
        recent_months: Window defining a recently active client
    """

    def __init__(
        self,
        top_clients_limit: int = 5,
        risk_clients_limit: int = 5,
        inactive_months: int = 6,
        spend_ceiling: float = 100000.0,
        no_purchase_spend_ceiling: float = 50000.0,
        recent_months: int = 1,
    ):
        self.top_clients_limit = top_clients_limit
        self.risk_clients_limit = risk_clients_limit
        self.inactive_months = inactive_months
        self.spend_ceiling = spend_ceiling
        self.no_purchase_spend_ceiling = no_purchase_spend_ceiling
        self.recent_months = recent_months

    def analyze(
        self,
        clients: list[Client],
        sales: list[ResolvedSale],
        window: TimeWindow,
        now: datetime,
    ) -> ClientAnalytics:
        recent_since = months_before(now, self.recent_months)
        lifetime = sum(client.total_spent for client in clients)

        return ClientAnalytics(
            total_clients=len(clients),
            new_clients=sum(
                1 for c in clients if c.created_at is not None and window.contains(c.created_at)
            ),
            recent_clients=sum(
                1 for c in clients if c.last_purchase is not None and c.last_purchase >= recent_since
            ),
            average_lifetime_value=lifetime / len(clients) if clients else 0.0,
            segmentation=tuple(self.segmentation(clients)),
            top_clients=tuple(self.top_clients(sales)),
            risk_clients=tuple(self.risk_clients(clients, now)),
        )

    def segmentation(self, clients: list[Client]) -> list[SegmentStats]:
        """Client count and lifetime spend per segment, every segment listed."""
        count = {segment: 0 for segment in ClientSegment}
        revenue = {segment: 0.0 for segment in ClientSegment}
        for client in clients:
            if client.segment is not None:
                count[client.segment] += 1
                revenue[client.segment] += client.total_spent
        return [
            SegmentStats(segment=segment, count=count[segment], revenue=revenue[segment])
            for segment in ClientSegment
        ]

    def top_clients(self, sales: list[ResolvedSale]) -> list[RankedEntry]:
        labels = {rs.sale.client_id: rs.client_name for rs in sales}
        return top_n(
            sales,
            key_fn=lambda rs: rs.sale.client_id,
            metric_fn=lambda rs: rs.sale.total_amount,
            n=self.top_clients_limit,
            label_fn=lambda client_id: labels.get(client_id, UNKNOWN_CLIENT),
        )

    def is_at_risk(self, client: Client, inactive_since: datetime) -> bool:
        if client.last_purchase is None:
            # New clients without spend are not at risk yet
            if client.total_spent == 0:
                return False
            return client.total_spent < self.no_purchase_spend_ceiling
        return client.last_purchase < inactive_since and client.total_spent < self.spend_ceiling

    def risk_clients(self, clients: list[Client], now: datetime) -> list[ClientRiskEntry]:
        """
        Inactive low-spend clients, oldest last purchase first.

        Clients without any last purchase sort before all others.
        """
        top_spenders = {
            client.id
            for client in sorted(clients, key=lambda c: c.total_spent, reverse=True)[
                :RISK_EXCLUDED_TOP_SPENDERS
            ]
        }
        inactive_since = months_before(now, self.inactive_months)

        candidates = {
            client.id: client
            for client in clients
            if client.id not in top_spenders and self.is_at_risk(client, inactive_since)
        }
        totals = {
            client_id: (_purchase_ordinal(client.last_purchase), client.total_spent)
            for client_id, client in candidates.items()
        }
        ranked = rank(totals, self.risk_clients_limit, ascending=True)

        entries = []
        for entry in ranked:
            client = candidates[entry.key]
            entries.append(
                ClientRiskEntry(
                    client_id=client.id,
                    name=client.name or UNKNOWN_CLIENT,
                    total_spent=client.total_spent,
                    last_purchase=client.last_purchase,
                    days_since_purchase=(now - client.last_purchase).days
                    if client.last_purchase is not None
                    else None,
                )
            )

        logger.debug("client_risk_evaluated", candidates=len(candidates), listed=len(entries))
        return entries


def _purchase_ordinal(last_purchase: Optional[datetime]) -> float:
    if last_purchase is None:
        return float("-inf")
    return (last_purchase - EPOCH).total_seconds()
