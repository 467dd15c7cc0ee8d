"""
Stock analytics section.

Classifies stock levels against their min/max thresholds, values the stock
at unit cost and ranks products by movement volume and by how long they
have gone without any movement.
"""

from datetime import datetime
from typing import Optional

import structlog

from opsmetrics.models.enums import StockStatus
from opsmetrics.models.records import StockLevel, StockMovement
from opsmetrics.models.snapshot import SlowMovingProduct, StockAnalytics

from .ranker import rank, top_n
from .reference_resolver import UNKNOWN_PRODUCT, ReferenceResolver

logger = structlog.get_logger()


def stock_status(level: StockLevel) -> StockStatus:
    """Classify one stock level; a missing maximum never counts as excess."""
    if level.quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if level.quantity < level.min_quantity:
        return StockStatus.LOW
    if level.max_quantity is not None and level.quantity > level.max_quantity:
        return StockStatus.EXCESS
    return StockStatus.NORMAL


class StockAnalyzer:
    """
    Computes the stock analytics section.

    Attributes:
        top_moving_limit: Products kept in the movement volume ranking
        slow_moving_limit: Products kept in the slow-moving list
        slow_moving_min_days: Days without movement before a product is slow moving
    """

    def __init__(
        self,
        top_moving_limit: int = 5,
        slow_moving_limit: int = 3,
        slow_moving_min_days: int = 14,
    ):
        self.top_moving_limit = top_moving_limit
        self.slow_moving_limit = slow_moving_limit
        self.slow_moving_min_days = slow_moving_min_days

    def analyze(
        self,
        levels: list[StockLevel],
        movements: list[StockMovement],
        resolver: ReferenceResolver,
        now: datetime,
    ) -> StockAnalytics:
        counts = {status: 0 for status in StockStatus}
        total_value = 0.0
        skipped = 0

        for level in levels:
            product = resolver.lookups.products.get(level.product_id) if level.product_id else None
            if product is None:
                skipped += 1
                continue
            total_value += level.quantity * product.unit_cost
            counts[stock_status(level)] += 1

        if skipped:
            logger.debug("stock_levels_without_product", count=skipped)

        turnover = round(len(movements) / len(levels), 1) if levels else 0.0

        top_moving = top_n(
            movements,
            key_fn=lambda movement: movement.product_id,
            metric_fn=lambda movement: movement.quantity,
            n=self.top_moving_limit,
            label_fn=resolver.product_name,
        )

        return StockAnalytics(
            total_value=total_value,
            out_of_stock_count=counts[StockStatus.OUT_OF_STOCK],
            low_stock_count=counts[StockStatus.LOW],
            normal_stock_count=counts[StockStatus.NORMAL],
            excess_stock_count=counts[StockStatus.EXCESS],
            inventory_turnover=turnover,
            top_moving=tuple(top_moving),
            slow_moving=tuple(self.slow_moving(levels, movements, resolver, now)),
        )

    def slow_moving(
        self,
        levels: list[StockLevel],
        movements: list[StockMovement],
        resolver: ReferenceResolver,
        now: datetime,
    ) -> list[SlowMovingProduct]:
        """
        Products in stock whose last movement is older than the threshold.

        Only products that moved at least once are considered; the stock
        quantity is taken from the product's first stock level.
        """
        last_moved: dict[str, datetime] = {}
        for movement in movements:
            if movement.product_id is None:
                continue
            previous = last_moved.get(movement.product_id)
            if previous is None or movement.created_at > previous:
                last_moved[movement.product_id] = movement.created_at

        first_level: dict[str, StockLevel] = {}
        for level in levels:
            if level.product_id is not None:
                first_level.setdefault(level.product_id, level)

        idle: dict[str, tuple[float, float]] = {}
        for product_id, moved_at in last_moved.items():
            days = (now - moved_at).days
            quantity = _quantity(first_level.get(product_id))
            if quantity > 0 and days > self.slow_moving_min_days:
                idle[product_id] = (days, quantity)

        entries = []
        for entry in rank(idle, self.slow_moving_limit):
            product = resolver.product(entry.key)
            quantity = entry.secondary_metric
            entries.append(
                SlowMovingProduct(
                    product_id=entry.key,
                    product_name=(product.name if product else None) or UNKNOWN_PRODUCT,
                    category=resolver.category_name(product.category_id if product else None),
                    days_without_movement=int(entry.metric_value),
                    quantity=quantity,
                    value=quantity * (product.unit_cost if product else 0.0),
                )
            )
        return entries


def _quantity(level: Optional[StockLevel]) -> float:
    return level.quantity if level is not None else 0.0
