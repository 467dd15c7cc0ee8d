"""
Ranker - top-N / bottom-N lists over an aggregation key.

Records are grouped by key in first-seen order, a primary metric and a
secondary metric are summed per key, and the groups are sorted with a
stable sort so that ties keep their first-seen order in both directions.
"""

from typing import Any, Callable, Iterable, Optional

from opsmetrics.models.snapshot import RankedEntry


def aggregate(
    records: Iterable[Any],
    key_fn: Callable[[Any], Optional[str]],
    metric_fn: Callable[[Any], float],
    secondary_fn: Optional[Callable[[Any], float]] = None,
) -> dict[str, tuple[float, float]]:
    """
    Sum the metric per key, preserving first-seen key order.

    Records whose key is None are skipped. Without ``secondary_fn`` the
    secondary metric is the record count.
    """
    totals: dict[str, tuple[float, float]] = {}
    for record in records:
        key = key_fn(record)
        if key is None:
            continue
        metric, secondary = totals.get(key, (0.0, 0.0))
        metric += metric_fn(record) or 0.0
        secondary += secondary_fn(record) if secondary_fn is not None else 1
        totals[key] = (metric, secondary)
    return totals


def rank(
    totals: dict[str, tuple[float, float]],
    n: int,
    ascending: bool = False,
    label_fn: Optional[Callable[[str], str]] = None,
) -> list[RankedEntry]:
    """
    Order pre-aggregated totals and keep the first ``n``.

    Raises:
        ValueError: If n is negative
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")

    ordered = sorted(totals.items(), key=lambda item: item[1][0], reverse=not ascending)
    return [
        RankedEntry(
            key=key,
            label=label_fn(key) if label_fn is not None else key,
            metric_value=metric,
            secondary_metric=secondary,
        )
        for key, (metric, secondary) in ordered[:n]
    ]


def top_n(
    records: Iterable[Any],
    key_fn: Callable[[Any], Optional[str]],
    metric_fn: Callable[[Any], float],
    n: int,
    ascending: bool = False,
    label_fn: Optional[Callable[[str], str]] = None,
    secondary_fn: Optional[Callable[[Any], float]] = None,
) -> list[RankedEntry]:
    """
    Rank records grouped by key.

    Args:
        records: Input records
        key_fn: Ranking key of a record (seller id, product id, ...)
        metric_fn: Primary metric of a record, summed per key
        n: Number of entries to keep
        ascending: Sort ascending instead of descending
        label_fn: Display label of a key (defaults to the key)
        secondary_fn: Secondary metric of a record (defaults to a count)

    Returns:
        At most ``n`` entries, ``min(n, distinct keys)`` in length

    Raises:
        ValueError: If n is negative

    Example:
        >>> top_n(sales, lambda s: s.seller_id, lambda s: s.total_amount, 2)
    """
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}")
    totals = aggregate(records, key_fn, metric_fn, secondary_fn)
    return rank(totals, n, ascending=ascending, label_fn=label_fn)
