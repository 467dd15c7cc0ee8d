"""
Time Bucketer - trend series over a reporting window.

Partitions time-stamped records into ordered buckets whose granularity is
derived from the window length:

    window <= 7 days   -> day,   at most 7 buckets
    window <= 30 days  -> day,   at most 10 buckets
    window <= 90 days  -> week,  at most 12 buckets (Monday-anchored)
    longer, or custom  -> month, at most 12 buckets

Each record gets a canonical key (``YYYY-MM-DD``, the Monday of its week as
``YYYY-MM-DD``, or ``YYYY-MM``); count and value are accumulated per key,
keys are sorted ascending and only the trailing ``cap`` buckets are kept.
Older buckets beyond the cap are dropped, not merged into their
neighbours, so a long window shows its most recent periods only.
"""

from collections import defaultdict
from datetime import datetime, time, timedelta
from typing import Any, Callable, Iterable, Optional

import structlog

from opsmetrics.models.enums import Granularity
from opsmetrics.models.snapshot import TimeBucket

logger = structlog.get_logger()

MONTH_ABBREVIATIONS = {
    "fr": (
        "janv.", "févr.", "mars", "avr.", "mai", "juin",
        "juil.", "août", "sept.", "oct.", "nov.", "déc.",
    ),
    "en": (
        "Jan", "Feb", "Mar", "Apr", "May", "Jun",
        "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
    ),
}


def select_granularity(
    window_days: float, custom: bool = False, calendar_month: bool = False
) -> tuple[Granularity, int]:
    """
    Pick the bucket granularity and bucket cap for a window length.

    Args:
        window_days: Window length in days (fractional allowed)
        custom: Custom windows always bucket by month
        calendar_month: Month-to-date windows always use the 30-day row, so
            the month chart keeps day buckets on the 31st

    Returns:
        (granularity, maximum number of buckets)
    """
    if custom:
        return Granularity.MONTH, 12
    if calendar_month:
        return Granularity.DAY, 10
    if window_days <= 7:
        return Granularity.DAY, 7
    if window_days <= 30:
        return Granularity.DAY, 10
    if window_days <= 90:
        return Granularity.WEEK, 12
    return Granularity.MONTH, 12


def bucket_key(moment: datetime, granularity: Granularity) -> str:
    """Canonical, lexicographically sortable key of the bucket containing ``moment``."""
    if granularity == Granularity.DAY:
        return moment.strftime("%Y-%m-%d")
    if granularity == Granularity.WEEK:
        monday = moment.date() - timedelta(days=moment.weekday())
        return monday.strftime("%Y-%m-%d")
    return moment.strftime("%Y-%m")


def bucket_bounds(key: str, granularity: Granularity) -> tuple[datetime, datetime]:
    """Unclamped ``[start, end)`` of the bucket identified by ``key``."""
    if granularity == Granularity.MONTH:
        start = datetime.strptime(key, "%Y-%m")
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end

    start = datetime.combine(datetime.strptime(key, "%Y-%m-%d").date(), time.min)
    length = 1 if granularity == Granularity.DAY else 7
    return start, start + timedelta(days=length)


class TimeBucketer:
    """
    Builds trend series with granularity selected from the window length.

    Attributes:
        locale: Label locale ("fr" or "en")
    """

    def __init__(self, locale: str = "fr"):
        if locale not in MONTH_ABBREVIATIONS:
            raise ValueError(f"Unsupported bucket label locale: {locale}")
        self.locale = locale

    def bucket(
        self,
        records: Iterable[Any],
        window_start: datetime,
        window_end: datetime,
        *,
        timestamp_of: Callable[[Any], Optional[datetime]],
        amount_of: Optional[Callable[[Any], float]] = None,
        custom: bool = False,
        calendar_month: bool = False,
    ) -> list[TimeBucket]:
        """
        Bucket records falling inside ``[window_start, window_end)``.

        Args:
            records: Time-stamped records
            window_start: Window start (inclusive)
            window_end: Window end (exclusive)
            timestamp_of: Extracts a record's timestamp; None skips the record
            amount_of: Extracts the monetary value summed as ``revenue``
            custom: Whether the window is a custom period
            calendar_month: Whether the window is the month-to-date preset

        Returns:
            Buckets in ascending time order, at most the granularity's cap
        """
        window_days = (window_end - window_start).total_seconds() / 86400
        granularity, cap = select_granularity(window_days, custom, calendar_month)

        counts: dict[str, int] = defaultdict(int)
        revenue: dict[str, float] = defaultdict(float)
        skipped = 0

        for record in records:
            moment = timestamp_of(record)
            if moment is None or not (window_start <= moment < window_end):
                skipped += 1
                continue
            key = bucket_key(moment, granularity)
            counts[key] += 1
            if amount_of is not None:
                revenue[key] += amount_of(record) or 0.0

        keys = sorted(counts)
        dropped = max(0, len(keys) - cap)
        if dropped:
            logger.debug(
                "time_buckets_truncated",
                granularity=granularity.value,
                cap=cap,
                dropped=dropped,
            )
        kept = keys[dropped:]

        buckets = []
        for key in kept:
            start, end = bucket_bounds(key, granularity)
            buckets.append(
                TimeBucket(
                    key=key,
                    label=self.label(key, granularity),
                    start_inclusive=max(start, window_start),
                    end_exclusive=min(end, window_end),
                    count=counts[key],
                    revenue=revenue.get(key, 0.0),
                )
            )

        logger.debug(
            "time_buckets_built",
            granularity=granularity.value,
            buckets=len(buckets),
            outside_window=skipped,
        )
        return buckets

    def label(self, key: str, granularity: Granularity) -> str:
        """Human-readable label of a bucket key."""
        months = MONTH_ABBREVIATIONS[self.locale]
        start, _ = bucket_bounds(key, granularity)

        if granularity == Granularity.DAY:
            return f"{start.day} {months[start.month - 1]}"
        if granularity == Granularity.WEEK:
            last = start + timedelta(days=6)
            return f"{start.day}/{start.month} - {last.day}/{last.month}"
        return f"{months[start.month - 1]} {start.year}"
