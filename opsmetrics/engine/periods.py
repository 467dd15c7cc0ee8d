"""
Reporting period resolution.

Turns a ``SnapshotFilters`` period preset into a half-open ``TimeWindow``
relative to a reference instant. Calendar presets start on a calendar
boundary and end at the start of the next day; rolling presets end at the
reference instant itself.
"""

from datetime import datetime, time, timedelta
from typing import Optional

from opsmetrics.models.enums import PeriodPreset
from opsmetrics.models.filters import SnapshotFilters, TimeWindow
from opsmetrics.models.records import to_naive_utc

ROLLING_DAYS = {
    PeriodPreset.LAST_7_DAYS: 7,
    PeriodPreset.LAST_30_DAYS: 30,
    PeriodPreset.LAST_90_DAYS: 90,
}


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def one_year_before(moment: datetime) -> datetime:
    """Same instant one year earlier; Feb 29 clamps to Feb 28."""
    try:
        return moment.replace(year=moment.year - 1)
    except ValueError:
        return moment.replace(year=moment.year - 1, day=28)


def months_before(moment: datetime, months: int) -> datetime:
    """Same instant ``months`` calendar months earlier, day clamped to the month end."""
    index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    if month == 12:
        month_end = 31
    else:
        month_end = (datetime(year, month + 1, 1) - timedelta(days=1)).day
    return moment.replace(year=year, month=month, day=min(moment.day, month_end))


def resolve_window(filters: SnapshotFilters, now: Optional[datetime] = None) -> TimeWindow:
    """
    Resolve the reporting window of a snapshot request.

    Args:
        filters: Caller filters (custom periods are validated by the model)
        now: Reference instant (default: current UTC time)

    Returns:
        Half-open window ``[start, end)``

    Raises:
        ValueError: If a custom period lacks its dates
    """
    now = to_naive_utc(now) if now is not None else datetime.utcnow()
    preset = filters.period
    next_day = start_of_day(now) + timedelta(days=1)

    if preset in (PeriodPreset.TODAY, PeriodPreset.DAY):
        return TimeWindow(start=start_of_day(now), end=next_day, preset=preset)

    if preset == PeriodPreset.WEEK:
        monday = start_of_day(now) - timedelta(days=now.weekday())
        return TimeWindow(start=monday, end=next_day, preset=preset)

    if preset == PeriodPreset.MONTH:
        first = start_of_day(now).replace(day=1)
        return TimeWindow(start=first, end=next_day, preset=preset)

    if preset in ROLLING_DAYS:
        return TimeWindow(
            start=now - timedelta(days=ROLLING_DAYS[preset]), end=now, preset=preset
        )

    if preset == PeriodPreset.LAST_YEAR:
        return TimeWindow(start=one_year_before(now), end=now, preset=preset)

    if filters.start_date is None or filters.end_date is None:
        raise ValueError("custom period requires start_date and end_date")
    return TimeWindow(
        start=datetime.combine(filters.start_date, time.min),
        end=datetime.combine(filters.end_date, time.min) + timedelta(days=1),
        preset=preset,
        custom=True,
    )
