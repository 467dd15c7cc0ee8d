"""
Filter models: what the caller asks for, the resolved time window, and the
per-collection query handed to the collection access port.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import PeriodPreset


class SnapshotFilters(BaseModel):
    """
    Caller-facing filters of a snapshot build.

    Attributes:
        period: Named period preset; ``custom`` requires both dates
        start_date: First day of a custom period (inclusive)
        end_date: Last day of a custom period (inclusive)
        store_id: Restrict store-scoped collections to one store
        client_id: Restrict sales and reservations to one client
        status: Restrict sales to one raw status value
    """

    model_config = ConfigDict(frozen=True)

    period: PeriodPreset = Field(default=PeriodPreset.TODAY)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    store_id: Optional[str] = None
    client_id: Optional[str] = None
    status: Optional[str] = None

    @model_validator(mode="after")
    def check_custom_period(self) -> "SnapshotFilters":
        if self.period == PeriodPreset.CUSTOM:
            if self.start_date is None or self.end_date is None:
                raise ValueError("custom period requires start_date and end_date")
            if self.end_date < self.start_date:
                raise ValueError("end_date must not be before start_date")
        return self

    def describe(self) -> dict:
        """Applied filters as a flat dict, omitting unset values."""
        return self.model_dump(mode="json", exclude_none=True)


class TimeWindow(BaseModel):
    """Resolved half-open reporting window ``[start, end)``."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    preset: PeriodPreset
    custom: bool = False

    @property
    def days(self) -> float:
        return (self.end - self.start).total_seconds() / 86400

    @property
    def calendar_month(self) -> bool:
        return self.preset == PeriodPreset.MONTH

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class CollectionQuery(BaseModel):
    """
    Query passed to the collection access port.

    Absence of a filter means "unfiltered". ``start``/``end`` are matched
    against the collection's timestamp field as ``start <= ts < end``.
    """

    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    store_id: Optional[str] = None
    equals: dict[str, str] = Field(default_factory=dict)

    def equality_filters(self) -> dict[str, str]:
        """All equality predicates keyed by document attribute name."""
        filters = dict(self.equals)
        if self.store_id is not None:
            filters["storeId"] = self.store_id
        return filters
