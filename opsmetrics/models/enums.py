"""
Enumeration types for the operational metrics engine.

All enums inherit from str to ensure JSON serialization compatibility and
to keep the classification sets closed: every free-form value coming from
the document store is mapped onto one of these members.
"""

from enum import Enum


class EntityKind(str, Enum):
    """
    Collections the engine reads through the collection access port.

    The value is the collection name used by the storage adapters.
    """

    SALES = "sales"
    LINE_ITEMS = "sale_items"
    PRODUCTS = "products"
    CATEGORIES = "categories"
    STORES = "stores"
    CLIENTS = "clients"
    SELLERS = "sellers"
    RESERVATIONS = "reservations"
    SERVICE_TICKETS = "service_tickets"
    STOCK_LEVELS = "stock_levels"
    STOCK_MOVEMENTS = "stock_movements"


class CanonicalStatus(str, Enum):
    """
    Canonical service ticket status.

    Raw ticket statuses are free text (French, with or without diacritics,
    legacy snake_case values) and are normalized onto this set.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class Granularity(str, Enum):
    """Time bucket granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class PeriodPreset(str, Enum):
    """
    Named reporting periods accepted by the snapshot filters.

    Calendar presets (today, week, month) start at a calendar boundary;
    rolling presets (7d, 30d, 90d, 1y) end at the reference instant.
    """

    TODAY = "today"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    LAST_YEAR = "1y"
    CUSTOM = "custom"


class ClientSegment(str, Enum):
    """Commercial segment assigned to a client record."""

    PREMIUM = "premium"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


class StockStatus(str, Enum):
    """Stock level classification against min/max quantities."""

    OUT_OF_STOCK = "out_of_stock"
    LOW = "low"
    NORMAL = "normal"
    EXCESS = "excess"
