"""
Raw entity models read from the document store.

These are the read-only inputs of the engine. Documents coming from the
store use the store's own key conventions (``$id``, ``$createdAt``,
camelCase attributes, ``userId`` for the seller of a sale, ``fullName``
for people), so every field accepts those keys as validation aliases while
the Python attribute names stay snake_case.

All timestamps are normalized to naive UTC so that window comparisons and
bucket keys never mix aware and naive datetimes.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import ClientSegment, EntityKind


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are kept as-is."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class RawRecord(BaseModel):
    """Base class for every entity read through the collection access port."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    id: str = Field(validation_alias=_alias("id", "$id"))

    @model_validator(mode="before")
    @classmethod
    def first_present_alias(cls, data: Any) -> Any:
        """
        Read each field from its first alias holding a non-empty value.

        The document store returns every attribute, nulls included, so a
        sale with ``saleDate: null`` falls back to ``$createdAt`` and a null
        ``sellerId`` falls back to ``userId``.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for name, field in cls.model_fields.items():
            aliases = field.validation_alias
            if not isinstance(aliases, AliasChoices):
                continue
            for alias in aliases.choices:
                if not isinstance(alias, str):
                    continue
                value = data.get(alias)
                if value is not None and value != "":
                    data[name] = value
                    break
        return data

    @field_validator("*", mode="after")
    @classmethod
    def normalize_timestamps(cls, v: Any) -> Any:
        """Store every timestamp as naive UTC."""
        if isinstance(v, datetime):
            return to_naive_utc(v)
        return v


def _zero_if_none(v: Any) -> Any:
    return 0 if v is None or v == "" else v


class SaleRecord(RawRecord):
    """One commercial transaction."""

    client_id: Optional[str] = Field(
        default=None, validation_alias=_alias("client_id", "clientId")
    )
    store_id: Optional[str] = Field(
        default=None, validation_alias=_alias("store_id", "storeId")
    )
    seller_id: Optional[str] = Field(
        default=None, validation_alias=_alias("seller_id", "sellerId", "userId")
    )
    total_amount: float = Field(
        default=0.0, validation_alias=_alias("total_amount", "totalAmount")
    )
    status: Optional[str] = None
    payment_method: Optional[str] = Field(
        default=None, validation_alias=_alias("payment_method", "paymentMethod")
    )
    occurred_at: datetime = Field(
        validation_alias=_alias(
            "occurred_at", "occurredAt", "saleDate", "$createdAt", "createdAt"
        )
    )

    @field_validator("total_amount", mode="before")
    @classmethod
    def missing_amount_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)


class LineItem(RawRecord):
    """
    A product line of a sale.

    The sum of line revenues need not reconcile with the sale's
    ``total_amount``: discounts are also applied at sale level.
    """

    sale_id: Optional[str] = Field(
        default=None, validation_alias=_alias("sale_id", "saleId")
    )
    product_id: Optional[str] = Field(
        default=None, validation_alias=_alias("product_id", "productId")
    )
    quantity: float = 0
    unit_price: float = Field(
        default=0.0, validation_alias=_alias("unit_price", "unitPrice")
    )
    discount_amount: float = Field(
        default=0.0, validation_alias=_alias("discount_amount", "discountAmount")
    )

    @field_validator("quantity", "unit_price", "discount_amount", mode="before")
    @classmethod
    def missing_number_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)

    @property
    def revenue(self) -> float:
        return self.unit_price * self.quantity - self.discount_amount


class Product(RawRecord):
    name: Optional[str] = None
    unit_cost: float = Field(default=0.0, validation_alias=_alias("unit_cost", "unitCost"))
    category_id: Optional[str] = Field(
        default=None, validation_alias=_alias("category_id", "categoryId", "category")
    )

    @field_validator("unit_cost", mode="before")
    @classmethod
    def missing_cost_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)


class Category(RawRecord):
    name: Optional[str] = None


class Store(RawRecord):
    """A physical store. Its brand group is derived from the name, never stored."""

    name: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def missing_name_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class Client(RawRecord):
    name: Optional[str] = Field(default=None, validation_alias=_alias("name", "fullName"))
    email: Optional[str] = None
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=_alias("created_at", "createdAt", "$createdAt")
    )
    loyalty_points: float = Field(
        default=0, validation_alias=_alias("loyalty_points", "loyaltyPoints")
    )
    total_spent: float = Field(
        default=0.0, validation_alias=_alias("total_spent", "totalSpent")
    )
    last_purchase: Optional[datetime] = Field(
        default=None, validation_alias=_alias("last_purchase", "lastPurchase")
    )
    segment: Optional[ClientSegment] = None

    @field_validator("loyalty_points", "total_spent", mode="before")
    @classmethod
    def missing_number_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)

    @field_validator("last_purchase", "created_at", mode="before")
    @classmethod
    def blank_timestamp_is_missing(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator("segment", mode="before")
    @classmethod
    def unknown_segment_is_missing(cls, v: Any) -> Optional[str]:
        """Segments outside the closed vocabulary are treated as unassigned."""
        if isinstance(v, str):
            v = v.strip().lower()
            if v in {segment.value for segment in ClientSegment}:
                return v
        return None


class Seller(RawRecord):
    name: Optional[str] = Field(default=None, validation_alias=_alias("name", "fullName"))
    email: Optional[str] = None
    store_id: Optional[str] = Field(
        default=None, validation_alias=_alias("store_id", "storeId")
    )


class Reservation(RawRecord):
    store_id: Optional[str] = Field(
        default=None, validation_alias=_alias("store_id", "storeId")
    )
    client_id: Optional[str] = Field(
        default=None, validation_alias=_alias("client_id", "clientId")
    )
    created_at: datetime = Field(
        validation_alias=_alias("created_at", "createdAt", "$createdAt")
    )
    total_amount: float = Field(
        default=0.0, validation_alias=_alias("total_amount", "totalAmount")
    )

    @field_validator("total_amount", mode="before")
    @classmethod
    def missing_amount_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)


class ServiceTicket(RawRecord):
    """After-sales service request. ``status`` is free text at the source."""

    store_id: Optional[str] = Field(
        default=None, validation_alias=_alias("store_id", "storeId")
    )
    status: Optional[str] = None
    created_at: datetime = Field(
        validation_alias=_alias("created_at", "createdAt", "$createdAt")
    )


class StockLevel(RawRecord):
    product_id: Optional[str] = Field(
        default=None, validation_alias=_alias("product_id", "productId")
    )
    store_id: Optional[str] = Field(
        default=None, validation_alias=_alias("store_id", "storeId")
    )
    quantity: float = 0
    min_quantity: float = Field(
        default=0, validation_alias=_alias("min_quantity", "minQuantity")
    )
    max_quantity: Optional[float] = Field(
        default=None, validation_alias=_alias("max_quantity", "maxQuantity")
    )

    @field_validator("quantity", "min_quantity", mode="before")
    @classmethod
    def missing_number_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)


class StockMovement(RawRecord):
    product_id: Optional[str] = Field(
        default=None, validation_alias=_alias("product_id", "productId")
    )
    quantity: float = 0
    created_at: datetime = Field(
        validation_alias=_alias("created_at", "createdAt", "$createdAt")
    )

    @field_validator("quantity", mode="before")
    @classmethod
    def missing_quantity_is_zero(cls, v: Any) -> Any:
        return _zero_if_none(v)


RECORD_MODELS: dict[EntityKind, type[RawRecord]] = {
    EntityKind.SALES: SaleRecord,
    EntityKind.LINE_ITEMS: LineItem,
    EntityKind.PRODUCTS: Product,
    EntityKind.CATEGORIES: Category,
    EntityKind.STORES: Store,
    EntityKind.CLIENTS: Client,
    EntityKind.SELLERS: Seller,
    EntityKind.RESERVATIONS: Reservation,
    EntityKind.SERVICE_TICKETS: ServiceTicket,
    EntityKind.STOCK_LEVELS: StockLevel,
    EntityKind.STOCK_MOVEMENTS: StockMovement,
}
