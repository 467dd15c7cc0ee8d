"""
Store Group Resolver - brand-level roll-up of individual stores.

A store's brand is not stored; it is derived from the store name by
lower-case substring match against a fixed, ordered brand table. Stores
matching no brand form a singleton group named after the store itself.
Groups are emitted in the order their first member store is encountered.
"""

from typing import Iterable, Optional

import structlog

from opsmetrics.models.records import Reservation, SaleRecord, Store
from opsmetrics.models.snapshot import StoreGroup

logger = structlog.get_logger()


# (name substring, group name), first match wins
BRAND_GROUPS: tuple[tuple[str, str], ...] = (
    ("sillage", "Sillage"),
    ("gemaber", "Gemaber"),
)


def brand_of(store_name: str) -> Optional[str]:
    """Brand group of a store name, or None when no brand substring matches."""
    lowered = store_name.lower()
    for needle, group_name in BRAND_GROUPS:
        if needle in lowered:
            return group_name
    return None


def group_name_of(store: Store) -> str:
    return brand_of(store.name) or store.name


def group_stores(stores: Iterable[Store]) -> list[StoreGroup]:
    """
    Partition stores into brand groups.

    Args:
        stores: Store records in source order

    Returns:
        Groups with member ids and zero aggregates, in first-encounter order
    """
    members: dict[str, list[str]] = {}
    for store in stores:
        members.setdefault(group_name_of(store), []).append(store.id)

    return [
        StoreGroup(group_name=name, member_store_ids=tuple(store_ids))
        for name, store_ids in members.items()
    ]


def aggregate_groups(
    groups: list[StoreGroup],
    sales: Iterable[SaleRecord],
    reservations: Iterable[Reservation] = (),
) -> list[StoreGroup]:
    """
    Fill revenue, sale count and reservation count of each group.

    Sales and reservations whose store belongs to no group are not counted
    anywhere; the reference resolver reports them as unresolved stores.
    """
    group_of_store = {
        store_id: group.group_name
        for group in groups
        for store_id in group.member_store_ids
    }
    revenue = {group.group_name: 0.0 for group in groups}
    count = {group.group_name: 0 for group in groups}
    booked = {group.group_name: 0 for group in groups}
    ungrouped = 0

    for sale in sales:
        name = group_of_store.get(sale.store_id)
        if name is None:
            ungrouped += 1
            continue
        revenue[name] += sale.total_amount
        count[name] += 1

    for reservation in reservations:
        name = group_of_store.get(reservation.store_id)
        if name is not None:
            booked[name] += 1

    if ungrouped:
        logger.debug("sales_outside_store_groups", count=ungrouped)

    return [
        group.model_copy(
            update={
                "aggregate_revenue": revenue[group.group_name],
                "aggregate_count": count[group.group_name],
                "reservation_count": booked[group.group_name],
            }
        )
        for group in groups
    ]
