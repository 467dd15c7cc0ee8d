"""
Reference Resolver - foreign keys to display summaries.

Lookup maps are built once per snapshot build from the already-fetched
collections and never mutated afterwards. Resolution is total: a missing
client, store, product or category resolves to a placeholder label, and a
sale without a resolvable seller is attributed to the first seller of the
lookup list so that seller rankings never contain an unknown seller. Every
unresolved reference is counted once per distinct id for the data-quality
report.
"""

from collections import defaultdict
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict

from opsmetrics.models.records import Category, Client, Product, SaleRecord, Seller, Store

logger = structlog.get_logger()

UNKNOWN_CLIENT = "Unknown client"
UNKNOWN_STORE = "Unknown store"
UNKNOWN_PRODUCT = "Unknown product"
UNKNOWN_SELLER = "Unknown seller"
UNKNOWN_CATEGORY = "Unknown category"


def _index(records: Iterable) -> Mapping[str, object]:
    by_id: dict[str, object] = {}
    for record in records:
        by_id.setdefault(record.id, record)
    return MappingProxyType(by_id)


class Lookups:
    """
    Read-only id maps over the lookup collections of one build.

    Attributes:
        products: Products by id
        stores: Stores by id
        clients: Clients by id
        sellers: Sellers by id
        categories: Categories by id
        first_seller: First seller in source order, target of the seller fallback
    """

    def __init__(
        self,
        products: Iterable[Product] = (),
        stores: Iterable[Store] = (),
        clients: Iterable[Client] = (),
        sellers: Iterable[Seller] = (),
        categories: Iterable[Category] = (),
    ):
        seller_list = list(sellers)
        self.products: Mapping[str, Product] = _index(products)
        self.stores: Mapping[str, Store] = _index(stores)
        self.clients: Mapping[str, Client] = _index(clients)
        self.sellers: Mapping[str, Seller] = _index(seller_list)
        self.categories: Mapping[str, Category] = _index(categories)
        self.first_seller: Optional[Seller] = seller_list[0] if seller_list else None


class ResolvedSale(BaseModel):
    """A sale with its client, store and seller references resolved."""

    model_config = ConfigDict(frozen=True)

    sale: SaleRecord
    client_name: str
    client_email: str
    store_name: str
    seller_id: Optional[str] = None
    seller_name: str
    seller_email: str
    seller_fallback: bool = False


class ReferenceResolver:
    """
    Resolves foreign keys against the lookups of one build.

    Attributes:
        lookups: Immutable id maps
        fallback_to_first_seller: Attribute unresolved sellers to the first seller
        unresolved: Distinct unresolved reference ids per reference kind
        fallback_seller_assignments: Sales attributed through the seller fallback
    """

    def __init__(self, lookups: Lookups, fallback_to_first_seller: bool = True):
        self.lookups = lookups
        self.fallback_to_first_seller = fallback_to_first_seller
        self.unresolved: dict[str, set] = defaultdict(set)
        self.fallback_seller_assignments = 0

    def _miss(self, kind: str, ref: Optional[str]) -> None:
        if ref in self.unresolved[kind]:
            return
        self.unresolved[kind].add(ref)
        logger.debug("reference_unresolved", reference_kind=kind, reference_id=ref)

    def client(self, client_id: Optional[str]) -> Optional[Client]:
        client = self.lookups.clients.get(client_id) if client_id else None
        if client is None:
            self._miss("client", client_id)
        return client

    def client_name(self, client_id: Optional[str]) -> str:
        client = self.client(client_id)
        return (client.name if client else None) or UNKNOWN_CLIENT

    def store_name(self, store_id: Optional[str]) -> str:
        store = self.lookups.stores.get(store_id) if store_id else None
        if store is None:
            self._miss("store", store_id)
            return UNKNOWN_STORE
        return store.name or UNKNOWN_STORE

    def product(self, product_id: Optional[str]) -> Optional[Product]:
        product = self.lookups.products.get(product_id) if product_id else None
        if product is None:
            self._miss("product", product_id)
        return product

    def product_name(self, product_id: Optional[str]) -> str:
        product = self.product(product_id)
        return (product.name if product else None) or UNKNOWN_PRODUCT

    def category_name(self, category_id: Optional[str]) -> str:
        category = self.lookups.categories.get(category_id) if category_id else None
        if category is None:
            self._miss("category", category_id)
            return UNKNOWN_CATEGORY
        return category.name or UNKNOWN_CATEGORY

    def seller(self, seller_id: Optional[str]) -> tuple[Optional[Seller], bool]:
        """
        Resolve a seller reference.

        Returns:
            (seller, fell_back) where ``fell_back`` is True when the first
            seller of the lookup list was substituted
        """
        seller = self.lookups.sellers.get(seller_id) if seller_id else None
        if seller is not None:
            return seller, False

        self._miss("seller", seller_id)
        if self.fallback_to_first_seller and self.lookups.first_seller is not None:
            self.fallback_seller_assignments += 1
            logger.debug(
                "seller_reference_fallback",
                seller_id=seller_id,
                fallback_seller_id=self.lookups.first_seller.id,
            )
            return self.lookups.first_seller, True
        return None, False

    def resolve_sale(self, sale: SaleRecord) -> ResolvedSale:
        client = self.client(sale.client_id)
        seller, fell_back = self.seller(sale.seller_id)

        return ResolvedSale(
            sale=sale,
            client_name=(client.name if client else None) or UNKNOWN_CLIENT,
            client_email=(client.email if client else None) or "",
            store_name=self.store_name(sale.store_id),
            seller_id=seller.id if seller else None,
            seller_name=(seller.name if seller else None) or UNKNOWN_SELLER,
            seller_email=(seller.email if seller else None) or "",
            seller_fallback=fell_back,
        )

    def resolve_sales(self, sales: Iterable[SaleRecord]) -> list[ResolvedSale]:
        """Resolve every sale; never raises for missing references."""
        resolved = [self.resolve_sale(sale) for sale in sales]
        if self.fallback_seller_assignments:
            logger.info(
                "seller_fallback_applied",
                count=self.fallback_seller_assignments,
                fallback_seller_id=self.lookups.first_seller.id
                if self.lookups.first_seller
                else None,
            )
        return resolved

    def resolve_store_references(self, records: Iterable) -> dict[str, str]:
        """
        Resolve the store of reservations or tickets.

        Records without a store are skipped; dangling store ids are counted
        like those of sales.

        Returns:
            Store display name per referenced store id
        """
        return {
            record.store_id: self.store_name(record.store_id)
            for record in records
            if record.store_id
        }

    def unresolved_counts(self) -> dict[str, int]:
        """Distinct unresolved references per kind; a missing key counts once."""
        return {kind: len(refs) for kind, refs in self.unresolved.items()}
