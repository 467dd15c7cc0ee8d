"""
Abstract collection access port for the operational metrics engine.

The engine never talks to a database directly: it asks a ``CollectionStore``
for the raw documents of one entity kind, optionally restricted to a
timestamp range and to attribute equality predicates. Stores do no caching
and no joins; cross-references are resolved by the engine in memory.

Documents are returned as plain dicts in the store's own key conventions
(``$id``, ``$createdAt``, camelCase attributes). Validation into typed
records is the engine's job.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from opsmetrics.models.enums import EntityKind
from opsmetrics.models.filters import CollectionQuery
from opsmetrics.models.records import to_naive_utc


class StorageError(Exception):
    """Base exception for all storage operation failures."""

    pass


# Attribute names holding the timestamp a range predicate applies to, in
# priority order. Kinds absent from this map have no time dimension and
# ignore range predicates.
TIMESTAMP_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.SALES: ("occurredAt", "saleDate", "$createdAt", "createdAt"),
    EntityKind.CLIENTS: ("createdAt", "$createdAt"),
    EntityKind.RESERVATIONS: ("createdAt", "$createdAt"),
    EntityKind.SERVICE_TICKETS: ("createdAt", "$createdAt"),
    EntityKind.STOCK_MOVEMENTS: ("createdAt", "$createdAt"),
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a document timestamp into naive UTC.

    Accepts datetimes and ISO 8601 strings (including a trailing ``Z``).
    Returns None for missing or unparseable values.
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def document_timestamp(kind: EntityKind, document: dict) -> Optional[datetime]:
    """Timestamp of a document for range predicates, or None."""
    for field in TIMESTAMP_FIELDS.get(kind, ()):
        parsed = parse_timestamp(document.get(field))
        if parsed is not None:
            return parsed
    return None


def document_id(document: dict) -> Optional[str]:
    raw = document.get("$id", document.get("id"))
    return None if raw is None else str(raw)


class CollectionStore(ABC):
    """
    Abstract base class for collection access port implementations.

    Implementations must:
    - Treat an absent predicate as "unfiltered"
    - Apply range predicates as ``start <= timestamp < end`` on the fields
      listed in ``TIMESTAMP_FIELDS``; documents without a timestamp never
      match a range predicate
    - Raise ``StorageError`` on failure; callers decide how to degrade
    """

    @abstractmethod
    def fetch(self, kind: EntityKind, query: Optional[CollectionQuery] = None) -> list[dict]:
        """
        Read the raw documents of one entity kind.

        Args:
            kind: Collection to read
            query: Optional range and equality predicates

        Returns:
            Matching raw documents, ordered by timestamp when the kind has one

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def write_documents(self, kind: EntityKind, documents: list[dict]) -> int:
        """
        Insert or replace documents of one entity kind, keyed by ``$id``/``id``.

        Args:
            kind: Target collection
            documents: Raw documents

        Returns:
            Count of documents written

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def clear(self, kind: Optional[EntityKind] = None) -> None:
        """Delete all documents of one kind, or of every kind when omitted."""
        pass
