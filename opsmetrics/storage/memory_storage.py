"""
In-process collection store.

Holds documents in plain dicts and evaluates predicates in Python with the
same semantics as the DuckDB adapter. Used for tests, demos and callers that
already hold their rows in memory.
"""

from collections import defaultdict
from typing import Optional

import structlog

from opsmetrics.models.enums import EntityKind
from opsmetrics.models.filters import CollectionQuery

from .base import CollectionStore, StorageError, document_id, document_timestamp

logger = structlog.get_logger(__name__)


class InMemoryCollectionStore(CollectionStore):
    """
    Dict-backed collection store.

    Attributes:
        _documents: Documents per kind, keyed by document id in insertion order
    """

    def __init__(self, documents: Optional[dict[EntityKind, list[dict]]] = None):
        self._documents: dict[EntityKind, dict[str, dict]] = defaultdict(dict)
        for kind, docs in (documents or {}).items():
            self.write_documents(kind, docs)

    def fetch(self, kind: EntityKind, query: Optional[CollectionQuery] = None) -> list[dict]:
        query = query or CollectionQuery()
        equals = query.equality_filters()
        ranged = query.start is not None or query.end is not None

        matched = []
        for document in self._documents.get(kind, {}).values():
            if any(_as_text(document.get(field)) != value for field, value in equals.items()):
                continue
            timestamp = document_timestamp(kind, document)
            if ranged:
                if timestamp is None:
                    continue
                if query.start is not None and timestamp < query.start:
                    continue
                if query.end is not None and timestamp >= query.end:
                    continue
            matched.append((timestamp, document))

        matched.sort(key=lambda pair: (pair[0] is None, pair[0] or 0))
        logger.debug("memory_fetch", kind=kind.value, matched=len(matched))
        return [dict(document) for _, document in matched]

    def write_documents(self, kind: EntityKind, documents: list[dict]) -> int:
        collection = self._documents[kind]
        for document in documents:
            doc_id = document_id(document)
            if doc_id is None:
                raise StorageError(f"Document without id in collection {kind.value}")
            collection[doc_id] = dict(document)
        return len(documents)

    def clear(self, kind: Optional[EntityKind] = None) -> None:
        if kind is None:
            self._documents.clear()
        else:
            self._documents.pop(kind, None)


def _as_text(value) -> Optional[str]:
    return None if value is None else str(value)
