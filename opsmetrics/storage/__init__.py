"""
Collection access port and its adapters.

DuckDBCollectionStore: documents persisted in a local DuckDB file
InMemoryCollectionStore: documents held in process memory
"""

from functools import lru_cache

from opsmetrics.config import get_settings

from .base import TIMESTAMP_FIELDS, CollectionStore, StorageError
from .duckdb_storage import DuckDBCollectionStore
from .memory_storage import InMemoryCollectionStore


@lru_cache
def get_collection_store() -> CollectionStore:
    """
    Get cached collection store instance (singleton).

    Returns:
        CollectionStore implementation configured by settings
    """
    settings = get_settings()
    return DuckDBCollectionStore(db_path=settings.db_path)


__all__ = [
    "TIMESTAMP_FIELDS",
    "CollectionStore",
    "DuckDBCollectionStore",
    "InMemoryCollectionStore",
    "StorageError",
    "get_collection_store",
]
