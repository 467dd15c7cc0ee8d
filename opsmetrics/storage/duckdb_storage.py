"""
DuckDB storage implementation of the collection access port.

Documents of every entity kind live in a single table keyed by
(collection, doc_id), with the raw document kept as JSON and its range
timestamp extracted into an indexed column at write time. Equality
predicates are evaluated against the JSON payload.

Key features:
- Thread-safe per-thread connections (reads are fanned out over threads)
- Automatic schema creation
- Idempotent writes (delete-then-insert on the document key)
- Comprehensive error handling with structured logging
"""

import json
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import duckdb
import structlog

from opsmetrics.models.enums import EntityKind
from opsmetrics.models.filters import CollectionQuery

from .base import CollectionStore, StorageError, document_id, document_timestamp

logger = structlog.get_logger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _json_path(field: str) -> str:
    escaped = field.replace("\\", "\\\\").replace('"', '\\"')
    return f'$."{escaped}"'


class DuckDBCollectionStore(CollectionStore):
    """
    DuckDB implementation of the collection store.

    Attributes:
        db_path: Path to the DuckDB database file
        _local: Thread-local storage for per-thread connections
        _lock: Thread lock for schema operations
        _initialized: Flag tracking whether schema is initialized
    """

    def __init__(self, db_path: str = "./data/opsmetrics.duckdb"):
        """
        Initialize DuckDB collection store.

        Args:
            db_path: Path to DuckDB database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

        logger.info("duckdb_store_initialized", db_path=str(self.db_path))

        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get a thread-local DuckDB connection.

        Yields:
            DuckDB connection instance

        Raises:
            StorageError: If connection cannot be established
        """
        if not hasattr(self._local, "connection"):
            try:
                self._local.connection = duckdb.connect(str(self.db_path))
                logger.debug("duckdb_connection_created", thread_id=threading.get_ident())
            except Exception as e:
                logger.error("duckdb_connection_failed", error=str(e))
                raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        yield self._local.connection

    def _initialize_schema(self):
        """
        Create the document table and its index. Idempotent.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS collection_documents (
                            collection VARCHAR NOT NULL,
                            doc_id VARCHAR NOT NULL,
                            ts TIMESTAMP,
                            payload JSON NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_collection_documents_key
                        ON collection_documents(collection, doc_id)
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_collection_documents_ts
                        ON collection_documents(collection, ts)
                    """)

                self._initialized = True
                logger.info("duckdb_schema_initialized")
            except duckdb.Error as e:
                logger.error("duckdb_schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def fetch(self, kind: EntityKind, query: Optional[CollectionQuery] = None) -> list[dict]:
        """Read documents of one kind from the document table."""
        query = query or CollectionQuery()
        try:
            with self._get_connection() as conn:
                sql = """
                    SELECT payload
                    FROM collection_documents
                    WHERE collection = ?
                """
                params: list[Any] = [kind.value]

                if query.start is not None:
                    sql += " AND ts >= ?"
                    params.append(query.start)

                if query.end is not None:
                    sql += " AND ts < ?"
                    params.append(query.end)

                for field, value in query.equality_filters().items():
                    sql += " AND json_extract_string(payload, ?) = ?"
                    params.extend([_json_path(field), value])

                sql += " ORDER BY ts ASC NULLS LAST, doc_id ASC"

                rows = conn.execute(sql, params).fetchall()

            documents = [json.loads(row[0]) for row in rows]
            logger.debug("duckdb_fetch", kind=kind.value, matched=len(documents))
            return documents

        except duckdb.Error as e:
            logger.error("duckdb_fetch_failed", kind=kind.value, error=str(e))
            raise StorageError(f"Failed to read collection {kind.value}: {e}") from e

    def write_documents(self, kind: EntityKind, documents: list[dict]) -> int:
        """Insert or replace documents of one kind; the last duplicate id wins."""
        by_id: dict[str, tuple] = {}
        for document in documents:
            doc_id = document_id(document)
            if doc_id is None:
                raise StorageError(f"Document without id in collection {kind.value}")
            by_id[doc_id] = (
                kind.value,
                doc_id,
                document_timestamp(kind, document),
                json.dumps(document, default=_json_default),
            )

        if not by_id:
            return 0

        rows = list(by_id.values())
        try:
            with self._get_connection() as conn:
                conn.executemany(
                    "DELETE FROM collection_documents WHERE collection = ? AND doc_id = ?",
                    [(kind.value, doc_id) for doc_id in by_id],
                )
                conn.executemany(
                    """
                    INSERT INTO collection_documents (collection, doc_id, ts, payload)
                    VALUES (?, ?, ?, ?)
                    """,
                    rows,
                )
            logger.info("duckdb_documents_written", kind=kind.value, count=len(rows))
            return len(rows)

        except duckdb.Error as e:
            logger.error("duckdb_write_failed", kind=kind.value, error=str(e))
            raise StorageError(f"Failed to write collection {kind.value}: {e}") from e

    def clear(self, kind: Optional[EntityKind] = None) -> None:
        """Delete documents; used by tests and reseeding scripts."""
        try:
            with self._get_connection() as conn:
                if kind is None:
                    conn.execute("DELETE FROM collection_documents")
                else:
                    conn.execute(
                        "DELETE FROM collection_documents WHERE collection = ?",
                        [kind.value],
                    )
        except duckdb.Error as e:
            logger.error("duckdb_clear_failed", error=str(e))
            raise StorageError(f"Failed to clear documents: {e}") from e

    def close(self) -> None:
        """Close the calling thread's connection, if any."""
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            del self._local.connection
