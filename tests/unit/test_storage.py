"""
Unit tests for the collection store adapters.

Both adapters must honour the same predicate semantics, so every behavior
is checked against the DuckDB store and the in-memory store alike.
"""

from datetime import datetime, timedelta

import pytest

from opsmetrics.models.enums import EntityKind
from opsmetrics.models.filters import CollectionQuery
from opsmetrics.storage.base import StorageError, document_timestamp, parse_timestamp
from opsmetrics.storage.duckdb_storage import DuckDBCollectionStore
from opsmetrics.storage.memory_storage import InMemoryCollectionStore
from tests.conftest import NOW, make_sale, make_store, make_ticket


@pytest.fixture(params=["duckdb", "memory"])
def store(request, tmp_path):
    if request.param == "duckdb":
        duck = DuckDBCollectionStore(db_path=str(tmp_path / "collections.duckdb"))
        yield duck
        duck.close()
    else:
        yield InMemoryCollectionStore()


def _ids(documents: list[dict]) -> list[str]:
    return [document["$id"] for document in documents]


class TestTimestamps:
    """Test timestamp extraction helpers."""

    def test_parse_timestamp_handles_zulu_suffix(self):
        assert parse_timestamp("2026-02-10T12:00:00Z") == NOW
        assert parse_timestamp("2026-02-10T13:00:00+01:00") == NOW

    @pytest.mark.parametrize("value", [None, "", "yesterday", 42])
    def test_parse_timestamp_rejects_garbage(self, value):
        assert parse_timestamp(value) is None

    def test_sale_timestamp_prefers_sale_date_over_creation(self):
        document = make_sale(occurred_at=NOW, **{"$createdAt": "2020-01-01T00:00:00Z"})
        assert document_timestamp(EntityKind.SALES, document) == NOW

    def test_lookup_kinds_have_no_timestamp(self):
        assert document_timestamp(EntityKind.STORES, {"$createdAt": "2026-01-01T00:00:00Z"}) is None


class TestCollectionStores:
    """Test predicate semantics shared by both adapters."""

    def test_unfiltered_fetch_returns_everything(self, store):
        store.write_documents(EntityKind.STORES, [make_store(store_id="a"), make_store(store_id="b")])
        assert sorted(_ids(store.fetch(EntityKind.STORES))) == ["a", "b"]

    def test_range_is_half_open(self, store):
        store.write_documents(
            EntityKind.SALES,
            [
                make_sale(sale_id="before", occurred_at=NOW - timedelta(days=8)),
                make_sale(sale_id="start", occurred_at=NOW - timedelta(days=7)),
                make_sale(sale_id="inside", occurred_at=NOW - timedelta(days=1)),
                make_sale(sale_id="end", occurred_at=NOW),
            ],
        )
        query = CollectionQuery(start=NOW - timedelta(days=7), end=NOW)
        assert _ids(store.fetch(EntityKind.SALES, query)) == ["start", "inside"]

    def test_range_excludes_documents_without_timestamp(self, store):
        store.write_documents(
            EntityKind.SERVICE_TICKETS,
            [make_ticket(**{"$id": "t1"}), {"$id": "t2", "status": "nouvelle"}],
        )
        query = CollectionQuery(start=NOW - timedelta(days=1), end=NOW)
        assert _ids(store.fetch(EntityKind.SERVICE_TICKETS, query)) == ["t1"]
        assert len(store.fetch(EntityKind.SERVICE_TICKETS)) == 2

    def test_store_and_equality_filters(self, store):
        store.write_documents(
            EntityKind.SALES,
            [
                make_sale(sale_id="s1", store_id="st_1", client_id="cl_1"),
                make_sale(sale_id="s2", store_id="st_1", client_id="cl_2"),
                make_sale(sale_id="s3", store_id="st_2", client_id="cl_1"),
            ],
        )
        query = CollectionQuery(store_id="st_1", equals={"clientId": "cl_1"})
        assert _ids(store.fetch(EntityKind.SALES, query)) == ["s1"]

    def test_results_ordered_by_timestamp(self, store):
        store.write_documents(
            EntityKind.SALES,
            [
                make_sale(sale_id="late", occurred_at=NOW - timedelta(hours=1)),
                make_sale(sale_id="early", occurred_at=NOW - timedelta(hours=5)),
            ],
        )
        assert _ids(store.fetch(EntityKind.SALES)) == ["early", "late"]

    def test_write_replaces_by_id(self, store):
        store.write_documents(EntityKind.STORES, [make_store("Old Name", store_id="a")])
        store.write_documents(EntityKind.STORES, [make_store("New Name", store_id="a")])

        documents = store.fetch(EntityKind.STORES)
        assert len(documents) == 1
        assert documents[0]["name"] == "New Name"

    def test_documents_round_trip_with_original_keys(self, store):
        original = make_sale(sale_id="s1", amount=42.5, store_id="st_1")
        store.write_documents(EntityKind.SALES, [original])
        assert store.fetch(EntityKind.SALES)[0] == original

    def test_datetime_values_are_serialized(self, store):
        store.write_documents(
            EntityKind.SALES, [{"$id": "s1", "totalAmount": 1, "saleDate": datetime(2026, 2, 9)}]
        )
        document = store.fetch(EntityKind.SALES, CollectionQuery(start=datetime(2026, 2, 9)))[0]
        assert document["$id"] == "s1"

    def test_kinds_are_isolated(self, store):
        store.write_documents(EntityKind.STORES, [make_store(store_id="a")])
        assert store.fetch(EntityKind.SELLERS) == []

    def test_clear_one_kind_and_all(self, store):
        store.write_documents(EntityKind.STORES, [make_store(store_id="a")])
        store.write_documents(EntityKind.SALES, [make_sale(sale_id="s1")])

        store.clear(EntityKind.STORES)
        assert store.fetch(EntityKind.STORES) == []
        assert len(store.fetch(EntityKind.SALES)) == 1

        store.clear()
        assert store.fetch(EntityKind.SALES) == []

    def test_document_without_id_rejected(self, store):
        with pytest.raises(StorageError):
            store.write_documents(EntityKind.STORES, [{"name": "Nameless"}])


class TestDuckDBPersistence:
    """Test that documents survive reopening the database file."""

    def test_documents_persist_across_instances(self, tmp_path):
        path = str(tmp_path / "persist.duckdb")
        first = DuckDBCollectionStore(db_path=path)
        first.write_documents(EntityKind.STORES, [make_store(store_id="a")])
        first.close()

        second = DuckDBCollectionStore(db_path=path)
        try:
            assert _ids(second.fetch(EntityKind.STORES)) == ["a"]
        finally:
            second.close()
