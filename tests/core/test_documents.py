"""
Tests for nameindex.core.documents.

Covers:
- DocumentStore protocol behaviour on both backends (``store`` fixture)
- Copy/drop semantics used by generation rotation
- SQLite persistence across connections and store URL parsing
"""

from __future__ import annotations

import pytest

from nameindex.core.documents import (
    DocumentCollection,
    DocumentStore,
    MemoryDocumentStore,
    SqliteDocumentStore,
    open_document_store,
)
from nameindex.core.errors import ConfigError, StorageError


class TestCollection:
    def test_upsert_and_get(self, store):
        coll = store.collection("db", "namespace")
        coll.upsert("alice.id", {"fqu": "alice.id", "username": "alice"})
        assert coll.get("alice.id") == {"fqu": "alice.id", "username": "alice"}
        assert coll.count() == 1

    def test_upsert_is_last_write_wins(self, store):
        coll = store.collection("db", "namespace")
        coll.upsert("alice.id", {"v": 1, "old": True})
        coll.upsert("alice.id", {"v": 2})
        assert coll.get("alice.id") == {"v": 2}
        assert coll.count() == 1

    def test_upsert_many(self, store):
        coll = store.collection("db", "profiles")
        written = coll.upsert_many([("a.id", {"n": 1}), ("b.id", {"n": 2}), ("a.id", {"n": 3})])
        assert written == 3
        assert coll.count() == 2
        assert coll.get("a.id") == {"n": 3}

    def test_get_missing(self, store):
        assert store.collection("db", "nothing").get("x") is None

    def test_find_returns_all_documents(self, store):
        coll = store.collection("db", "namespace")
        for key in ["c", "a", "b"]:
            coll.upsert(key, {"key": key})
        assert sorted(d["key"] for d in coll.find()) == ["a", "b", "c"]

    def test_stored_documents_are_copies(self, store):
        coll = store.collection("db", "namespace")
        doc = {"profile": {"name": "Alice"}}
        coll.upsert("a", doc)
        doc["profile"]["name"] = "Mallory"
        found = next(coll.find())
        found["profile"]["name"] = "Eve"
        assert coll.get("a") == {"profile": {"name": "Alice"}}

    def test_collections_are_isolated(self, store):
        store.collection("db", "one").upsert("k", {"v": 1})
        assert store.collection("db", "two").count() == 0
        assert store.collection("other", "one").count() == 0

    def test_create_index(self, store):
        coll = store.collection("cache", "people_cache")
        coll.create_index("name")
        assert "name" in coll.indexes()

    def test_create_index_rejects_bad_field(self, store):
        with pytest.raises(StorageError):
            store.collection("cache", "people_cache").create_index("name'); DROP TABLE documents; --")

    def test_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStore)
        assert isinstance(store.collection("db", "c"), DocumentCollection)


class TestDatabases:
    def test_list_databases_and_collections(self, store):
        store.collection("search_db", "namespace").upsert("a", {})
        store.collection("search_db", "profiles").upsert("a", {})
        store.collection("search_cache", "people_cache").upsert("name", {"name": []})
        assert store.list_databases() == ["search_cache", "search_db"]
        assert store.list_collections("search_db") == ["namespace", "profiles"]
        assert store.list_collections("missing") == []

    def test_drop_database(self, store):
        store.collection("search_db_next", "namespace").upsert("a", {})
        store.collection("search_db", "namespace").upsert("a", {})
        store.drop_database("search_db_next")
        assert store.collection("search_db_next", "namespace").count() == 0
        assert "search_db_next" not in store.list_databases()
        assert store.collection("search_db", "namespace").count() == 1

    def test_drop_missing_database_is_noop(self, store):
        store.drop_database("never_created")
        assert store.list_databases() == []

    def test_copy_database(self, store):
        src = store.collection("search_db_next", "namespace")
        src.upsert("a.id", {"fqu": "a.id"})
        src.upsert("b.id", {"fqu": "b.id"})
        store.collection("search_db_next", "profiles").create_index("name")

        store.copy_database("search_db_next", "search_db")

        dst = store.collection("search_db", "namespace")
        assert dst.count() == 2
        assert dst.get("b.id") == {"fqu": "b.id"}
        assert "name" in store.collection("search_db", "profiles").indexes()
        # source untouched
        assert src.count() == 2

    def test_copy_is_independent_of_source(self, store):
        store.collection("src", "c").upsert("k", {"v": 1})
        store.copy_database("src", "dst")
        store.collection("src", "c").upsert("k", {"v": 2})
        assert store.collection("dst", "c").get("k") == {"v": 1}

    def test_copy_missing_source_is_noop(self, store):
        store.copy_database("search_db", "search_db_prior")
        assert store.list_databases() == []


class TestSqliteBackend:
    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "nested" / "search.db"
        first = SqliteDocumentStore(path)
        first.collection("search_db", "namespace").upsert("a.id", {"fqu": "a.id"})
        first.close()

        second = SqliteDocumentStore(path)
        try:
            assert second.collection("search_db", "namespace").get("a.id") == {"fqu": "a.id"}
        finally:
            second.close()

    def test_unserializable_document(self, sqlite_store):
        with pytest.raises(StorageError):
            sqlite_store.collection("db", "c").upsert("k", {"bad": object()})

    def test_failed_batch_rolls_back(self, sqlite_store):
        coll = sqlite_store.collection("db", "c")
        with pytest.raises(StorageError):
            coll.upsert_many([("a", {"ok": 1}), ("b", {"bad": object()})])
        assert coll.count() == 0


class TestOpenDocumentStore:
    def test_memory(self):
        assert isinstance(open_document_store("memory://"), MemoryDocumentStore)

    def test_sqlite_path(self, tmp_path):
        store = open_document_store(f"sqlite:///{tmp_path}/data/search.db")
        try:
            assert isinstance(store, SqliteDocumentStore)
            assert store.path == f"{tmp_path}/data/search.db"
        finally:
            store.close()

    def test_unknown_scheme(self):
        with pytest.raises(ConfigError):
            open_document_store("mongodb://localhost:27017")
