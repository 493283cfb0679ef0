"""
Document store protocol (SYNC-ONLY) and its backends.

The indexer needs very little from storage: named databases holding named
collections of JSON documents, upsert by key, full scans, and whole-database
drop and copy so generations can be rotated.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                   DocumentStore protocol                      │
        │  collection(db, name) | drop_database | copy_database | ...  │
        └──────────────────────────────────────────────────────────────┘
                         │                          │
            ┌────────────▼───────────┐  ┌───────────▼────────────────┐
            │ MemoryDocumentStore    │  │ SqliteDocumentStore        │
            │ dicts, deep copies     │  │ one ``documents`` table    │
            │ (tests, dry runs)      │  │ keyed (db, coll, key)      │
            └────────────────────────┘  └────────────────────────────┘

Guardrails:
    - Upserts are last-write-wins per key; a document is replaced whole
    - ``drop_database`` and ``copy_database`` each run as one transaction on
      SQLite, so readers see a database either before or after the call
    - Copying a database that does not exist is a no-op, matching a first
      run where no ``current`` generation exists yet
    - Stored documents are copies: mutating a dict after ``upsert`` or
      after ``find`` never changes what is stored

Examples:
    >>> store = open_document_store("memory://")
    >>> coll = store.collection("search_db_next", "namespace")
    >>> coll.upsert("alice.id", {"fqu": "alice.id", "username": "alice"})
    >>> coll.count()
    1
    >>> store.copy_database("search_db_next", "search_db")
    >>> store.collection("search_db", "namespace").get("alice.id")["username"]
    'alice'
"""

from __future__ import annotations

import copy
import json
import re
import sqlite3
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from nameindex.core.errors import ConfigError, StorageError

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@runtime_checkable
class DocumentCollection(Protocol):
    """One named collection inside a database."""

    database: str
    name: str

    def upsert(self, key: str, document: dict[str, Any]) -> None: ...

    def upsert_many(self, items: Iterable[tuple[str, dict[str, Any]]]) -> int: ...

    def get(self, key: str) -> dict[str, Any] | None: ...

    def find(self) -> Iterator[dict[str, Any]]: ...

    def count(self) -> int: ...

    def create_index(self, field: str) -> None: ...


@runtime_checkable
class DocumentStore(Protocol):
    """Named databases of named collections."""

    def collection(self, database: str, name: str) -> DocumentCollection: ...

    def drop_database(self, database: str) -> None: ...

    def copy_database(self, source: str, target: str) -> None: ...

    def list_databases(self) -> list[str]: ...

    def list_collections(self, database: str) -> list[str]: ...

    def close(self) -> None: ...


def _check_field(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise StorageError(f"Invalid index field name: {field!r}")
    return field


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================


class MemoryCollection:
    def __init__(self, store: MemoryDocumentStore, database: str, name: str):
        self._store = store
        self.database = database
        self.name = name

    def _docs(self, create: bool = False) -> dict[str, dict[str, Any]] | None:
        db = self._store._data.get(self.database)
        if db is None:
            if not create:
                return None
            db = self._store._data.setdefault(self.database, {})
        coll = db.get(self.name)
        if coll is None and create:
            coll = db.setdefault(self.name, {})
        return coll

    def upsert(self, key: str, document: dict[str, Any]) -> None:
        self._docs(create=True)[key] = copy.deepcopy(document)

    def upsert_many(self, items: Iterable[tuple[str, dict[str, Any]]]) -> int:
        docs = self._docs(create=True)
        count = 0
        for key, document in items:
            docs[key] = copy.deepcopy(document)
            count += 1
        return count

    def get(self, key: str) -> dict[str, Any] | None:
        docs = self._docs()
        if docs is None or key not in docs:
            return None
        return copy.deepcopy(docs[key])

    def find(self) -> Iterator[dict[str, Any]]:
        docs = self._docs() or {}
        for key in sorted(docs):
            yield copy.deepcopy(docs[key])

    def count(self) -> int:
        return len(self._docs() or {})

    def create_index(self, field: str) -> None:
        self._docs(create=True)
        self._store._indexes.setdefault((self.database, self.name), set()).add(_check_field(field))

    def indexes(self) -> set[str]:
        return set(self._store._indexes.get((self.database, self.name), set()))


class MemoryDocumentStore:
    """Process-local store backed by nested dicts."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, dict[str, Any]]]] = {}
        self._indexes: dict[tuple[str, str], set[str]] = {}

    def collection(self, database: str, name: str) -> MemoryCollection:
        return MemoryCollection(self, database, name)

    def drop_database(self, database: str) -> None:
        self._data.pop(database, None)
        for db, coll in list(self._indexes):
            if db == database:
                del self._indexes[(db, coll)]

    def copy_database(self, source: str, target: str) -> None:
        if source not in self._data:
            return
        copied = copy.deepcopy(self._data[source])
        target_db = self._data.setdefault(target, {})
        for name, docs in copied.items():
            target_db.setdefault(name, {}).update(docs)
        for (db, coll), fields in list(self._indexes.items()):
            if db == source:
                self._indexes.setdefault((target, coll), set()).update(fields)

    def list_databases(self) -> list[str]:
        return sorted(self._data)

    def list_collections(self, database: str) -> list[str]:
        return sorted(self._data.get(database, {}))

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"MemoryDocumentStore(databases={self.list_databases()!r})"


# =============================================================================
# SQLITE BACKEND
# =============================================================================

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        db   TEXT NOT NULL,
        coll TEXT NOT NULL,
        key  TEXT NOT NULL,
        body TEXT NOT NULL,
        PRIMARY KEY (db, coll, key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS collections (
        db   TEXT NOT NULL,
        coll TEXT NOT NULL,
        PRIMARY KEY (db, coll)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS document_indexes (
        db    TEXT NOT NULL,
        coll  TEXT NOT NULL,
        field TEXT NOT NULL,
        PRIMARY KEY (db, coll, field)
    )
    """,
)

_UPSERT_SQL = (
    "INSERT INTO documents (db, coll, key, body) VALUES (?, ?, ?, ?) "
    "ON CONFLICT (db, coll, key) DO UPDATE SET body = excluded.body"
)
_REGISTER_SQL = "INSERT OR IGNORE INTO collections (db, coll) VALUES (?, ?)"


def _encode(document: dict[str, Any]) -> str:
    try:
        return json.dumps(document, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise StorageError("Document is not JSON serializable", cause=e) from e


class SqliteCollection:
    def __init__(self, store: SqliteDocumentStore, database: str, name: str):
        self._store = store
        self.database = database
        self.name = name

    def upsert(self, key: str, document: dict[str, Any]) -> None:
        body = _encode(document)
        with self._store._transaction() as conn:
            conn.execute(_REGISTER_SQL, (self.database, self.name))
            conn.execute(_UPSERT_SQL, (self.database, self.name, key, body))

    def upsert_many(self, items: Iterable[tuple[str, dict[str, Any]]]) -> int:
        rows = [(self.database, self.name, key, _encode(doc)) for key, doc in items]
        with self._store._transaction() as conn:
            conn.execute(_REGISTER_SQL, (self.database, self.name))
            conn.executemany(_UPSERT_SQL, rows)
        return len(rows)

    def get(self, key: str) -> dict[str, Any] | None:
        row = self._store._query_one(
            "SELECT body FROM documents WHERE db = ? AND coll = ? AND key = ?",
            (self.database, self.name, key),
        )
        return json.loads(row[0]) if row else None

    def find(self) -> Iterator[dict[str, Any]]:
        rows = self._store._query_all(
            "SELECT body FROM documents WHERE db = ? AND coll = ? ORDER BY key",
            (self.database, self.name),
        )
        for (body,) in rows:
            yield json.loads(body)

    def count(self) -> int:
        row = self._store._query_one(
            "SELECT COUNT(*) FROM documents WHERE db = ? AND coll = ?",
            (self.database, self.name),
        )
        return int(row[0])

    def create_index(self, field: str) -> None:
        field = _check_field(field)
        with self._store._transaction() as conn:
            conn.execute(_REGISTER_SQL, (self.database, self.name))
            conn.execute(
                "INSERT OR IGNORE INTO document_indexes (db, coll, field) VALUES (?, ?, ?)",
                (self.database, self.name, field),
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS ix_documents_{field} "
                f"ON documents (db, coll, json_extract(body, '$.{field}'))"
            )

    def indexes(self) -> set[str]:
        rows = self._store._query_all(
            "SELECT field FROM document_indexes WHERE db = ? AND coll = ?",
            (self.database, self.name),
        )
        return {row[0] for row in rows}


class SqliteDocumentStore:
    """SQLite-backed store; every database lives in the same file."""

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
            for statement in _SCHEMA:
                self._conn.execute(statement)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open document store at {self.path}", cause=e) from e

    # -- internals ---------------------------------------------------------

    def _transaction(self) -> _Transaction:
        return _Transaction(self._conn)

    def _query_one(self, sql: str, params: tuple = ()) -> Any:
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError("Document store query failed", cause=e) from e

    def _query_all(self, sql: str, params: tuple = ()) -> list[Any]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError("Document store query failed", cause=e) from e

    # -- DocumentStore protocol -------------------------------------------

    def collection(self, database: str, name: str) -> SqliteCollection:
        return SqliteCollection(self, database, name)

    def drop_database(self, database: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM documents WHERE db = ?", (database,))
            conn.execute("DELETE FROM collections WHERE db = ?", (database,))
            conn.execute("DELETE FROM document_indexes WHERE db = ?", (database,))

    def copy_database(self, source: str, target: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO documents (db, coll, key, body) "
                "SELECT ?, coll, key, body FROM documents WHERE db = ?",
                (target, source),
            )
            conn.execute(
                "INSERT OR IGNORE INTO collections (db, coll) SELECT ?, coll FROM collections WHERE db = ?",
                (target, source),
            )
            conn.execute(
                "INSERT OR IGNORE INTO document_indexes (db, coll, field) "
                "SELECT ?, coll, field FROM document_indexes WHERE db = ?",
                (target, source),
            )

    def list_databases(self) -> list[str]:
        return [row[0] for row in self._query_all("SELECT DISTINCT db FROM collections ORDER BY db")]

    def list_collections(self, database: str) -> list[str]:
        rows = self._query_all("SELECT coll FROM collections WHERE db = ? ORDER BY coll", (database,))
        return [row[0] for row in rows]

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteDocumentStore({self.path!r})"


class _Transaction:
    """``BEGIN IMMEDIATE`` ... ``COMMIT``; rolls back and raises StorageError on failure."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def __enter__(self) -> sqlite3.Connection:
        try:
            self._conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StorageError("Cannot begin transaction", cause=e) from e
        return self._conn

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        if exc_type is None:
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._conn.execute("ROLLBACK")
                raise StorageError("Commit failed", cause=e) from e
            return False
        self._conn.execute("ROLLBACK")
        if isinstance(exc, sqlite3.Error):
            raise StorageError("Document store write failed", cause=exc) from exc
        return False


# =============================================================================
# FACTORY
# =============================================================================


def open_document_store(url: str) -> DocumentStore:
    """Open a store from ``memory://`` or ``sqlite:///relative/or//abs/path``."""
    if url == "memory://":
        return MemoryDocumentStore()
    if url.startswith("sqlite://"):
        path = url[len("sqlite:///"):] if url.startswith("sqlite:///") else ""
        return SqliteDocumentStore(path or ":memory:")
    raise ConfigError(f"Unsupported store URL: {url!r}").with_context(store_url=url)
