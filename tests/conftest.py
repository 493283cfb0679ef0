"""
Shared pytest fixtures for nameindex tests.

Provides:
- Document stores (memory and SQLite) for storage-facing tests
- Settings pointing at a fake directory and temporary artifact paths
- Environment isolation for ``NAMEINDEX_*`` variables

Fakes for the directory service live in ``tests._support.fakes``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from nameindex.core.documents import MemoryDocumentStore, SqliteDocumentStore
from nameindex.core.settings import IndexerSettings, clear_settings_cache
from tests._support.fakes import API_URL, FakeResolver


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep host NAMEINDEX_* variables and cached settings out of tests."""
    for key in list(os.environ):
        if key.startswith("NAMEINDEX_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SqliteDocumentStore(tmp_path / "store" / "search.db")
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    """Every DocumentStore backend, for protocol-level tests."""
    if request.param == "memory":
        yield MemoryDocumentStore()
        return
    backend = SqliteDocumentStore(tmp_path / "search.db")
    yield backend
    backend.close()


@pytest.fixture
def settings(tmp_path: Path) -> IndexerSettings:
    return IndexerSettings(
        api_url=API_URL,
        store_url="memory://",
        names_file=tmp_path / "out" / "names.json",
        profiles_file=tmp_path / "out" / "profiles.json",
        batch_size=2,
        lookup_timeout_seconds=1.0,
        max_simultaneous_fetches=4,
        _env_file=None,
    )


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver()
