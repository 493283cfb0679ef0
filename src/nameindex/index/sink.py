"""
Persistence sinks.

File mode writes two JSON artifacts, rewritten whole each cycle:

- names file:    ``["alice.id", "bob.alice.id", ...]``
- profiles file: ``[{"fqu": "alice.id", "profile": {...}}, ...]``

``ensure_writable`` is the pre-flight check run before any network work: it
creates missing parent directories and fails fast with ``SinkPathError``
when an existing path is not writable.

Store mode upserts ``NamespaceEntry`` documents keyed by ``fqu`` into the
``namespace`` collection and raw ``ProfileRecord`` documents into
``profile_data``, one transaction per collection batch.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from nameindex.core.documents import DocumentCollection
from nameindex.core.errors import SinkPathError
from nameindex.core.logging import get_logger
from nameindex.core.models import NamespaceEntry, ProfileRecord

logger = get_logger(__name__)


def ensure_writable(path: str | Path) -> None:
    """Make sure ``path`` can be (over)written, creating parent directories."""
    path = Path(path)
    if path.exists():
        if path.is_dir():
            raise SinkPathError(f"Cannot write to path: {path} is a directory").with_context(path=str(path))
        if not os.access(path, os.W_OK):
            raise SinkPathError(f"Cannot write to path: {path}").with_context(path=str(path))

    parent = path.parent
    if parent.exists():
        if not parent.is_dir() or not os.access(parent, os.W_OK):
            raise SinkPathError(f"Cannot write to path: {parent}").with_context(path=str(parent))
        return

    ancestor = parent
    while not ancestor.exists():
        ancestor = ancestor.parent
    if not ancestor.is_dir() or not os.access(ancestor, os.W_OK):
        raise SinkPathError(f"Cannot write to path: {ancestor}").with_context(path=str(ancestor))
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SinkPathError(f"Cannot create directory: {parent}", cause=e).with_context(path=str(parent)) from e


class FileSink:
    """Writes the names and profiles artifacts."""

    def __init__(self, profiles_path: str | Path, names_path: str | Path):
        self.profiles_path = Path(profiles_path)
        self.names_path = Path(names_path)

    def preflight(self) -> None:
        ensure_writable(self.profiles_path)
        ensure_writable(self.names_path)

    def write(self, names: Sequence[str], records: Sequence[ProfileRecord]) -> None:
        self._dump(self.profiles_path, [record.to_artifact() for record in records])
        self._dump(self.names_path, list(names))
        logger.info(
            "sink.files_written",
            profiles_file=str(self.profiles_path),
            names_file=str(self.names_path),
            profiles=len(records),
            names=len(names),
        )

    def load(self) -> tuple[list[str], list[ProfileRecord]]:
        """Read artifacts written by ``write`` (index-from-files mode)."""
        names = self._read(self.names_path)
        profiles = self._read(self.profiles_path)
        if not isinstance(names, list) or not isinstance(profiles, list):
            raise SinkPathError("Artifacts must contain JSON arrays").with_context(
                names_file=str(self.names_path), profiles_file=str(self.profiles_path)
            )
        try:
            records = [ProfileRecord(name=item["fqu"], profile=item["profile"]) for item in profiles]
        except (KeyError, TypeError) as e:
            raise SinkPathError(f"Malformed profiles artifact: {self.profiles_path}", cause=e).with_context(
                path=str(self.profiles_path)
            ) from e
        return names, records

    @staticmethod
    def _dump(path: Path, payload: Any) -> None:
        try:
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            raise SinkPathError(f"Cannot write to path: {path}", cause=e).with_context(path=str(path)) from e

    @staticmethod
    def _read(path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise SinkPathError(f"Cannot read artifact: {path}", cause=e).with_context(path=str(path)) from e


class StoreSink:
    """Upserts crawl output into one generation's collections."""

    def __init__(self, namespace: DocumentCollection, profile_data: DocumentCollection):
        self.namespace = namespace
        self.profile_data = profile_data

    def upsert(self, entry: NamespaceEntry) -> None:
        self.namespace.upsert(entry.key, entry.to_document())

    def write(self, records: Sequence[ProfileRecord], entries: Sequence[NamespaceEntry]) -> None:
        self.profile_data.upsert_many((record.name, record.to_document()) for record in records)
        self.namespace.upsert_many((entry.key, entry.to_document()) for entry in entries)
        logger.info(
            "sink.store_written",
            database=self.namespace.database,
            namespace=len(entries),
            profile_data=len(records),
        )
