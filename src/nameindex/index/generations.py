"""
Generational index rotation: next -> current -> prior.

Every index lives in two databases (``search_db`` and ``search_cache``),
one copy per generation:

    ┌──────────────┬──────────────────┬─────────────────────┐
    │ generation   │ search_db        │ search_cache        │
    ├──────────────┼──────────────────┼─────────────────────┤
    │ next         │ search_db_next   │ search_cache_next   │  being built
    │ current      │ search_db        │ search_cache        │  served to readers
    │ prior        │ search_db_prior  │ search_cache_prior  │  rollback point
    └──────────────┴──────────────────┴─────────────────────┘

``promote(build)`` runs, in order:

    1. clear next
    2. build into next          (failure -> GenerationBuildError)
    3. clear prior
    4. copy current -> prior
    5. clear current
    6. copy next -> current

A failure in step 1 or steps 3-6 raises ``PromotionError`` naming the step;
later steps are not attempted. Build failures never touch ``current`` or
``prior``.

Unavailability window:
    Steps 5 and 6 are separate storage operations. Between them there is no
    ``current``; a reader querying then sees empty collections, and a crash
    there leaves ``current`` empty until the next successful promotion or an
    operator ``rollback()`` (prior -> current). ``PromotionError.current_at_risk``
    flags failures from step 5 on. Each single drop/copy is atomic per
    database on the SQLite store; the window is only between calls.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from nameindex.core.documents import DocumentCollection, DocumentStore
from nameindex.core.errors import GenerationBuildError, NameIndexError, PromotionError, StorageError
from nameindex.core.logging import get_logger
from nameindex.core.models import CacheKind

logger = get_logger(__name__)

T = TypeVar("T")

SEARCH_DB = "search_db"
SEARCH_CACHE = "search_cache"

NAMESPACE_COLLECTION = "namespace"
PROFILE_DATA_COLLECTION = "profile_data"
SEARCH_PROFILES_COLLECTION = "profiles"


class Generation(str, Enum):
    NEXT = "next"
    CURRENT = "current"
    PRIOR = "prior"

    @property
    def suffix(self) -> str:
        return "" if self is Generation.CURRENT else f"_{self.value}"


@dataclass(frozen=True)
class IndexCollections:
    """The collections making up one generation of the index."""

    generation: Generation
    search_db: str
    search_cache: str
    namespace: DocumentCollection
    profile_data: DocumentCollection
    profiles: DocumentCollection
    caches: dict[CacheKind, DocumentCollection]


@dataclass
class PromotionReport(Generic[T]):
    build_result: T
    steps_completed: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class GenerationManager:
    """Rotates generations of the search databases in a document store."""

    def __init__(self, store: DocumentStore, databases: tuple[str, ...] = (SEARCH_DB, SEARCH_CACHE)):
        self.store = store
        self.databases = databases

    def database_name(self, base: str, generation: Generation) -> str:
        return f"{base}{generation.suffix}"

    def collections(self, generation: Generation) -> IndexCollections:
        search_db = self.database_name(SEARCH_DB, generation)
        search_cache = self.database_name(SEARCH_CACHE, generation)
        return IndexCollections(
            generation=generation,
            search_db=search_db,
            search_cache=search_cache,
            namespace=self.store.collection(search_db, NAMESPACE_COLLECTION),
            profile_data=self.store.collection(search_db, PROFILE_DATA_COLLECTION),
            profiles=self.store.collection(search_db, SEARCH_PROFILES_COLLECTION),
            caches={kind: self.store.collection(search_cache, kind.collection) for kind in CacheKind},
        )

    # -- primitive steps --------------------------------------------------

    def clear(self, generation: Generation) -> None:
        for base in self.databases:
            self.store.drop_database(self.database_name(base, generation))

    def copy(self, source: Generation, target: Generation) -> None:
        for base in self.databases:
            self.store.copy_database(self.database_name(base, source), self.database_name(base, target))

    def _step(self, number: int, name: str, action: Callable[[], None], report: PromotionReport[Any]) -> None:
        logger.info("generation.step", step=number, name=name)
        try:
            action()
        except Exception as e:
            logger.error("generation.step_failed", step=number, name=name, error=str(e))
            raise PromotionError(
                f"Generation rotation failed at step {number} ({name})",
                step=number,
                step_name=name,
                cause=e,
            ) from e
        report.steps_completed.append(name)

    # -- protocol ---------------------------------------------------------

    async def promote(self, build: Callable[[IndexCollections], Awaitable[T]]) -> PromotionReport[T]:
        """Build a fresh ``next`` generation and rotate it into ``current``."""
        started = time.monotonic()
        report: PromotionReport[T] = PromotionReport(build_result=None)  # type: ignore[arg-type]

        self._step(1, "clear_next", lambda: self.clear(Generation.NEXT), report)

        logger.info("generation.step", step=2, name="build_next")
        try:
            report.build_result = await build(self.collections(Generation.NEXT))
        except NameIndexError as e:
            raise GenerationBuildError(f"Building next generation failed: {e.message}", cause=e) from e
        except Exception as e:
            raise GenerationBuildError(f"Building next generation failed: {e}", cause=e) from e
        report.steps_completed.append("build_next")

        self._step(3, "clear_prior", lambda: self.clear(Generation.PRIOR), report)
        self._step(4, "copy_current_to_prior", lambda: self.copy(Generation.CURRENT, Generation.PRIOR), report)
        self._step(5, "clear_current", lambda: self.clear(Generation.CURRENT), report)
        self._step(6, "copy_next_to_current", lambda: self.copy(Generation.NEXT, Generation.CURRENT), report)

        report.duration_seconds = time.monotonic() - started
        logger.info("generation.promoted", duration_seconds=round(report.duration_seconds, 3))
        return report

    def has_generation(self, generation: Generation) -> bool:
        return any(self.store.list_collections(self.database_name(base, generation)) for base in self.databases)

    def rollback(self) -> None:
        """Restore ``prior`` into ``current``; ``prior`` is kept."""
        if not self.has_generation(Generation.PRIOR):
            raise StorageError("No prior generation to roll back to")
        logger.warning("generation.rollback")
        self.clear(Generation.CURRENT)
        self.copy(Generation.PRIOR, Generation.CURRENT)

    def status(self) -> dict[str, dict[str, dict[str, int]]]:
        """Document counts per generation, database and collection."""
        result: dict[str, dict[str, dict[str, int]]] = {}
        for generation in Generation:
            per_db: dict[str, dict[str, int]] = {}
            for base in self.databases:
                database = self.database_name(base, generation)
                per_db[database] = {
                    name: self.store.collection(database, name).count()
                    for name in self.store.list_collections(database)
                }
            result[generation.value] = per_db
        return result
