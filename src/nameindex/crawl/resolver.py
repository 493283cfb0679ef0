"""
Bounded, failure-tolerant profile resolution.

Architecture:
    ::

        names ──► batchify(batch_size) ──► [b0] [b1] [b2] ...
                                             │
                  ┌──────────────────────────┘   one batch at a time
                  ▼
        ┌───────────────────────────────────────────────────────────┐
        │ gather(lookup(n) for n in batch)      all concurrent      │
        │   lookup(n) = wait_for(resolver.resolve(n), timeout)      │
        │              -> Ok(ProfileRecord) | Err(error)            │
        └───────────────────────────────────────────────────────────┘
                  │  outcomes keyed by name
                  ▼
        records (Ok values, input order)    error_count (Err count)

Batch K+1 is not started until every lookup of batch K has settled, so at
most ``batch_size`` lookups are in flight. A lookup that times out is
cancelled by ``asyncio.wait_for``; its late result is never observed. Errors
and timeouts are soft: they are counted and the name is left out of the
output, the batch carries on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from nameindex.core.errors import LookupTimeoutError, ProfileLookupError
from nameindex.core.logging import get_logger
from nameindex.core.models import ProfileRecord
from nameindex.core.result import Err, Ok, Result, partition_results
from nameindex.crawl.profiles import ProfileResolver

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 50
DEFAULT_LOOKUP_TIMEOUT = 30.0
PROGRESS_EVERY_BATCHES = 10
ERROR_SAMPLE_SIZE = 20


def batchify(items: Sequence[T], batch_size: int = DEFAULT_BATCH_SIZE) -> list[list[T]]:
    """Split into consecutive batches of ``batch_size``; the last may be shorter."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


@dataclass
class ResolutionReport:
    """Outcome of resolving a set of names.

    ``error_count`` counts every failed lookup; ``errors`` keeps only the first
    ``ERROR_SAMPLE_SIZE`` of them for diagnostics.
    """

    records: list[ProfileRecord] = field(default_factory=list)
    error_count: int = 0
    batch_sizes: list[int] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    @property
    def batch_count(self) -> int:
        return len(self.batch_sizes)


class BoundedResolver:
    """Resolves names in sequential, internally concurrent batches."""

    def __init__(
        self,
        resolver: ProfileResolver,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._resolver = resolver
        self.batch_size = batch_size
        self.lookup_timeout = lookup_timeout

    async def lookup(self, name: str) -> Result[ProfileRecord]:
        """Resolve one name against the timeout; never raises ``Exception``."""
        try:
            profile = await asyncio.wait_for(self._resolver.resolve(name), timeout=self.lookup_timeout)
        except asyncio.TimeoutError as e:
            return Err(
                LookupTimeoutError(
                    f"Profile lookup for {name} timed out after {self.lookup_timeout}s", cause=e
                ).with_context(name=name)
            )
        except ProfileLookupError as e:
            return Err(e)
        except Exception as e:
            return Err(ProfileLookupError(f"Profile lookup for {name} failed: {e}", cause=e).with_context(name=name))

        if not isinstance(profile, dict):
            return Err(ProfileLookupError(f"Profile for {name} is not a document").with_context(name=name))
        return Ok(ProfileRecord(name=name, profile=profile))

    async def resolve_batch(self, batch: Sequence[str]) -> dict[str, Result[ProfileRecord]]:
        outcomes = await asyncio.gather(*(self.lookup(name) for name in batch))
        return dict(zip(batch, outcomes))

    async def resolve(self, names: Iterable[str]) -> ResolutionReport:
        ordered = list(dict.fromkeys(names))
        batches = batchify(ordered, self.batch_size)
        report = ResolutionReport()

        logger.info("resolve.started", names=len(ordered), batches=len(batches), batch_size=self.batch_size)
        for index, batch in enumerate(batches):
            if index % PROGRESS_EVERY_BATCHES == 0:
                logger.info("resolve.progress", batches_done=index, batches=len(batches), errors=report.error_count)

            by_name = await self.resolve_batch(batch)
            records, errors = partition_results([by_name[name] for name in batch])
            report.records.extend(records)
            room = ERROR_SAMPLE_SIZE - len(report.errors)
            if room > 0:
                report.errors.extend(errors[:room])
            report.error_count += len(errors)
            report.batch_sizes.append(len(batch))

            for error in errors:
                logger.debug("resolve.lookup_failed", **_error_fields(error))

        logger.info(
            "resolve.complete",
            resolved=len(report.records),
            errors=report.error_count,
            batches=report.batch_count,
        )
        return report


def _error_fields(error: Exception) -> dict[str, Any]:
    to_dict = getattr(error, "to_dict", None)
    return to_dict() if callable(to_dict) else {"message": str(error)}
