"""Crawl orchestration: listings -> resolution -> namespace entries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from nameindex.core.logging import get_logger
from nameindex.core.models import NamespaceEntry, ProfileRecord
from nameindex.crawl.normalize import normalize
from nameindex.crawl.paginator import ListingKind, Paginator
from nameindex.crawl.resolver import BoundedResolver

logger = get_logger(__name__)


@dataclass
class CrawlResult:
    """Everything one crawl produced.

    ``names`` is the working set (domains first, then subdomains, first
    occurrence kept). ``records`` and ``entries`` are parallel: one
    normalized ``ProfileRecord`` and its ``NamespaceEntry`` per resolved name.
    """

    names: list[str] = field(default_factory=list)
    records: list[ProfileRecord] = field(default_factory=list)
    entries: list[NamespaceEntry] = field(default_factory=list)
    error_count: int = 0
    domain_count: int = 0
    subdomain_count: int = 0


class CrawlOrchestrator:
    def __init__(self, paginator: Paginator, resolver: BoundedResolver):
        self.paginator = paginator
        self.resolver = resolver

    async def fetch_names(self, page_limit: int = -1) -> tuple[list[str], list[str]]:
        """Walk both listings concurrently; a failure in either cancels the other and propagates."""
        tasks = [
            asyncio.create_task(self.paginator.fetch_all(ListingKind.NAMES, page_limit)),
            asyncio.create_task(self.paginator.fetch_all(ListingKind.SUBDOMAINS, page_limit)),
        ]
        try:
            domains, subdomains = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return domains, subdomains

    async def run(self, page_limit: int = -1) -> CrawlResult:
        domains, subdomains = await self.fetch_names(page_limit)
        names = list(dict.fromkeys([*domains, *subdomains]))
        logger.info(
            "crawl.names_fetched",
            domains=len(domains),
            subdomains=len(subdomains),
            total=len(names),
        )

        report = await self.resolver.resolve(names)

        result = CrawlResult(
            names=names,
            error_count=report.error_count,
            domain_count=len(domains),
            subdomain_count=len(subdomains),
        )
        for record in report.records:
            clean = ProfileRecord(name=record.name, profile=normalize(record.profile))
            result.records.append(clean)
            result.entries.append(NamespaceEntry.from_record(clean))

        logger.info("crawl.complete", entries=len(result.entries), errored_lookups=result.error_count)
        return result
