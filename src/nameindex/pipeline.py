"""
Cycle wiring: the two things one scheduler tick can do.

- ``fetch_to_files``: pre-flight the artifact paths, crawl, write the names
  and profiles JSON files.
- ``index``: rotate a fresh index generation into place; the ``next``
  generation is built from a crawl, or from previously written artifacts
  when ``from_files`` is set.

The HTTP client lives for exactly one cycle. ``transport`` and
``resolver_factory`` let tests swap the network for ``httpx.MockTransport``
or an in-process resolver.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import httpx

from nameindex.core.documents import DocumentStore
from nameindex.core.logging import get_logger
from nameindex.core.models import NamespaceEntry, ProfileRecord
from nameindex.core.settings import IndexerSettings
from nameindex.crawl.http import make_client
from nameindex.crawl.normalize import normalize
from nameindex.crawl.orchestrator import CrawlOrchestrator, CrawlResult
from nameindex.crawl.paginator import Paginator
from nameindex.crawl.profiles import HttpProfileResolver, ProfileResolver
from nameindex.crawl.resolver import BoundedResolver
from nameindex.index.builder import IndexBuilder, IndexBuildReport
from nameindex.index.generations import GenerationManager, IndexCollections, PromotionReport
from nameindex.index.sink import FileSink, StoreSink

logger = get_logger(__name__)

ResolverFactory = Callable[[httpx.AsyncClient], ProfileResolver]


@dataclass
class IndexCycleSummary:
    entries: int
    errored_lookups: int
    index: IndexBuildReport


class IndexingPipeline:
    def __init__(
        self,
        settings: IndexerSettings,
        *,
        store: DocumentStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        resolver_factory: ResolverFactory | None = None,
    ):
        self.settings = settings
        self.store = store
        self.transport = transport
        self.resolver_factory = resolver_factory or HttpProfileResolver

    def file_sink(self) -> FileSink:
        return FileSink(self.settings.profiles_file, self.settings.names_file)

    async def crawl(self, page_limit: int | None = None) -> CrawlResult:
        limit = self.settings.pages_to_fetch if page_limit is None else page_limit
        async with make_client(self.settings, transport=self.transport) as client:
            resolver = BoundedResolver(
                self.resolver_factory(client),
                batch_size=self.settings.batch_size,
                lookup_timeout=self.settings.lookup_timeout_seconds,
            )
            return await CrawlOrchestrator(Paginator(client), resolver).run(limit)

    async def fetch_to_files(self, page_limit: int | None = None) -> CrawlResult:
        sink = self.file_sink()
        sink.preflight()
        result = await self.crawl(page_limit)
        sink.write(result.names, result.records)
        return result

    def _load_artifacts(self) -> tuple[list[ProfileRecord], list[NamespaceEntry]]:
        _, raw = self.file_sink().load()
        records = [ProfileRecord(name=r.name, profile=normalize(r.profile)) for r in raw]
        return records, [NamespaceEntry.from_record(r) for r in records]

    async def index(self, page_limit: int | None = None, *, from_files: bool = False) -> PromotionReport[IndexCycleSummary]:
        if self.store is None:
            raise ValueError("index() needs a document store")

        async def build(target: IndexCollections) -> IndexCycleSummary:
            if from_files:
                records, entries = self._load_artifacts()
                errored = 0
                logger.info("index.loaded_artifacts", entries=len(entries))
            else:
                result = await self.crawl(page_limit)
                records, entries, errored = result.records, result.entries, result.error_count

            StoreSink(target.namespace, target.profile_data).write(records, entries)
            logger.info("index.building", database=target.search_db)
            report = IndexBuilder(target.profiles, target.caches).build(target.namespace)
            return IndexCycleSummary(entries=len(entries), errored_lookups=errored, index=report)

        promotion = await GenerationManager(self.store).promote(build)
        logger.info("index.promoted", entries=promotion.build_result.entries)
        return promotion
