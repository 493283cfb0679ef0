"""Directory crawling: listing walks, bounded profile resolution, normalization."""

from nameindex.crawl.normalize import normalize
from nameindex.crawl.orchestrator import CrawlOrchestrator, CrawlResult
from nameindex.crawl.paginator import ListingKind, Paginator
from nameindex.crawl.profiles import HttpProfileResolver, ProfileResolver
from nameindex.crawl.resolver import BoundedResolver, ResolutionReport, batchify

__all__ = [
    "BoundedResolver",
    "CrawlOrchestrator",
    "CrawlResult",
    "HttpProfileResolver",
    "ListingKind",
    "Paginator",
    "ProfileResolver",
    "ResolutionReport",
    "batchify",
    "normalize",
]
