"""Persistence sinks, index building and generation rotation."""

from nameindex.index.builder import IndexBuilder, IndexBuildReport, extract_search_entry
from nameindex.index.generations import Generation, GenerationManager, IndexCollections, PromotionReport
from nameindex.index.sink import FileSink, StoreSink, ensure_writable

__all__ = [
    "FileSink",
    "Generation",
    "GenerationManager",
    "IndexBuildReport",
    "IndexBuilder",
    "IndexCollections",
    "PromotionReport",
    "StoreSink",
    "ensure_writable",
    "extract_search_entry",
]
