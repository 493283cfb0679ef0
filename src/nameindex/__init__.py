"""
nameindex - crawl a name directory, normalize profiles, build a search index.

Subpackages:
- nameindex.core: errors, results, logging, settings, document store, models
- nameindex.crawl: paginated listing walks and bounded profile resolution
- nameindex.index: persistence sinks, index builder, generation rotation
- nameindex.scheduling: recurring cycle scheduler
- nameindex.cli: typer command line
"""

__version__ = "0.1.0"
