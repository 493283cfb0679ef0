"""Core primitives shared by the crawl, index and scheduling layers."""

from nameindex.core.errors import (
    ConfigError,
    ErrorCategory,
    ExtractionError,
    GenerationBuildError,
    ListingError,
    LookupTimeoutError,
    NameIndexError,
    ProfileLookupError,
    PromotionError,
    SinkPathError,
    StorageError,
)
from nameindex.core.result import Err, Ok, Result, partition_results

__all__ = [
    "ConfigError",
    "Err",
    "ErrorCategory",
    "ExtractionError",
    "GenerationBuildError",
    "ListingError",
    "LookupTimeoutError",
    "NameIndexError",
    "Ok",
    "ProfileLookupError",
    "PromotionError",
    "Result",
    "SinkPathError",
    "StorageError",
    "partition_results",
]
