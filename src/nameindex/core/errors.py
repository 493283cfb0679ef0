"""
Structured error types for the name indexer.

Every failure raised by nameindex is a ``NameIndexError`` carrying a
category, a retryable flag, a context dict and an optional chained cause.
The hierarchy mirrors the failure taxonomy of a crawl cycle:

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       NameIndexError                          │
        │           (category, retryable, context, cause)              │
        ├──────────────────────────────────────────────────────────────┤
        │  Fatal to a cycle             │  Soft (counted, skipped)     │
        │  ────────────────             │  ──────────────────────      │
        │  ListingError    (SOURCE)     │  ProfileLookupError (SOURCE) │
        │  GenerationBuildError         │  LookupTimeoutError (NETWORK)│
        │  PromotionError  (STORAGE)    │  ExtractionError (VALIDATION)│
        │  StorageError    (STORAGE)    │                              │
        │  SinkPathError   (STORAGE)    │                              │
        │  ConfigError     (CONFIG)     │                              │
        └──────────────────────────────────────────────────────────────┘

Soft failures never cross their component boundary: the Bounded Resolver
and Index Builder wrap them in ``Err`` results and aggregate them. Fatal
failures propagate to the scheduler, which ends the cycle.

``PromotionError`` and ``GenerationBuildError`` are distinct.
A build failure leaves ``current`` untouched; a promotion failure happens
while ``current`` is being rotated and needs operator attention.

Examples:
    >>> err = ListingError("page 3 returned HTTP 502").with_context(kind="names", page=3)
    >>> err.to_dict()["context"]
    {'kind': 'names', 'page': 3}

Tags:
    error-handling, exception-hierarchy, crawl, index, generations
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for routing and log filtering."""

    NETWORK = "NETWORK"           # Timeouts, connection failures
    STORAGE = "STORAGE"           # Document store, file system
    SOURCE = "SOURCE"             # Directory listing, profile endpoint
    VALIDATION = "VALIDATION"     # Malformed documents
    CONFIG = "CONFIG"             # Settings, store URLs
    PIPELINE = "PIPELINE"         # Cycle build failures
    INTERNAL = "INTERNAL"


class NameIndexError(Exception):
    """
    Base exception for all nameindex errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance.

    Attributes:
        message: Human readable description
        category: ErrorCategory for routing
        retryable: Whether repeating the operation may succeed
        context: Free-form metadata (name, page, step, ...)
        cause: Underlying exception, also set as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> NameIndexError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ListingError("bad page").with_context(kind="names", page=4)
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CRAWL ERRORS
# =============================================================================


class ListingError(NameIndexError):
    """A listing page could not be fetched or decoded. Aborts the cycle."""

    default_category = ErrorCategory.SOURCE


class ProfileLookupError(NameIndexError):
    """Profile resolution for one name failed (not found, bad payload, HTTP error)."""

    default_category = ErrorCategory.SOURCE


class LookupTimeoutError(ProfileLookupError):
    """Profile resolution for one name did not settle before its deadline."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


# =============================================================================
# INDEX ERRORS
# =============================================================================


class ExtractionError(NameIndexError):
    """A namespace entry had a shape the index builder could not read."""

    default_category = ErrorCategory.VALIDATION


class StorageError(NameIndexError):
    """The document store rejected an operation."""

    default_category = ErrorCategory.STORAGE


class SinkPathError(StorageError):
    """A file-mode artifact path is not writable or cannot be created."""


class GenerationBuildError(NameIndexError):
    """Populating the ``next`` generation failed; ``current`` was not touched."""

    default_category = ErrorCategory.PIPELINE


class PromotionError(StorageError):
    """
    A clear or copy step of the generation rotation failed.

    ``step`` is the 1-based rotation step (see ``nameindex.index.generations``)
    and ``step_name`` its label. Steps after the failed one were not run.
    """

    def __init__(self, message: str, *, step: int, step_name: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.step = step
        self.step_name = step_name
        self.context.setdefault("step", step)
        self.context.setdefault("step_name", step_name)

    @property
    def current_at_risk(self) -> bool:
        """True when ``current`` may be missing or partial (clear or re-copy failed)."""
        return self.step >= 5


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(NameIndexError):
    """Invalid configuration value or store URL."""

    default_category = ErrorCategory.CONFIG
