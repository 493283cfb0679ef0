"""
Result envelope for per-item success/failure.

Batch stages (profile resolution, index building) must not abort on one bad
item. Each item produces ``Ok(value)`` or ``Err(error)``; the stage then
splits the outcomes with ``partition_results()`` and logs the failures once.

Examples:
    >>> outcomes = [Ok(1), Err(ValueError("bad")), Ok(2)]
    >>> values, errors = partition_results(outcomes)
    >>> values
    [1, 2]
    >>> len(errors)
    1

    Pattern matching works on both variants:

    >>> match Ok("alice.id"):
    ...     case Ok(value):
    ...         print(value)
    ...     case Err(error):
    ...         print(error)
    alice.id
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result containing the exception that caused it."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Re-raise the wrapped error."""
        raise self.error

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def partition_results(results: list[Result[T]]) -> tuple[list[T], list[Exception]]:
    """
    Partition results into successes and failures.

    Args:
        results: List of Result[T] to partition

    Returns:
        Tuple of (list of successful values, list of errors), each in input order
    """
    values: list[T] = []
    errors: list[Exception] = []
    for result in results:
        match result:
            case Ok(value):
                values.append(value)
            case Err(error):
                errors.append(error)
    return values, errors
