"""
Paginated walks over the directory listing endpoints.

``GET /v1/names?page=N`` and ``GET /v1/subdomains?page=N`` each return a
JSON array of names; an empty array ends the listing. The walk is a plain
loop with an accumulator:

    page 0 ─► [a, b] ─► page 1 ─► [c] ─► page 2 ─► [] ─► done: [a, b, c]

A positive ``page_limit`` stops the walk before page ``page_limit`` is
requested; ``page_limit <= 0`` is unbounded.

Any transport, HTTP status or decoding failure raises ``ListingError`` and
aborts the walk. Retrying is left to the transport.
"""

from __future__ import annotations

from enum import Enum

import httpx

from nameindex.core.errors import ListingError
from nameindex.core.logging import get_logger

logger = get_logger(__name__)

PROGRESS_EVERY_PAGES = 20


class ListingKind(str, Enum):
    NAMES = "names"
    SUBDOMAINS = "subdomains"

    @property
    def path(self) -> str:
        return f"/v1/{self.value}"


class Paginator:
    """Walks one listing endpoint until an empty page or the page limit."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def fetch_page(self, kind: ListingKind, page: int) -> list[str]:
        try:
            response = await self._client.get(kind.path, params={"page": page})
            response.raise_for_status()
            names = response.json()
        except httpx.HTTPStatusError as e:
            raise ListingError(
                f"Listing {kind.value} page {page} returned HTTP {e.response.status_code}",
                cause=e,
            ).with_context(kind=kind.value, page=page, http_status=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise ListingError(
                f"Listing {kind.value} page {page} could not be fetched",
                retryable=True,
                cause=e,
            ).with_context(kind=kind.value, page=page) from e
        except ValueError as e:
            raise ListingError(
                f"Listing {kind.value} page {page} is not valid JSON", cause=e
            ).with_context(kind=kind.value, page=page) from e

        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise ListingError(
                f"Listing {kind.value} page {page} is not an array of names"
            ).with_context(kind=kind.value, page=page)
        return names

    async def fetch_all(self, kind: ListingKind, page_limit: int = -1) -> list[str]:
        """Return every name of the listing, in page order."""
        names: list[str] = []
        page = 0
        while page_limit <= 0 or page < page_limit:
            if page % PROGRESS_EVERY_PAGES == 0:
                logger.info("listing.progress", kind=kind.value, pages=page, names=len(names))

            batch = await self.fetch_page(kind, page)
            logger.debug("listing.page_fetched", kind=kind.value, page=page, count=len(batch))
            if not batch:
                break
            names.extend(batch)
            page += 1

        logger.info("listing.complete", kind=kind.value, pages=page, names=len(names))
        return names
