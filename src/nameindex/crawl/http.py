"""Shared outbound HTTP client.

One ``httpx.AsyncClient`` is created per cycle and handed to both listing
walks and the profile resolver, so ``max_connections`` caps every in-flight
request of the cycle together.
"""

from __future__ import annotations

import httpx

from nameindex.core.settings import IndexerSettings

DEFAULT_REQUEST_TIMEOUT = 60.0


def build_limits(max_simultaneous_fetches: int) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max_simultaneous_fetches,
        max_keepalive_connections=max_simultaneous_fetches,
    )


def make_client(
    settings: IndexerSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the cycle's client; ``transport`` is for tests (``httpx.MockTransport``)."""
    # pool timeout is unbounded: waiting for a free connection is how the ceiling throttles
    timeout = httpx.Timeout(DEFAULT_REQUEST_TIMEOUT, pool=None)
    return httpx.AsyncClient(
        base_url=settings.api_url,
        limits=build_limits(settings.max_simultaneous_fetches),
        timeout=timeout,
        transport=transport,
        headers={"Accept": "application/json"},
    )
