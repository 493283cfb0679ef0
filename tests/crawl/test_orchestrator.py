"""Tests for nameindex.crawl.orchestrator."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from nameindex.core.errors import ListingError
from nameindex.crawl.orchestrator import CrawlOrchestrator
from nameindex.crawl.paginator import ListingKind, Paginator
from nameindex.crawl.resolver import BoundedResolver
from tests._support.fakes import API_URL, FakeResolver, make_directory_transport


def _orchestrator(client: httpx.AsyncClient, fake: FakeResolver) -> CrawlOrchestrator:
    return CrawlOrchestrator(Paginator(client), BoundedResolver(fake, batch_size=2, lookup_timeout=0.5))


class TestRun:
    @pytest.mark.asyncio
    async def test_builds_namespace_entries(self):
        transport = make_directory_transport([["a.id"], ["b.id"], []])
        fake = FakeResolver({"a.id": {"name": "A"}, "b.id": {"name": "B"}})
        async with httpx.AsyncClient(base_url=API_URL, transport=transport) as client:
            result = await _orchestrator(client, fake).run()

        assert result.names == ["a.id", "b.id"]
        assert [(e.username, e.fqu) for e in result.entries] == [("a", "a.id"), ("b", "b.id")]
        assert [e.profile for e in result.entries] == [{"name": "A"}, {"name": "B"}]
        assert result.error_count == 0

    @pytest.mark.asyncio
    async def test_union_of_domains_and_subdomains(self):
        transport = make_directory_transport([["a.id", "b.id"]], [["x.a.id", "a.id"]])
        fake = FakeResolver({n: {} for n in ["a.id", "b.id", "x.a.id"]})
        async with httpx.AsyncClient(base_url=API_URL, transport=transport) as client:
            result = await _orchestrator(client, fake).run()

        assert result.names == ["a.id", "b.id", "x.a.id"]
        assert result.domain_count == 2
        assert result.subdomain_count == 2
        assert sorted(fake.calls) == ["a.id", "b.id", "x.a.id"]
        assert [e.username for e in result.entries] == ["a", "b", "x.a"]

    @pytest.mark.asyncio
    async def test_profiles_are_normalized(self):
        transport = make_directory_transport([["a.id"]])
        fake = FakeResolver({"a.id": {"account.type": "x", "$oid": "1"}})
        async with httpx.AsyncClient(base_url=API_URL, transport=transport) as client:
            result = await _orchestrator(client, fake).run()

        assert result.records[0].profile == {"account_type": "x", "_oid": "1"}
        assert result.entries[0].profile == {"account_type": "x", "_oid": "1"}

    @pytest.mark.asyncio
    async def test_failed_lookups_counted(self):
        transport = make_directory_transport([["a.id", "gone.id"]])
        fake = FakeResolver({"a.id": {}})
        async with httpx.AsyncClient(base_url=API_URL, transport=transport) as client:
            result = await _orchestrator(client, fake).run()

        assert [e.fqu for e in result.entries] == ["a.id"]
        assert result.error_count == 1
        assert result.names == ["a.id", "gone.id"]

    @pytest.mark.asyncio
    async def test_listing_failure_propagates(self):
        transport = make_directory_transport([["a.id"]], fail_pages={("subdomains", 0): 503})
        fake = FakeResolver({"a.id": {}})
        async with httpx.AsyncClient(base_url=API_URL, transport=transport) as client:
            with pytest.raises(ListingError):
                await _orchestrator(client, fake).run()
        assert fake.calls == []


class TestFetchNames:
    @pytest.mark.asyncio
    async def test_failure_cancels_sibling_walk(self):
        cancelled = asyncio.Event()

        class _Paginator:
            async def fetch_all(self, kind, page_limit=-1):
                if kind is ListingKind.NAMES:
                    await asyncio.sleep(0)
                    raise ListingError("names down")
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.set()
                    raise

        orchestrator = CrawlOrchestrator(_Paginator(), BoundedResolver(FakeResolver()))
        with pytest.raises(ListingError):
            await orchestrator.fetch_names()
        assert cancelled.is_set()
