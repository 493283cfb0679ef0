"""Profile resolution: name -> profile document.

``ProfileResolver`` is the injected collaborator used by the bounded
resolver. It may fail or hang; the caller imposes the timeout.
``HttpProfileResolver`` resolves against the directory's
``GET /v1/users/<name>`` endpoint, which answers with
``{"<name>": {"profile": {...}, ...}}``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from nameindex.core.errors import ProfileLookupError
from nameindex.core.models import username_for


@runtime_checkable
class ProfileResolver(Protocol):
    async def resolve(self, name: str) -> dict[str, Any]: ...


class HttpProfileResolver:
    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def resolve(self, name: str) -> dict[str, Any]:
        try:
            response = await self._client.get(f"/v1/users/{name}")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise ProfileLookupError(
                f"Profile lookup for {name} returned HTTP {e.response.status_code}", cause=e
            ).with_context(name=name, http_status=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise ProfileLookupError(
                f"Profile lookup for {name} failed", retryable=True, cause=e
            ).with_context(name=name) from e
        except ValueError as e:
            raise ProfileLookupError(f"Profile for {name} is not valid JSON", cause=e).with_context(name=name) from e

        return self._extract(name, payload)

    @staticmethod
    def _extract(name: str, payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ProfileLookupError(f"Unexpected profile payload for {name}").with_context(name=name)

        entry = payload.get(name, payload.get(username_for(name)))
        if entry is None and len(payload) == 1:
            entry = next(iter(payload.values()))
        if not isinstance(entry, dict) or "error" in entry:
            raise ProfileLookupError(f"No profile found for {name}").with_context(name=name)

        profile = entry.get("profile")
        if not isinstance(profile, dict):
            raise ProfileLookupError(f"Profile for {name} is not a document").with_context(name=name)
        return profile
