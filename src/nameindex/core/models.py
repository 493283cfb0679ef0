"""
Records flowing through a crawl cycle.

``ProfileRecord`` comes out of the resolver, ``NamespaceEntry`` is the
stored unit the index builder scans, ``SearchProfileEntry`` and the three
cache sets are what the index builder derives. Each record knows its stored
document shape (``to_document``) so collection field names live in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

NAME_SUFFIX = ".id"


def username_for(name: str) -> str:
    """Strip a trailing ``.id`` suffix: ``alice.id`` -> ``alice``, ``bob.alice.id`` -> ``bob.alice``."""
    if name.endswith(NAME_SUFFIX):
        return name[: -len(NAME_SUFFIX)]
    return name


@dataclass(frozen=True, slots=True)
class ProfileRecord:
    """A resolved name and its normalized profile document."""

    name: str
    profile: dict[str, Any]

    def to_document(self) -> dict[str, Any]:
        """Shape stored in ``profile_data``."""
        return {"key": self.name, "value": self.profile}

    def to_artifact(self) -> dict[str, Any]:
        """Shape written to the profiles JSON file."""
        return {"fqu": self.name, "profile": self.profile}


@dataclass(frozen=True, slots=True)
class NamespaceEntry:
    username: str
    fqu: str
    profile: Any

    @classmethod
    def from_record(cls, record: ProfileRecord) -> NamespaceEntry:
        return cls(username=username_for(record.name), fqu=record.name, profile=record.profile)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> NamespaceEntry:
        return cls(
            username=document.get("username"),
            fqu=document.get("fqu"),
            profile=document.get("profile"),
        )

    @property
    def key(self) -> str:
        return self.fqu

    def to_document(self) -> dict[str, Any]:
        return {"username": self.username, "fqu": self.fqu, "profile": self.profile}


@dataclass(frozen=True, slots=True)
class SearchProfileEntry:
    """Denormalized search record; ``name`` is the lower-cased display name."""

    name: str | None
    profile: Any
    openbazaar: str | None
    twitter_handle: str | None
    username: str
    fully_qualified_name: str

    @property
    def key(self) -> str:
        return self.fully_qualified_name

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "profile": self.profile,
            "openbazaar": self.openbazaar,
            "twitter_handle": self.twitter_handle,
            "username": self.username,
            "fullyQualifiedName": self.fully_qualified_name,
        }


class CacheKind(str, Enum):
    """The three singleton cache sets; the value is the document field."""

    PEOPLE = "name"
    TWITTER = "twitter_handle"
    USERNAME = "username"

    @property
    def collection(self) -> str:
        return {
            CacheKind.PEOPLE: "people_cache",
            CacheKind.TWITTER: "twitter_cache",
            CacheKind.USERNAME: "username_cache",
        }[self]


@dataclass(frozen=True, slots=True)
class CacheSet:
    kind: CacheKind
    values: tuple[str, ...]

    @classmethod
    def from_values(cls, kind: CacheKind, values: list[str]) -> CacheSet:
        """Deduplicate by exact string equality and sort so output is order-independent."""
        return cls(kind=kind, values=tuple(sorted(set(values))))

    @property
    def key(self) -> str:
        return self.kind.value

    def to_document(self) -> dict[str, Any]:
        return {self.kind.value: list(self.values)}
