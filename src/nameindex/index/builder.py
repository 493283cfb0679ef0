"""
Search index construction.

One pass over the ``namespace`` collection derives, per entry, a
``SearchProfileEntry``:

    name            profile.name.formatted, else profile.name; lower-cased
    twitter_handle  identifier of the account whose service is "twitter"
    openbazaar      identifier of the account whose service is "openbazaar"
    username        entry username (``alice`` for ``alice.id``)
    fullyQualifiedName  entry fqu

Each entry is extracted into ``Ok(SearchProfileEntry)`` or
``Err(ExtractionError)``. Failures are skipped and their keys reported; they
never abort the build.

After the scan the three cache sets (display names, twitter handles,
fully-qualified usernames) are deduplicated, sorted and written as single
documents, replacing the previous contents. Sorting makes the cache
documents identical across builds of the same namespace regardless of scan
order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nameindex.core.documents import DocumentCollection
from nameindex.core.errors import ExtractionError
from nameindex.core.logging import get_logger
from nameindex.core.models import CacheKind, CacheSet, NamespaceEntry, SearchProfileEntry
from nameindex.core.result import Err, Ok, Result

logger = get_logger(__name__)

TWITTER_SERVICE = "twitter"
OPENBAZAAR_SERVICE = "openbazaar"


def _display_name(profile: dict[str, Any]) -> str | None:
    name = profile.get("name")
    if not name and not isinstance(name, (dict, list)):
        return None
    if isinstance(name, dict) and name.get("formatted"):
        name = name["formatted"]
    if not isinstance(name, str):
        raise ExtractionError(f"Unreadable display name: {profile.get('name')!r}")
    return name.lower()


def _account_identifiers(profile: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return (openbazaar, twitter) identifiers; the last matching account wins."""
    openbazaar = twitter = None
    accounts = profile.get("account")
    if not accounts:
        return None, None
    if not isinstance(accounts, list):
        raise ExtractionError(f"account must be a list, got {type(accounts).__name__}")
    for account in accounts:
        if not isinstance(account, dict):
            raise ExtractionError(f"account entry must be a document, got {type(account).__name__}")
        service = account.get("service")
        if service == OPENBAZAAR_SERVICE:
            openbazaar = account.get("identifier")
        elif service == TWITTER_SERVICE:
            twitter = account.get("identifier")
    return openbazaar, twitter


def extract_search_entry(document: dict[str, Any]) -> SearchProfileEntry:
    """Derive a search entry from a stored namespace document; raises ExtractionError."""
    entry = NamespaceEntry.from_document(document)
    if not isinstance(entry.fqu, str) or not entry.fqu:
        raise ExtractionError("Namespace entry has no fqu")
    if not isinstance(entry.profile, dict):
        raise ExtractionError(f"Profile of {entry.fqu} is not a document").with_context(fqu=entry.fqu)

    try:
        openbazaar, twitter = _account_identifiers(entry.profile)
        name = _display_name(entry.profile)
    except ExtractionError as e:
        raise e.with_context(fqu=entry.fqu)

    return SearchProfileEntry(
        name=name,
        profile=entry.profile,
        openbazaar=openbazaar,
        twitter_handle=twitter,
        username=entry.username,
        fully_qualified_name=entry.fqu,
    )


def try_extract(document: dict[str, Any]) -> Result[SearchProfileEntry]:
    try:
        return Ok(extract_search_entry(document))
    except ExtractionError as e:
        return Err(e)
    except Exception as e:
        return Err(ExtractionError(f"Malformed namespace entry: {e}", cause=e))


@dataclass
class IndexBuildReport:
    entries_written: int = 0
    skipped: list[str] = field(default_factory=list)
    cache_sets: dict[CacheKind, CacheSet] = field(default_factory=dict)


class IndexBuilder:
    """Builds ``profiles`` and the cache sets from a namespace collection."""

    def __init__(
        self,
        search_profiles: DocumentCollection,
        caches: dict[CacheKind, DocumentCollection],
    ):
        missing = set(CacheKind) - set(caches)
        if missing:
            raise ValueError(f"Missing cache collections: {sorted(k.name for k in missing)}")
        self.search_profiles = search_profiles
        self.caches = caches

    def build(self, namespace: DocumentCollection) -> IndexBuildReport:
        report = IndexBuildReport()
        collected: dict[CacheKind, list[str]] = {kind: [] for kind in CacheKind}

        for document in namespace.find():
            match try_extract(document):
                case Ok(entry):
                    self.search_profiles.upsert(entry.key, entry.to_document())
                    report.entries_written += 1
                    if entry.name:
                        collected[CacheKind.PEOPLE].append(entry.name)
                    if entry.twitter_handle:
                        collected[CacheKind.TWITTER].append(entry.twitter_handle)
                    collected[CacheKind.USERNAME].append(entry.fully_qualified_name)
                case Err(error):
                    key = document.get("fqu") if isinstance(document, dict) else None
                    report.skipped.append(str(key))
                    logger.debug("index.entry_skipped", fqu=key, error=str(error))

        if report.skipped:
            logger.warning("index.entries_skipped", count=len(report.skipped), names=report.skipped)

        for kind, values in collected.items():
            cache_set = CacheSet.from_values(kind, [v for v in values if isinstance(v, str)])
            self.caches[kind].upsert(cache_set.key, cache_set.to_document())
            report.cache_sets[kind] = cache_set

        self.caches[CacheKind.PEOPLE].create_index(CacheKind.PEOPLE.value)

        logger.info(
            "index.complete",
            entries=report.entries_written,
            skipped=len(report.skipped),
            **{kind.collection: len(s.values) for kind, s in report.cache_sets.items()},
        )
        return report
