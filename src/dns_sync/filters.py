"""
Filter and search layer.

Domain filtering is purely local: a case-insensitive name match followed by
an any-of tag match, computed over whatever is cached. Record search is the
opposite: a debounced re-query of the backend, since only one page of
records is held locally.
"""

import asyncio
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

import idna

from .audit_logger import AuditLogger
from .domain_cache import DomainCache
from .enums import DomainSortKey, LogLevel
from .models import Domain
from .record_list import RecordListController
from .selection import make_domain_key, parse_domain_key


@lru_cache(maxsize=2048)
def _name_forms(name: str) -> tuple[str, ...]:
    """Lowercased name in its given, Unicode and ASCII (punycode) forms."""
    lowered = name.strip().lower()
    forms = [lowered]
    if not lowered:
        return tuple(forms)
    try:
        if lowered.isascii():
            if "xn--" in lowered:
                forms.append(idna.decode(lowered).lower())
        else:
            forms.append(idna.encode(lowered, uts46=True).decode("ascii"))
    except (idna.IDNAError, UnicodeError):
        pass
    return tuple(dict.fromkeys(forms))


def name_matches(name: str, query: str) -> bool:
    """Case-insensitive substring match that also bridges IDN and punycode."""
    query_forms = _name_forms(query)
    if not query_forms[0]:
        return True
    name_forms = _name_forms(name)
    return any(q in n for q in query_forms for n in name_forms)


def filter_domains(
    domains: Iterable[Domain],
    query: str = "",
    tags: Iterable[str] = (),
) -> list[Domain]:
    """
    Filter domains by name query, then by tags.

    A domain passes the tag filter when it carries ANY of the given tags.
    The input order is preserved and the input is never modified.
    """
    tag_set = set(tags)
    result = []
    for domain in domains:
        if query and not name_matches(domain.name, query):
            continue
        if tag_set and not tag_set.intersection(domain.tags):
            continue
        result.append(domain)
    return result


def _favorite_sort_key(domain: Domain) -> str:
    metadata = domain.metadata
    if metadata is None:
        return ""
    return metadata.favorited_at or metadata.updated_at or ""


def sort_domains(domains: Iterable[Domain], key: DomainSortKey = DomainSortKey.NAME) -> list[Domain]:
    if key is DomainSortKey.FAVORITED_AT:
        return sorted(domains, key=_favorite_sort_key, reverse=True)
    return sorted(domains, key=lambda d: d.name.lower())


def collect_tags(cache: DomainCache) -> list[str]:
    """Sorted union of the tags of every cached domain."""
    tags: set[str] = set()
    for domain in cache.iter_domains():
        tags.update(domain.tags)
    return sorted(tags)


@dataclass
class FavoriteDomain:
    """A domain listed in the favorites view."""

    domain: Domain
    currently_favorited: bool


class SessionFavorites:
    """
    Domains seen as favorites at any point during the current session.

    A domain that gets un-favorited stays listed, flagged as no longer
    favorited, until the session ends. The list is ordered by favorited_at,
    newest first, falling back to updated_at for metadata without it.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, account_id: str, domain_id: str) -> None:
        self._keys.add(make_domain_key(account_id, domain_id))

    def observe(self, cache: DomainCache) -> int:
        """Remember every currently favorited cached domain; returns how many were new."""
        before = len(self._keys)
        for domain in cache.iter_domains():
            if domain.metadata is not None and domain.metadata.is_favorite:
                self._keys.add(make_domain_key(domain.account_id, domain.id))
        return len(self._keys) - before

    def forget_account(self, account_id: str) -> None:
        self._keys = {
            key for key in self._keys
            if (parse_domain_key(key) or ("", ""))[0] != account_id
        }

    def clear(self) -> None:
        self._keys.clear()

    def favorites(self, cache: DomainCache) -> list[FavoriteDomain]:
        self.observe(cache)
        listed = [
            FavoriteDomain(
                domain=d,
                currently_favorited=d.metadata is not None and d.metadata.is_favorite,
            )
            for d in cache.iter_domains()
            if make_domain_key(d.account_id, d.id) in self._keys
        ]
        listed.sort(key=lambda f: _favorite_sort_key(f.domain), reverse=True)
        return listed


class TagFilter:
    """Set of tags the domain list is currently filtered by."""

    def __init__(self, tags: Iterable[str] = ()) -> None:
        self._tags: set[str] = set(tags)

    @property
    def tags(self) -> frozenset[str]:
        return frozenset(self._tags)

    def __bool__(self) -> bool:
        return bool(self._tags)

    def __contains__(self, tag: str) -> bool:
        return tag in self._tags

    def toggle(self, tag: str) -> bool:
        if tag in self._tags:
            self._tags.discard(tag)
            return False
        self._tags.add(tag)
        return True

    def replace(self, tags: Iterable[str]) -> None:
        self._tags = set(tags)

    def clear(self) -> None:
        self._tags.clear()

    def prune(self, index: Iterable[str]) -> set[str]:
        """
        Drop active tags that are no longer in the tag index.

        Returns:
            The tags removed
        """
        stale = self._tags.difference(index)
        self._tags.difference_update(stale)
        return stale


class RecordSearch:
    """
    Debounced keyword/type search of the open domain's records.

    Each change restarts the quiet period; when it elapses the record list
    is reloaded from page 1 with the latest keyword and type.
    """

    COMPONENT = "RecordSearch"

    def __init__(
        self,
        controller: RecordListController,
        delay: float = 0.3,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._controller = controller
        self._delay = delay
        self._logger = logger
        self._task: Optional[asyncio.Task] = None
        self._pending: Optional[tuple[str, str, str, str]] = None

    @property
    def is_pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def update(
        self,
        account_id: str,
        domain_id: str,
        keyword: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> None:
        """Schedule a search. Must be called from within a running event loop."""
        state = self._controller.state
        self._pending = (
            account_id,
            domain_id,
            keyword if keyword is not None else state.keyword,
            record_type if record_type is not None else state.record_type,
        )
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run_after_delay())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def flush(self) -> bool:
        """Run the pending search now, if any."""
        self.cancel()
        return await self._search()

    async def _run_after_delay(self) -> None:
        await asyncio.sleep(self._delay)
        try:
            await self._search()
        except Exception as e:
            # Nobody awaits this task; the controller keeps the error for the UI
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Record search failed", error=e)

    async def _search(self) -> bool:
        if self._pending is None:
            return False
        account_id, domain_id, keyword, record_type = self._pending
        self._pending = None
        if self._logger:
            self._logger.log(
                LogLevel.DEBUG,
                self.COMPONENT,
                "Searching records",
                {"domain_id": domain_id, "keyword": keyword, "record_type": record_type},
            )
        return await self._controller.fetch_records(
            account_id, domain_id, keyword=keyword, record_type=record_type
        )
