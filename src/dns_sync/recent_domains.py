"""Recently opened domains, newest first, persisted in the key/value store."""

import time
from typing import Callable, Iterable, Optional

from .audit_logger import AuditLogger
from .exceptions import PersistenceError
from .models import RecentDomain
from .storage import KeyValueStorage, StorageKey

MAX_RECENT_DOMAINS = 6


class RecentDomains:
    """Short most-recently-used list of domains, deduplicated by domain id."""

    COMPONENT = "RecentDomains"

    def __init__(
        self,
        storage: KeyValueStorage,
        limit: int = MAX_RECENT_DOMAINS,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._limit = limit
        self._logger = logger
        self._clock = clock

    def entries(self) -> list[RecentDomain]:
        """Stored entries; unreadable storage or entries yield nothing."""
        try:
            raw = self._storage.get(StorageKey.RECENT_DOMAINS) or []
        except PersistenceError as e:
            if self._logger:
                self._logger.log_error(self.COMPONENT, "Failed to read recent domains", error=e)
            return []
        if not isinstance(raw, list):
            return []
        entries = []
        for item in raw:
            try:
                entries.append(RecentDomain.from_dict(item))
            except (AttributeError, KeyError, TypeError, ValueError):
                continue
        return entries

    def _save(self, entries: list[RecentDomain]) -> None:
        self._storage.set(StorageKey.RECENT_DOMAINS, [e.to_dict() for e in entries])

    def add(
        self,
        account_id: str,
        domain_id: str,
        domain_name: str,
        account_name: str = "",
        provider: str = "",
    ) -> list[RecentDomain]:
        entry = RecentDomain(
            account_id=account_id,
            domain_id=domain_id,
            domain_name=domain_name,
            account_name=account_name,
            provider=provider,
            timestamp=self._clock(),
        )
        rest = [e for e in self.entries() if e.domain_id != domain_id]
        updated = [entry, *rest][: self._limit]
        self._save(updated)
        return updated

    def remove_account(self, account_id: str) -> list[RecentDomain]:
        updated = [e for e in self.entries() if e.account_id != account_id]
        self._save(updated)
        return updated

    def cleanup(self, valid_account_ids: Iterable[str]) -> list[RecentDomain]:
        """Drop entries of accounts that no longer exist."""
        valid = set(valid_account_ids)
        current = self.entries()
        updated = [e for e in current if e.account_id in valid]
        if len(updated) != len(current):
            self._save(updated)
        return updated
