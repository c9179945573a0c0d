"""
Domain cache shared by every sync component.

Holds one AccountDomainCache per account plus the saved scroll position of
the domain list, and writes them through to the persisted store as a single
blob: {"domainsByAccount": {account_id: entry}, "scrollPosition": int}.

All mutations are synchronous. Callers await remote calls first and only
then touch the cache, so no await ever splits a cache update.
"""

import time
from typing import Callable, Iterator, Optional

from .audit_logger import AuditLogger
from .enums import CacheStatus, LogLevel
from .exceptions import PersistenceError
from .models import AccountDomainCache, Domain, DomainMetadata, Page
from .request_guard import RequestGuard, RequestToken
from .storage import KeyValueStorage, StorageKey


class DomainCache:
    """Per-account domain lists with write-through persistence."""

    COMPONENT = "DomainCache"

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            storage: Persisted store; None keeps the cache in memory only
            logger: Optional audit logger
            clock: Source of epoch seconds for last_updated
        """
        self._storage = storage
        self._logger = logger
        self._clock = clock
        self._entries: dict[str, AccountDomainCache] = {}
        self._scroll_position = 0
        self._generations = RequestGuard()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """
        Load the cache blob from storage.

        Accepts the current shape and the older one where the blob was the
        bare account mapping. Unreadable or malformed data yields an empty
        cache. Outstanding refresh tokens go stale.
        """
        self._entries = {}
        self._scroll_position = 0
        self._generations.invalidate_all()
        if self._storage is None:
            return

        try:
            blob = self._storage.get(StorageKey.DOMAINS_CACHE)
        except PersistenceError as e:
            self._log_error("Failed to read domain cache, starting empty", e)
            return

        if not isinstance(blob, dict):
            return

        if "domainsByAccount" in blob:
            accounts = blob.get("domainsByAccount") or {}
            try:
                self._scroll_position = max(0, int(blob.get("scrollPosition") or 0))
            except (OverflowError, TypeError, ValueError):
                self._scroll_position = 0
        else:
            accounts = blob

        if not isinstance(accounts, dict):
            self._log(LogLevel.WARN, "Ignoring malformed domain cache blob")
            return

        for account_id, raw in accounts.items():
            try:
                self._entries[account_id] = AccountDomainCache.from_dict(raw)
            except (AttributeError, KeyError, OverflowError, TypeError, ValueError) as e:
                self._log_error(f"Dropping malformed cache entry for {account_id}", e)

        self._log(LogLevel.DEBUG, "Loaded domain cache", {"accounts": len(self._entries)})

    def to_blob(self) -> dict:
        return {
            "domainsByAccount": {k: v.to_dict() for k, v in self._entries.items()},
            "scrollPosition": self._scroll_position,
        }

    def persist(self) -> bool:
        """
        Write the whole cache blob to storage.

        Returns:
            True if written, False if there is no storage or the write failed
        """
        if self._storage is None:
            return False
        try:
            self._storage.set(StorageKey.DOMAINS_CACHE, self.to_blob())
        except PersistenceError as e:
            self._log_error("Failed to save domain cache", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, account_id: str) -> Optional[AccountDomainCache]:
        return self._entries.get(account_id)

    def status(self, account_id: str) -> CacheStatus:
        entry = self._entries.get(account_id)
        if entry is None:
            return CacheStatus.ABSENT
        return CacheStatus.POPULATED if entry.items else CacheStatus.EMPTY

    def has_cached_data(self, account_id: str) -> bool:
        return account_id in self._entries

    def domains(self, account_id: str) -> list[Domain]:
        entry = self._entries.get(account_id)
        return list(entry.items) if entry else []

    def account_ids(self) -> list[str]:
        return list(self._entries)

    def iter_domains(self) -> Iterator[Domain]:
        for entry in self._entries.values():
            yield from entry.items

    def find_domain(self, account_id: str, domain_id: str) -> Optional[Domain]:
        entry = self._entries.get(account_id)
        if entry is None:
            return None
        for domain in entry.items:
            if domain.id == domain_id:
                return domain
        return None

    @property
    def scroll_position(self) -> int:
        return self._scroll_position

    # ------------------------------------------------------------------
    # Mutations (synchronous, no persistence)
    # ------------------------------------------------------------------

    def replace(self, account_id: str, page: Page[Domain]) -> AccountDomainCache:
        """Reset an account's entry to a freshly fetched first page."""
        entry = AccountDomainCache(
            items=list(page.items),
            page=page.page,
            has_more=page.has_more,
            last_updated=self._clock(),
        )
        self._entries[account_id] = entry
        return entry

    def append(self, account_id: str, page: Page[Domain]) -> Optional[AccountDomainCache]:
        """
        Append a further page to an existing entry.

        Returns:
            The updated entry, or None if the account has no entry
        """
        entry = self._entries.get(account_id)
        if entry is None:
            return None
        entry.items = entry.items + list(page.items)
        entry.page = page.page
        entry.has_more = page.has_more
        entry.last_updated = self._clock()
        return entry

    def patch_metadata(
        self,
        account_id: str,
        domain_id: str,
        patch: Callable[[DomainMetadata], None],
    ) -> bool:
        """
        Apply patch to one cached domain's metadata in place.

        A domain without metadata gets a default one first.

        Returns:
            True if the domain was found and patched
        """
        domain = self.find_domain(account_id, domain_id)
        if domain is None:
            return False
        if domain.metadata is None:
            domain.metadata = DomainMetadata()
        patch(domain.metadata)
        return True

    def set_metadata(self, account_id: str, domain_id: str, metadata: DomainMetadata) -> bool:
        domain = self.find_domain(account_id, domain_id)
        if domain is None:
            return False
        domain.metadata = metadata
        return True

    def set_scroll_position(self, position: int) -> None:
        self._scroll_position = max(0, int(position))

    def remove_account(self, account_id: str) -> bool:
        self._generations.invalidate(account_id)
        return self._entries.pop(account_id, None) is not None

    def clear(self) -> None:
        self._generations.invalidate_all()
        self._entries.clear()
        self._scroll_position = 0

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def issue_token(self, account_id: str) -> RequestToken:
        """
        Token for a first-page load of an account.

        The token goes stale once the account is removed or a newer token
        is issued for it, and whenever the whole cache is cleared or reloaded.
        """
        return self._generations.issue(account_id)

    def is_current(self, token: RequestToken) -> bool:
        return self._generations.is_current(token)

    # ------------------------------------------------------------------
    # Logging helpers
    # ------------------------------------------------------------------

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)

    def _log_error(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.log_error(self.COMPONENT, message, error=error)
