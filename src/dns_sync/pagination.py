"""
Pagination engine for per-account domain lists.

Loads the first page of an account (refresh), appends further pages (load
more), and keeps per-account in-flight markers so duplicate requests are
dropped rather than queued.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from .audit_logger import AuditLogger
from .config import PaginationConfig
from .domain_cache import DomainCache
from .enums import FailureKind, LogLevel
from .exceptions import classify_error
from .models import AccountDomainCache, Domain, Page
from .providers import ProviderCapabilityTable
from .remote import RemoteClient
from .request_guard import InFlightSet

CredentialErrorHook = Callable[[str], Union[None, Awaitable[None]]]


async def call_hook(hook: Optional[Callable[..., Any]], *args: Any) -> None:
    """Call a sync or async hook, awaiting it if it returns an awaitable."""
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


class PaginationEngine:
    """
    Page-by-page loading of each account's domains into the DomainCache.

    Page size requested is the configured size clamped to the account's
    provider limit.
    """

    COMPONENT = "PaginationEngine"

    def __init__(
        self,
        remote: RemoteClient,
        cache: DomainCache,
        providers: ProviderCapabilityTable,
        config: Optional[PaginationConfig] = None,
        logger: Optional[AuditLogger] = None,
        on_credential_error: Optional[CredentialErrorHook] = None,
    ) -> None:
        """
        Args:
            remote: Backend client
            cache: Domain cache written by this engine
            providers: Provider limits and account -> provider mapping
            config: Page sizes
            logger: Optional audit logger
            on_credential_error: Called with the account id when a refresh
                fails because the provider rejected the credentials
        """
        self._remote = remote
        self._cache = cache
        self._providers = providers
        self._config = config or PaginationConfig()
        self._logger = logger
        self._on_credential_error = on_credential_error
        self._loading = InFlightSet()
        self._loading_more = InFlightSet()

    def page_size_for(self, account_id: str, preferred: Optional[int] = None) -> int:
        return self._providers.domain_page_size(account_id, preferred or self._config.page_size)

    async def fetch_page(
        self,
        account_id: str,
        page: int,
        page_size: Optional[int] = None,
    ) -> Page[Domain]:
        """
        Fetch one page of an account's domains without touching the cache.

        Raises:
            DnsSyncError: Whatever the remote client raises
        """
        size = self.page_size_for(account_id, page_size)
        return await self._remote.list_domains(account_id, page, size)

    def is_account_loading(self, account_id: str) -> bool:
        return account_id in self._loading

    def is_account_loading_more(self, account_id: str) -> bool:
        return account_id in self._loading_more

    async def refresh_first_page(
        self, account_id: str, persist: bool = True
    ) -> Optional[AccountDomainCache]:
        """
        Load page 1 of an account and replace its cache entry.

        Returns None, leaving the cache untouched, when a first-page load
        for the account is already in flight or when the account was
        removed (or the cache cleared) while the request was outstanding.

        Raises:
            DnsSyncError: Whatever the remote client raises; the cache is untouched
        """
        async with self._loading.hold(account_id) as acquired:
            if not acquired:
                self._log(LogLevel.DEBUG, "Refresh already in flight, dropped", {"account_id": account_id})
                return None

            token = self._cache.issue_token(account_id)
            page = await self.fetch_page(account_id, 1)
            if not self._cache.is_current(token):
                self._log(
                    LogLevel.DEBUG,
                    "Discarding refresh response for a removed account",
                    {"account_id": account_id},
                )
                return None

            entry = self._cache.replace(account_id, page)
            if persist:
                self._cache.persist()
            self._log(
                LogLevel.INFO,
                "Account refreshed",
                {"account_id": account_id, "count": len(entry.items), "has_more": entry.has_more},
            )
            return entry

    async def refresh_account(self, account_id: str) -> Optional[AccountDomainCache]:
        """
        Reload page 1 of an account, replacing its cache entry, and persist.

        A refresh that is dropped or discarded returns the current entry.

        Raises:
            DnsSyncError: On failure, after calling the credential hook if
                the failure is a credential error. The cache is untouched.
        """
        try:
            entry = await self.refresh_first_page(account_id)
        except Exception as e:
            self._log_error(f"Refresh failed for account {account_id}", e, account_id)
            if classify_error(e) is FailureKind.CREDENTIAL:
                await call_hook(self._on_credential_error, account_id)
            raise
        return entry if entry is not None else self._cache.get(account_id)

    async def load_more_domains(self, account_id: str) -> bool:
        """
        Append the next page of an account's domains.

        No-op when the account has no cache entry, has no more pages, or
        already has a load-more in flight. Failures are logged and leave the
        cache unchanged.

        Returns:
            True if a page was appended
        """
        entry = self._cache.get(account_id)
        if entry is None or not entry.has_more:
            return False

        async with self._loading_more.hold(account_id) as acquired:
            if not acquired:
                return False

            next_page = entry.page + 1
            try:
                page = await self.fetch_page(account_id, next_page)
            except Exception as e:
                self._log_error(f"Load more failed for account {account_id}", e, account_id)
                return False

            # A refresh replaced or removed the entry while we were waiting
            if self._cache.get(account_id) is not entry:
                self._log(
                    LogLevel.DEBUG,
                    "Discarding load-more response for a replaced entry",
                    {"account_id": account_id, "page": next_page},
                )
                return False

            self._cache.append(account_id, page)
            self._cache.persist()
            self._log(
                LogLevel.DEBUG,
                "Loaded more domains",
                {"account_id": account_id, "page": page.page, "count": len(entry.items)},
            )
            return True

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)

    def _log_error(self, message: str, error: Exception, account_id: str) -> None:
        if self._logger:
            self._logger.log_error(self.COMPONENT, message, error=error, account_id=account_id)
