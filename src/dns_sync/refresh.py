"""
Background refresh coordinator.

Refreshes the first page of every account concurrently. One account failing
never affects the others: its cache entry is left as it was and the failure
is reported in the summary. The cache is persisted once, after every account
has finished.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

from .audit_logger import AuditLogger
from .domain_cache import DomainCache
from .enums import FailureKind, LogLevel
from .exceptions import classify_error
from .models import Account, AccountDomainCache
from .pagination import PaginationEngine, call_hook

AccountErrorHook = Callable[[str, FailureKind, Exception], object]


@dataclass
class AccountRefreshFailure:
    """One account that could not be refreshed."""

    account_id: str
    kind: FailureKind
    message: str


@dataclass
class RefreshSummary:
    """Outcome of a refresh-all pass."""

    skipped: bool = False
    refreshed: list[str] = field(default_factory=list)
    failed: list[AccountRefreshFailure] = field(default_factory=list)
    skipped_accounts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped and not self.failed


class RefreshCoordinator:
    """
    Runs refresh-all passes.

    A global gate lets only one pass run at a time; a second call while one
    is running returns a skipped summary immediately. Each account still
    goes through the pagination engine's per-account in-flight marker, so an
    account whose first page is already loading is skipped, not refetched.
    """

    COMPONENT = "RefreshCoordinator"

    def __init__(
        self,
        engine: PaginationEngine,
        cache: DomainCache,
        logger: Optional[AuditLogger] = None,
        on_account_error: Optional[AccountErrorHook] = None,
    ) -> None:
        """
        Args:
            engine: Pagination engine used for the page fetches
            cache: Domain cache updated by each successful account
            logger: Optional audit logger
            on_account_error: Called with (account_id, kind, error) for each
                failed account, e.g. to mark the account as errored
        """
        self._engine = engine
        self._cache = cache
        self._logger = logger
        self._on_account_error = on_account_error
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def refresh_all(self, accounts: Iterable[Union[Account, str]]) -> RefreshSummary:
        """
        Refresh page 1 of every given account concurrently.

        Args:
            accounts: Accounts (or account ids) to refresh

        Returns:
            RefreshSummary listing refreshed, failed and skipped accounts
        """
        if self._running:
            self._log(LogLevel.DEBUG, "Refresh-all already running, skipped")
            return RefreshSummary(skipped=True)

        account_ids = [a.id if isinstance(a, Account) else a for a in accounts]
        self._running = True
        summary = RefreshSummary()
        try:
            self._log(LogLevel.INFO, "Refresh-all started", {"accounts": len(account_ids)})
            outcomes = await asyncio.gather(
                *(self._refresh_one(account_id) for account_id in account_ids),
                return_exceptions=True,
            )
            for account_id, outcome in zip(account_ids, outcomes):
                if isinstance(outcome, AccountRefreshFailure):
                    summary.failed.append(outcome)
                elif isinstance(outcome, BaseException):
                    summary.failed.append(
                        AccountRefreshFailure(account_id, classify_error(outcome), str(outcome))
                    )
                elif outcome:
                    summary.refreshed.append(account_id)
                else:
                    summary.skipped_accounts.append(account_id)
            self._cache.persist()
        finally:
            self._running = False

        self._log(
            LogLevel.INFO,
            "Refresh-all finished",
            {
                "refreshed": len(summary.refreshed),
                "failed": len(summary.failed),
                "skipped": len(summary.skipped_accounts),
            },
        )
        return summary

    async def refresh_account(self, account_id: str) -> Optional[AccountDomainCache]:
        """Single-account refresh; raises on failure."""
        return await self._engine.refresh_account(account_id)

    async def _refresh_one(self, account_id: str) -> Union[AccountRefreshFailure, bool]:
        """Returns True if refreshed, False if dropped, or the failure."""
        try:
            entry = await self._engine.refresh_first_page(account_id, persist=False)
        except Exception as e:
            kind = classify_error(e)
            if self._logger:
                self._logger.log_error(
                    self.COMPONENT, "Account refresh failed", error=e, account_id=account_id
                )
            await call_hook(self._on_account_error, account_id, kind, e)
            return AccountRefreshFailure(account_id=account_id, kind=kind, message=str(e))
        return entry is not None

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)
