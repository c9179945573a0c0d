"""
Domain sync service, the single entry point used by the UI.

This module wires every component together:
- Persisted storage and the domain cache
- Pagination engine and background refresh coordinator
- Metadata mutations and batch tag reconciliation
- Domain and record selection, tag filter, record search
- Recent domains and debounced scroll position saving

No intent raises into the UI. Each one returns a plain value or an
OperationResult, and reports what happened through an optional notifier
callback receiving Notice objects.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

from .audit_logger import AuditLogger
from .batch import BatchTagReconciler
from .config import SystemConfig
from .debounce import Debouncer
from .domain_cache import DomainCache
from .enums import (
    AccountStatus,
    CacheStatus,
    FailureKind,
    LogLevel,
    NoticeLevel,
    PaginationMode,
    TagOperation,
)
from .exceptions import DnsSyncError, PersistenceError, classify_error
from .filters import (
    FavoriteDomain,
    RecordSearch,
    SessionFavorites,
    TagFilter,
    collect_tags,
    filter_domains,
)
from .models import (
    Account,
    BatchTagResult,
    DnsRecordDraft,
    Domain,
    DomainMetadataUpdate,
)
from .mutations import MetadataMutationPipeline
from .pagination import PaginationEngine, call_hook
from .providers import ProviderCapabilityTable
from .record_list import RecordListController
from .recent_domains import RecentDomains
from .refresh import RefreshCoordinator, RefreshSummary
from .remote import RemoteClient
from .selection import SelectionSet, make_domain_key, parse_domain_key
from .storage import KeyValueStorage, MemoryStorage, StorageKey

SCROLL_DEBOUNCE_KEY = "scroll-position"

# One user-facing heading per failure kind; every kind must be present
FAILURE_HEADINGS: dict[FailureKind, str] = {
    FailureKind.VALIDATION: "Nothing was changed",
    FailureKind.CREDENTIAL: "The provider rejected this account's credentials",
    FailureKind.TRANSPORT: "Could not reach the backend",
    FailureKind.REMOTE: "The provider reported an error",
}


def describe_failure(kind: FailureKind, detail: str) -> str:
    heading = FAILURE_HEADINGS[kind]
    return f"{heading}: {detail}" if detail else heading


@dataclass
class Notice:
    """A message for the user (toast, status line, CLI output)."""

    level: NoticeLevel
    message: str
    kind: Optional[FailureKind] = None


@dataclass
class OperationResult:
    """
    Outcome of a UI intent.

    ok=False with partial=False means the whole operation failed and nothing
    changed; partial=True means a batch applied to some targets only and
    value carries the per-target result.
    """

    ok: bool
    value: Any = None
    kind: Optional[FailureKind] = None
    message: str = ""
    partial: bool = False


class DomainSyncService:
    """
    Facade over the cache and sync components.

    Usage:
        async with DomainSyncService(remote, storage) as service:
            await service.sync_accounts()
            await service.refresh_all_accounts()
            domains = service.get_domains_for_account("acct-1")
    """

    COMPONENT = "DomainSyncService"

    def __init__(
        self,
        remote: RemoteClient,
        storage: Optional[KeyValueStorage] = None,
        config: Optional[SystemConfig] = None,
        logger: Optional[AuditLogger] = None,
        notifier: Optional[Callable[[Notice], None]] = None,
        on_account_error: Optional[Callable[[str, FailureKind, Exception], Any]] = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            remote: Backend client
            storage: Persisted key/value store (in-memory if omitted)
            config: System configuration (defaults for everything if omitted)
            logger: Optional audit logger
            notifier: Receives a Notice for every user-visible outcome
            on_account_error: Called when a background refresh of an account
                fails, in addition to the service's own status bookkeeping
        """
        self._remote = remote
        self._storage = storage if storage is not None else MemoryStorage(logger=logger)
        self._config = config
        self._logger = logger
        self._notifier = notifier
        self._on_account_error = on_account_error

        pagination = config.pagination if config else None
        timing = config.timing if config else None

        self._providers = ProviderCapabilityTable(
            overrides=config.provider_limits if config else None,
            default_max_page_size=pagination.default_max_page_size if pagination else 100,
        )
        self._cache = DomainCache(self._storage, logger=logger)
        self._engine = PaginationEngine(
            remote,
            self._cache,
            self._providers,
            config=pagination,
            logger=logger,
            on_credential_error=self._handle_credential_error,
        )
        self._refresher = RefreshCoordinator(
            self._engine,
            self._cache,
            logger=logger,
            on_account_error=self._handle_account_error,
        )
        self._mutations = MetadataMutationPipeline(remote, self._cache, logger=logger)
        self._domain_selection = SelectionSet()
        self._tag_filter = TagFilter()
        self._batch = BatchTagReconciler(
            remote, self._cache, self._domain_selection, self._tag_filter, logger=logger
        )
        self._records = RecordListController(
            remote, self._providers, config=pagination, storage=self._storage, logger=logger
        )
        self._search = RecordSearch(
            self._records,
            delay=timing.search_debounce if timing else 0.3,
            logger=logger,
        )
        self._recent = RecentDomains(self._storage, logger=logger)
        self._favorites = SessionFavorites()
        self._scroll_debouncer = Debouncer(
            timing.scroll_save_debounce if timing else 0.3, logger=logger
        )

        self._accounts: dict[str, Account] = {}
        self._selected: Optional[tuple[str, str]] = None
        self._expanded_accounts: set[str] = set()

    async def __aenter__(self) -> "DomainSyncService":
        self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Migrate legacy storage keys once, then load the cache."""
        try:
            self._storage.migrate()
        except PersistenceError as e:
            self._log_error("Storage migration failed", e)
        self._cache.load()
        self._favorites.observe(self._cache)

    def shutdown(self) -> None:
        """Flush the pending scroll save and stop any pending search."""
        self._search.cancel()
        self._scroll_debouncer.flush()

    # ------------------------------------------------------------------
    # Component access
    # ------------------------------------------------------------------

    @property
    def cache(self) -> DomainCache:
        return self._cache

    @property
    def providers(self) -> ProviderCapabilityTable:
        return self._providers

    @property
    def records(self) -> RecordListController:
        return self._records

    @property
    def domain_selection(self) -> SelectionSet:
        return self._domain_selection

    @property
    def record_selection(self) -> SelectionSet:
        return self._records.selection

    @property
    def tag_filter(self) -> TagFilter:
        return self._tag_filter

    @property
    def recent_domains(self) -> RecentDomains:
        return self._recent

    @property
    def storage(self) -> KeyValueStorage:
        return self._storage

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def set_accounts(self, accounts: Iterable[Account]) -> None:
        """Replace the known accounts and drop recent entries of removed ones."""
        self._accounts = {a.id: a for a in accounts}
        self._providers.register_accounts(self._accounts.values())
        self._recent.cleanup(self._accounts)

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts.values())

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    async def sync_accounts(self) -> OperationResult:
        """Fetch accounts and provider limits from the backend."""

        async def fetch() -> list[Account]:
            accounts = await self._remote.list_accounts()
            providers = await self._remote.list_providers()
            self._providers.update_from_metadata(providers)
            self.set_accounts(accounts)
            return accounts

        return await self._run("sync_accounts", fetch(), notify_success=None)

    async def _handle_credential_error(self, account_id: str) -> None:
        account = self._accounts.get(account_id)
        if account is not None:
            account.status = AccountStatus.ERROR
        try:
            accounts = await self._remote.list_accounts()
        except Exception as e:
            self._log_error("Reloading accounts after credential error failed", e)
            return
        self.set_accounts(accounts)

    async def _handle_account_error(self, account_id: str, kind: FailureKind, error: Exception) -> None:
        account = self._accounts.get(account_id)
        if account is not None:
            account.status = AccountStatus.ERROR
            account.error = str(error)
        await call_hook(self._on_account_error, account_id, kind, error)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def get_domains_for_account(self, account_id: str) -> list[Domain]:
        return self._cache.domains(account_id)

    def get_filtered_domains(self, account_id: str, query: str = "") -> list[Domain]:
        return filter_domains(self._cache.domains(account_id), query, self._tag_filter.tags)

    def get_selected_domain(self) -> Optional[Domain]:
        if self._selected is None:
            return None
        return self._cache.find_domain(*self._selected)

    def is_account_loading(self, account_id: str) -> bool:
        return self._engine.is_account_loading(account_id)

    def is_account_loading_more(self, account_id: str) -> bool:
        return self._engine.is_account_loading_more(account_id)

    def has_more_domains(self, account_id: str) -> bool:
        entry = self._cache.get(account_id)
        return entry.has_more if entry else False

    def cache_status(self, account_id: str) -> CacheStatus:
        return self._cache.status(account_id)

    def get_all_used_tags(self) -> list[str]:
        return collect_tags(self._cache)

    def get_favorite_domains(self) -> list[FavoriteDomain]:
        """Domains favorited at any point this session, newest favorite first."""
        return self._favorites.favorites(self._cache)

    def is_background_refreshing(self) -> bool:
        return self._refresher.is_running

    def get_pagination_mode(self) -> PaginationMode:
        return self._records.pagination_mode

    def set_pagination_mode(self, mode: PaginationMode) -> None:
        self._storage.set(StorageKey.PAGINATION_MODE, mode.value)

    def get_show_record_hints(self) -> bool:
        """Whether the record form shows per-type value hints."""
        return bool(self._storage.get_with_default(StorageKey.SHOW_RECORD_HINTS))

    def set_show_record_hints(self, show: bool) -> None:
        self._storage.set(StorageKey.SHOW_RECORD_HINTS, bool(show))

    def get_scroll_position(self) -> int:
        return self._cache.scroll_position

    # ------------------------------------------------------------------
    # Domain list intents
    # ------------------------------------------------------------------

    async def refresh_account(self, account_id: str) -> OperationResult:
        result = await self._run(
            "refresh_account",
            self._engine.refresh_account(account_id),
            account_id=account_id,
            notify_success=None,
        )
        self._favorites.observe(self._cache)
        return result

    async def refresh_all_accounts(
        self, accounts: Optional[Iterable[Account]] = None
    ) -> RefreshSummary:
        """Refresh every (or every given) account; failures are reported per account."""
        targets = list(accounts) if accounts is not None else self.accounts
        summary = await self._refresher.refresh_all(targets)
        self._favorites.observe(self._cache)
        if summary.failed:
            self._notify(
                NoticeLevel.WARNING,
                f"{len(summary.failed)} of {len(targets)} accounts could not be refreshed",
            )
        return summary

    async def load_more_domains(self, account_id: str) -> bool:
        loaded = await self._engine.load_more_domains(account_id)
        self._favorites.observe(self._cache)
        return loaded

    def select_domain(self, account_id: str, domain_id: str) -> Optional[Domain]:
        """Select a domain; the record list of the previous one is discarded."""
        if self._selected != (account_id, domain_id):
            self._records.close()
        self._selected = (account_id, domain_id)
        domain = self._cache.find_domain(account_id, domain_id)
        if domain is not None:
            account = self._accounts.get(account_id)
            try:
                self._recent.add(
                    account_id,
                    domain_id,
                    domain.name,
                    account_name=account.name if account else "",
                    provider=domain.provider,
                )
            except PersistenceError as e:
                self._log_error("Failed to save recent domains", e)
        return domain

    def clear_selected_domain(self) -> None:
        self._selected = None
        self._records.close()

    def set_scroll_position(self, position: int) -> None:
        """Update the scroll position; the save is debounced."""
        self._cache.set_scroll_position(position)
        self._scroll_debouncer.schedule(SCROLL_DEBOUNCE_KEY, self._cache.persist)

    def toggle_expanded_account(self, account_id: str) -> bool:
        if account_id in self._expanded_accounts:
            self._expanded_accounts.discard(account_id)
            return False
        self._expanded_accounts.add(account_id)
        return True

    def is_account_expanded(self, account_id: str) -> bool:
        return account_id in self._expanded_accounts

    def remove_account(self, account_id: str) -> None:
        """Forget everything cached for an account that was deleted."""
        self._cache.remove_account(account_id)
        self._cache.persist()
        self._favorites.forget_account(account_id)
        self._accounts.pop(account_id, None)
        self._providers.forget_account(account_id)
        self._expanded_accounts.discard(account_id)
        stale_keys = []
        for key in self._domain_selection.keys:
            parsed = parse_domain_key(key)
            if parsed is not None and parsed[0] == account_id:
                stale_keys.append(key)
        self._domain_selection.discard(stale_keys)
        if self._selected is not None and self._selected[0] == account_id:
            self.clear_selected_domain()
        try:
            self._recent.remove_account(account_id)
        except PersistenceError as e:
            self._log_error("Failed to update recent domains", e)
        self._log(LogLevel.INFO, "Account removed from cache", {"account_id": account_id})

    def clear_all(self) -> None:
        """Drop every cached domain and the persisted blob."""
        self._scroll_debouncer.cancel(SCROLL_DEBOUNCE_KEY)
        self._cache.clear()
        try:
            self._storage.remove(StorageKey.DOMAINS_CACHE)
        except PersistenceError as e:
            self._log_error("Failed to remove persisted cache", e)
        self._domain_selection.exit_batch_mode()
        self._tag_filter.clear()
        self.clear_selected_domain()
        self._favorites.clear()
        self._log(LogLevel.INFO, "Cache cleared")

    # ------------------------------------------------------------------
    # Metadata intents
    # ------------------------------------------------------------------

    async def update_metadata(
        self, account_id: str, domain_id: str, update: DomainMetadataUpdate
    ) -> OperationResult:
        result = await self._run(
            "update_metadata",
            self._mutations.update_metadata(account_id, domain_id, update),
            account_id=account_id,
            domain_id=domain_id,
        )
        if result.ok and result.value.is_favorite:
            self._favorites.add(account_id, domain_id)
        return result

    async def toggle_favorite(self, account_id: str, domain_id: str) -> OperationResult:
        result = await self._run(
            "toggle_favorite",
            self._mutations.toggle_favorite(account_id, domain_id),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )
        if result.ok and result.value:
            self._favorites.add(account_id, domain_id)
        return result

    async def add_tag(self, account_id: str, domain_id: str, tag: str) -> OperationResult:
        return await self._run(
            "add_tag",
            self._mutations.add_tag(account_id, domain_id, tag),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )

    async def remove_tag(self, account_id: str, domain_id: str, tag: str) -> OperationResult:
        result = await self._run(
            "remove_tag",
            self._mutations.remove_tag(account_id, domain_id, tag),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )
        if result.ok:
            self._tag_filter.prune(collect_tags(self._cache))
        return result

    async def set_tags(self, account_id: str, domain_id: str, tags: list[str]) -> OperationResult:
        result = await self._run(
            "set_tags",
            self._mutations.set_tags(account_id, domain_id, tags),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )
        if result.ok:
            self._tag_filter.prune(collect_tags(self._cache))
        return result

    # ------------------------------------------------------------------
    # Batch intents
    # ------------------------------------------------------------------

    async def batch_add_tags(self, tags: Iterable[str]) -> OperationResult:
        return await self._run_batch(TagOperation.ADD, tags)

    async def batch_remove_tags(self, tags: Iterable[str]) -> OperationResult:
        return await self._run_batch(TagOperation.REMOVE, tags)

    async def batch_set_tags(self, tags: Iterable[str]) -> OperationResult:
        return await self._run_batch(TagOperation.REPLACE, tags)

    async def _run_batch(self, mode: TagOperation, tags: Iterable[str]) -> OperationResult:
        result = await self._run(
            f"batch_{mode.value}_tags",
            self._batch.batch_apply_tags(list(tags), mode),
            notify_success=None,
        )
        if not result.ok:
            return result

        outcome: BatchTagResult = result.value
        if outcome.failed_count == 0:
            message = f"Tags updated on {outcome.success_count} domains"
            self._notify(NoticeLevel.SUCCESS, message)
            return OperationResult(ok=True, value=outcome, message=message)

        message = (
            f"Tags updated on {outcome.success_count} domains, "
            f"{outcome.failed_count} failed"
        )
        kind = outcome.failure_kind
        self._notify(NoticeLevel.WARNING, message, kind)
        return OperationResult(
            ok=False, value=outcome, kind=kind, message=message, partial=True
        )

    # ------------------------------------------------------------------
    # Domain selection and tag filter
    # ------------------------------------------------------------------

    def toggle_batch_mode(self) -> bool:
        return self._domain_selection.toggle_batch_mode()

    def toggle_domain_selection(self, account_id: str, domain_id: str) -> bool:
        return self._domain_selection.toggle_item(make_domain_key(account_id, domain_id))

    def select_all_domains(self, domains: Iterable[Domain]) -> None:
        """Select every given (visible) domain."""
        self._domain_selection.select_all(make_domain_key(d.account_id, d.id) for d in domains)

    def clear_domain_selection(self) -> None:
        self._domain_selection.clear_selection()

    def exit_batch_mode(self) -> None:
        self._domain_selection.exit_batch_mode()

    def toggle_tag_filter(self, tag: str) -> bool:
        return self._tag_filter.toggle(tag)

    def set_tag_filter(self, tags: Iterable[str]) -> None:
        self._tag_filter.replace(tags)

    def clear_tag_filter(self) -> None:
        self._tag_filter.clear()

    # ------------------------------------------------------------------
    # Record intents
    # ------------------------------------------------------------------

    async def open_domain_records(self, account_id: str, domain_id: str) -> OperationResult:
        return await self._run(
            "open_domain_records",
            self._records.open_domain(account_id, domain_id),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )

    async def fetch_records(
        self,
        account_id: str,
        domain_id: str,
        keyword: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> OperationResult:
        return await self._run(
            "fetch_records",
            self._records.fetch_records(account_id, domain_id, keyword, record_type),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )

    async def fetch_more_records(self, account_id: str, domain_id: str) -> bool:
        return await self._records.fetch_more_records(account_id, domain_id)

    async def jump_to_page(self, account_id: str, domain_id: str, page: int) -> OperationResult:
        return await self._run(
            "jump_to_page",
            self._records.jump_to_page(account_id, domain_id, page),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )

    async def set_record_page_size(self, account_id: str, domain_id: str, size: int) -> OperationResult:
        return await self._run(
            "set_page_size",
            self._records.set_page_size(account_id, domain_id, size),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )

    def search_records(
        self,
        account_id: str,
        domain_id: str,
        keyword: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> None:
        """Debounced server-side record search."""
        self._search.update(account_id, domain_id, keyword, record_type)

    async def create_record(self, account_id: str, draft: DnsRecordDraft) -> OperationResult:
        return await self._run(
            "create_record",
            self._records.create_record(account_id, draft),
            account_id=account_id,
            domain_id=draft.domain_id,
            notify_success="Record created",
        )

    async def update_record(
        self, account_id: str, record_id: str, draft: DnsRecordDraft
    ) -> OperationResult:
        return await self._run(
            "update_record",
            self._records.update_record(account_id, record_id, draft),
            account_id=account_id,
            domain_id=draft.domain_id,
            notify_success="Record updated",
        )

    async def delete_record(self, account_id: str, record_id: str, domain_id: str) -> OperationResult:
        return await self._run(
            "delete_record",
            self._records.delete_record(account_id, record_id, domain_id),
            account_id=account_id,
            domain_id=domain_id,
            notify_success="Record deleted",
        )

    async def batch_delete_records(self, account_id: str, domain_id: str) -> OperationResult:
        result = await self._run(
            "batch_delete_records",
            self._records.batch_delete_records(account_id, domain_id),
            account_id=account_id,
            domain_id=domain_id,
            notify_success=None,
        )
        if not result.ok or result.value is None:
            return result

        outcome = result.value
        if outcome.failed_count == 0:
            message = f"Deleted {outcome.success_count} records"
            self._notify(NoticeLevel.SUCCESS, message)
            return OperationResult(ok=True, value=outcome, message=message)

        message = f"Deleted {outcome.success_count} records, {outcome.failed_count} failed"
        self._notify(NoticeLevel.WARNING, message, FailureKind.REMOTE)
        return OperationResult(
            ok=False, value=outcome, kind=FailureKind.REMOTE, message=message, partial=True
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(
        self,
        action: str,
        operation: Awaitable[Any],
        account_id: Optional[str] = None,
        domain_id: Optional[str] = None,
        notify_success: Optional[str] = "Saved",
    ) -> OperationResult:
        """Await an operation and turn its outcome into an OperationResult."""
        try:
            value = await operation
        except DnsSyncError as e:
            return self._failure(action, e, classify_error(e), e.message, account_id, domain_id)
        except Exception as e:
            return self._failure(action, e, FailureKind.TRANSPORT, str(e), account_id, domain_id)

        if notify_success:
            self._notify(NoticeLevel.SUCCESS, notify_success)
        return OperationResult(ok=True, value=value)

    def _failure(
        self,
        action: str,
        error: Exception,
        kind: FailureKind,
        detail: str,
        account_id: Optional[str],
        domain_id: Optional[str],
    ) -> OperationResult:
        message = describe_failure(kind, detail)
        if self._logger:
            self._logger.log_error(
                self.COMPONENT,
                f"{action} failed",
                error=error,
                account_id=account_id,
                domain_id=domain_id,
                additional_data={"kind": kind.value},
            )
        self._notify(NoticeLevel.ERROR, message, kind)
        return OperationResult(ok=False, kind=kind, message=message)

    def _notify(
        self, level: NoticeLevel, message: str, kind: Optional[FailureKind] = None
    ) -> None:
        if self._notifier:
            self._notifier(Notice(level=level, message=message, kind=kind))

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)

    def _log_error(self, message: str, error: Exception) -> None:
        if self._logger:
            self._logger.log_error(self.COMPONENT, message, error=error)
