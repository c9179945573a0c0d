"""
Record list controller.

Owns the DNS record list of the currently open domain: first-page loads,
appended pages (infinite mode), numbered page jumps (paginated mode), page
size changes, and the local effects of record mutations. Every response is
tagged with a request token; a response whose token is no longer current
(the user switched domain, or a newer load started) is dropped.
"""

import math
from typing import Optional

from .audit_logger import AuditLogger
from .config import PaginationConfig
from .enums import LogLevel, PaginationMode
from .exceptions import ValidationError
from .models import BatchDeleteResult, DnsRecord, DnsRecordDraft, DnsRecordListState, Page
from .providers import ProviderCapabilityTable
from .remote import RemoteClient
from .request_guard import RequestGuard, RequestToken
from .selection import SelectionSet
from .storage import KeyValueStorage, StorageKey

RECORDS_SCOPE = "records"


class RecordListController:
    """Paginated record list of one domain at a time."""

    COMPONENT = "RecordList"

    def __init__(
        self,
        remote: RemoteClient,
        providers: ProviderCapabilityTable,
        config: Optional[PaginationConfig] = None,
        storage: Optional[KeyValueStorage] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._remote = remote
        self._providers = providers
        self._config = config or PaginationConfig()
        self._storage = storage
        self._logger = logger
        self._guard = RequestGuard()
        self._account_id: Optional[str] = None
        self.state = DnsRecordListState(page_size=self._config.page_size)
        self.selection = SelectionSet()
        self.is_loading = False
        self.is_loading_more = False
        self.error: Optional[str] = None

    @property
    def account_id(self) -> Optional[str]:
        return self._account_id

    @property
    def domain_id(self) -> Optional[str]:
        return self.state.domain_id

    @property
    def records(self) -> list[DnsRecord]:
        return list(self.state.items)

    @property
    def pagination_mode(self) -> PaginationMode:
        """Paging style chosen by the UI, read from storage."""
        if self._storage is None:
            return PaginationMode.INFINITE
        raw = self._storage.get_with_default(StorageKey.PAGINATION_MODE)
        try:
            return PaginationMode(raw)
        except ValueError:
            return PaginationMode.INFINITE

    def page_size_for(self, account_id: str) -> int:
        return self._providers.record_page_size(account_id, self.state.page_size)

    def max_page(self, account_id: str) -> int:
        return math.ceil(self.state.total_count / self.page_size_for(account_id))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def open_domain(self, account_id: str, domain_id: str) -> bool:
        """Discard the current list and load page 1 of another domain."""
        self.close()
        self._account_id = account_id
        return await self.fetch_records(account_id, domain_id)

    async def fetch_records(
        self,
        account_id: str,
        domain_id: str,
        keyword: Optional[str] = None,
        record_type: Optional[str] = None,
    ) -> bool:
        """
        Load page 1, replacing the list.

        Records are cleared immediately only when the domain changes; a new
        search on the same domain keeps showing the old rows until the
        response arrives. keyword/record_type of None keep the current ones.

        Returns:
            True if the response was applied, False if it was stale

        Raises:
            DnsSyncError: If the current request failed
        """
        state = self.state
        if state.domain_id != domain_id:
            self._guard.invalidate(RECORDS_SCOPE)
            state.items = []
            state.total_count = 0
            self.selection.exit_batch_mode()

        state.domain_id = domain_id
        state.page = 1
        state.has_more = False
        if keyword is not None:
            state.keyword = keyword
        if record_type is not None:
            state.record_type = record_type
        self._account_id = account_id
        self.is_loading_more = False

        token = self._guard.issue(RECORDS_SCOPE)
        return await self._load_page(account_id, domain_id, 1, token)

    async def fetch_more_records(self, account_id: str, domain_id: str) -> bool:
        """
        Append the next page (infinite mode).

        No-op if a load-more is running, there are no more pages, or
        domain_id is not the open domain. Failures are logged and dropped.

        Returns:
            True if a page was appended
        """
        state = self.state
        if self.is_loading_more or not state.has_more or state.domain_id != domain_id:
            return False

        token = RequestToken(RECORDS_SCOPE, self._guard.generation(RECORDS_SCOPE))
        next_page = state.page + 1
        self.is_loading_more = True
        try:
            page = await self._list(account_id, domain_id, next_page)
        except Exception as e:
            self._log_error(f"Load more records failed for {domain_id}", e, account_id, domain_id)
            return False
        finally:
            if self._guard.is_current(token):
                self.is_loading_more = False

        if not self._guard.is_current(token):
            return False

        state.items = state.items + list(page.items)
        state.page = page.page
        state.has_more = page.has_more
        return True

    async def jump_to_page(self, account_id: str, domain_id: str, page: int) -> bool:
        """
        Load a numbered page, replacing the list (paginated mode).

        Raises:
            ValidationError: If page is outside 1..max_page; nothing is sent
            DnsSyncError: If the current request failed
        """
        max_page = self.max_page(account_id)
        if page < 1 or page > max_page:
            raise ValidationError(
                code="page_out_of_range",
                message=f"Page must be between 1 and {max_page}",
                details={"page": page, "max_page": max_page},
            )

        self.state.items = []
        self.state.page = page
        self.is_loading_more = False
        token = self._guard.issue(RECORDS_SCOPE)
        return await self._load_page(account_id, domain_id, page, token)

    async def set_page_size(self, account_id: str, domain_id: str, size: int) -> bool:
        """Change the page size and reload from page 1."""
        if size < 1:
            raise ValidationError(
                code="invalid_page_size",
                message="Page size must be at least 1",
                details={"size": size},
            )
        self.state.page_size = size
        self.state.page = 1
        return await self.fetch_records(account_id, domain_id)

    def close(self) -> None:
        """Discard the list; in-flight responses for it will be dropped."""
        self._guard.invalidate(RECORDS_SCOPE)
        self.state = DnsRecordListState(page_size=self.state.page_size)
        self.selection.exit_batch_mode()
        self.is_loading = False
        self.is_loading_more = False
        self.error = None
        self._account_id = None

    async def _list(self, account_id: str, domain_id: str, page: int) -> Page[DnsRecord]:
        return await self._remote.list_records(
            account_id,
            domain_id,
            page,
            self.page_size_for(account_id),
            keyword=self.state.keyword or None,
            record_type=self.state.record_type or None,
        )

    async def _load_page(
        self, account_id: str, domain_id: str, page_number: int, token: RequestToken
    ) -> bool:
        self.is_loading = True
        self.error = None
        try:
            page = await self._list(account_id, domain_id, page_number)
        except Exception as e:
            if not self._guard.is_current(token):
                return False
            self.is_loading = False
            self.error = str(e)
            self._log_error(f"Loading records failed for {domain_id}", e, account_id, domain_id)
            raise

        if not self._guard.is_current(token):
            self._log(
                LogLevel.DEBUG,
                "Dropped stale record response",
                {"domain_id": domain_id, "page": page_number},
            )
            return False

        self.is_loading = False
        state = self.state
        state.items = list(page.items)
        state.page = page.page
        state.has_more = page.has_more
        state.total_count = page.total_count
        return True

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_record(self, account_id: str, draft: DnsRecordDraft) -> DnsRecord:
        record = await self._remote.create_record(account_id, draft)
        if self.state.domain_id == draft.domain_id:
            self.state.items = self.state.items + [record]
            self.state.total_count += 1
        self._log(LogLevel.INFO, "Record created", {"domain_id": draft.domain_id, "record_id": record.id})
        return record

    async def update_record(
        self, account_id: str, record_id: str, draft: DnsRecordDraft
    ) -> DnsRecord:
        record = await self._remote.update_record(account_id, record_id, draft)
        self.state.items = [record if r.id == record_id else r for r in self.state.items]
        self._log(LogLevel.INFO, "Record updated", {"record_id": record_id})
        return record

    async def delete_record(self, account_id: str, record_id: str, domain_id: str) -> None:
        await self._remote.delete_record(account_id, record_id, domain_id)
        if self.state.domain_id == domain_id:
            self.state.items = [r for r in self.state.items if r.id != record_id]
            self.state.total_count = max(0, self.state.total_count - 1)
            self.selection.discard([record_id])
        self._log(LogLevel.INFO, "Record deleted", {"domain_id": domain_id, "record_id": record_id})

    async def batch_delete_records(
        self, account_id: str, domain_id: str
    ) -> Optional[BatchDeleteResult]:
        """
        Delete every selected record.

        Records that failed stay in the list; the count drops by the number
        of successes. Batch mode is left afterwards.

        Returns:
            The backend result, or None if nothing is selected
        """
        record_ids = sorted(self.selection.keys)
        if not record_ids:
            return None

        result = await self._remote.batch_delete_records(account_id, domain_id, record_ids)
        failed = {f.record_id for f in result.failures}
        deleted = set(record_ids) - failed

        if self.state.domain_id == domain_id:
            self.state.items = [r for r in self.state.items if r.id not in deleted]
            self.state.total_count = max(0, self.state.total_count - result.success_count)
        self.selection.exit_batch_mode()

        level = LogLevel.INFO if result.failed_count == 0 else LogLevel.WARN
        self._log(
            level,
            "Batch record delete finished",
            {"domain_id": domain_id, "success": result.success_count, "failed": result.failed_count},
        )
        return result

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)

    def _log_error(
        self, message: str, error: Exception, account_id: str, domain_id: str
    ) -> None:
        if self._logger:
            self._logger.log_error(
                self.COMPONENT, message, error=error, account_id=account_id, domain_id=domain_id
            )
