"""
Batch tag reconciler.

Sends one backend call for a whole selection of domains and reconciles the
partial outcome locally: every target the backend did not report as failed
gets the tag change applied to its cached copy, failed targets stay as they
were. Afterwards the domain selection is cleared, batch mode is left, and
the active tag filter loses tags that no cached domain carries anymore.
"""

from typing import Callable, Iterable, Optional

from .audit_logger import AuditLogger
from .domain_cache import DomainCache
from .enums import LogLevel, TagOperation
from .exceptions import ValidationError
from .filters import TagFilter, collect_tags
from .models import BatchTagRequest, BatchTagResult, DomainMetadata, utc_now_iso
from .remote import RemoteClient
from .selection import SelectionSet, parse_domain_key
from .validation import clean_tags


def apply_tag_operation(current: Iterable[str], tags: Iterable[str], mode: TagOperation) -> list[str]:
    """Resulting sorted tag list of one domain after a batch operation."""
    if mode is TagOperation.ADD:
        return sorted(set(current) | set(tags))
    if mode is TagOperation.REMOVE:
        return sorted(set(current) - set(tags))
    if mode is TagOperation.REPLACE:
        return sorted(set(tags))
    raise ValueError(f"Unknown tag operation: {mode}")


class BatchTagReconciler:
    """Batch add/remove/replace of tags across selected domains."""

    COMPONENT = "BatchTags"

    def __init__(
        self,
        remote: RemoteClient,
        cache: DomainCache,
        selection: SelectionSet,
        tag_filter: TagFilter,
        logger: Optional[AuditLogger] = None,
        now: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._selection = selection
        self._tag_filter = tag_filter
        self._logger = logger
        self._now = now

    def _build_requests(self, keys: Iterable[str], tags: list[str]) -> list[BatchTagRequest]:
        requests = []
        for key in sorted(keys):
            parsed = parse_domain_key(key)
            if parsed is None:
                self._log(LogLevel.WARN, "Skipping malformed domain key", {"key": key})
                continue
            account_id, domain_id = parsed
            requests.append(BatchTagRequest(account_id=account_id, domain_id=domain_id, tags=tags))
        return requests

    async def batch_apply_tags(
        self,
        tags: Iterable[str],
        mode: TagOperation,
        keys: Optional[Iterable[str]] = None,
    ) -> BatchTagResult:
        """
        Apply a tag operation to every selected domain.

        Args:
            tags: Tags to add, remove, or replace with
            mode: The operation
            keys: Composite domain keys; defaults to the current selection

        Returns:
            The backend's per-target outcome

        Raises:
            ValidationError: Before any network call, if the tags are invalid
                or there is nothing to apply them to
            DnsSyncError: If the backend call fails as a whole; cache and
                selection are left unchanged
        """
        cleaned = clean_tags(tags)
        if not cleaned and mode is not TagOperation.REPLACE:
            raise ValidationError(code="no_tags", message="At least one tag is required")

        requests = self._build_requests(
            self._selection.keys if keys is None else keys, cleaned
        )
        if not requests:
            raise ValidationError(code="empty_selection", message="No domains selected")

        result = await self._remote.batch_tags(mode, requests)

        failed = {(f.account_id, f.domain_id) for f in result.failures}
        now = self._now()
        applied = 0
        for request in requests:
            if (request.account_id, request.domain_id) in failed:
                continue

            def patch(metadata: DomainMetadata) -> None:
                metadata.tags = apply_tag_operation(metadata.tags, cleaned, mode)
                metadata.updated_at = now

            if self._cache.patch_metadata(request.account_id, request.domain_id, patch):
                applied += 1

        self._selection.exit_batch_mode()
        pruned = self._tag_filter.prune(collect_tags(self._cache))
        self._cache.persist()

        self._log(
            LogLevel.INFO if result.failed_count == 0 else LogLevel.WARN,
            "Batch tag operation finished",
            {
                "mode": mode.value,
                "tags": cleaned,
                "success": result.success_count,
                "failed": result.failed_count,
                "applied_locally": applied,
                "pruned_filter_tags": sorted(pruned),
            },
        )
        return result

    async def batch_add_tags(self, tags: Iterable[str], keys: Optional[Iterable[str]] = None) -> BatchTagResult:
        return await self.batch_apply_tags(tags, TagOperation.ADD, keys)

    async def batch_remove_tags(self, tags: Iterable[str], keys: Optional[Iterable[str]] = None) -> BatchTagResult:
        return await self.batch_apply_tags(tags, TagOperation.REMOVE, keys)

    async def batch_set_tags(self, tags: Iterable[str], keys: Optional[Iterable[str]] = None) -> BatchTagResult:
        return await self.batch_apply_tags(tags, TagOperation.REPLACE, keys)

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)
