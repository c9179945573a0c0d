"""
Metadata mutation pipeline.

Every mutation follows the same order: validate locally, call the backend,
then patch the one affected cached domain with the server's answer and
persist. Nothing is written to the cache before the backend confirms, so a
failed call leaves the cache exactly as it was. No list is refetched.
"""

from typing import Callable, Optional

from .audit_logger import AuditLogger
from .domain_cache import DomainCache
from .enums import LogLevel
from .models import DomainMetadata, DomainMetadataUpdate, utc_now_iso
from .remote import RemoteClient
from .validation import clean_tag, clean_tags, validate_update


class MetadataMutationPipeline:
    """Favorite, tag, color and note changes for single domains."""

    COMPONENT = "MetadataMutation"

    def __init__(
        self,
        remote: RemoteClient,
        cache: DomainCache,
        logger: Optional[AuditLogger] = None,
        now: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._logger = logger
        self._now = now

    async def update_metadata(
        self, account_id: str, domain_id: str, update: DomainMetadataUpdate
    ) -> DomainMetadata:
        """
        Apply a partial metadata update.

        The cached domain gets the server's canonical metadata verbatim.

        Raises:
            ValidationError: Before any network call, if the update is invalid
            DnsSyncError: If the backend call fails; the cache is untouched
        """
        update = validate_update(update)
        metadata = await self._remote.update_metadata(account_id, domain_id, update)
        if self._cache.set_metadata(account_id, domain_id, metadata):
            self._cache.persist()
        self._log("Metadata updated", account_id, domain_id, update.to_dict())
        return metadata

    async def toggle_favorite(self, account_id: str, domain_id: str) -> bool:
        """
        Flip the favorite flag.

        favorited_at is only ever filled in, never overwritten or cleared.

        Returns:
            The new favorite state reported by the backend
        """
        is_favorite = await self._remote.toggle_favorite(account_id, domain_id)
        now = self._now()

        def patch(metadata: DomainMetadata) -> None:
            metadata.is_favorite = is_favorite
            if is_favorite and metadata.favorited_at is None:
                metadata.favorited_at = now
            metadata.updated_at = now

        if self._cache.patch_metadata(account_id, domain_id, patch):
            self._cache.persist()
        self._log("Favorite toggled", account_id, domain_id, {"is_favorite": is_favorite})
        return is_favorite

    async def add_tag(self, account_id: str, domain_id: str, tag: str) -> list[str]:
        tag = clean_tag(tag)
        tags = await self._remote.add_tag(account_id, domain_id, tag)
        self._apply_tags(account_id, domain_id, tags)
        self._log("Tag added", account_id, domain_id, {"tag": tag})
        return tags

    async def remove_tag(self, account_id: str, domain_id: str, tag: str) -> list[str]:
        tag = clean_tag(tag)
        tags = await self._remote.remove_tag(account_id, domain_id, tag)
        self._apply_tags(account_id, domain_id, tags)
        self._log("Tag removed", account_id, domain_id, {"tag": tag})
        return tags

    async def set_tags(self, account_id: str, domain_id: str, tags: list[str]) -> list[str]:
        cleaned = clean_tags(tags)
        result = await self._remote.set_tags(account_id, domain_id, cleaned)
        self._apply_tags(account_id, domain_id, result)
        self._log("Tags replaced", account_id, domain_id, {"tags": result})
        return result

    def _apply_tags(self, account_id: str, domain_id: str, tags: list[str]) -> None:
        now = self._now()

        def patch(metadata: DomainMetadata) -> None:
            metadata.tags = list(tags)
            metadata.updated_at = now

        if self._cache.patch_metadata(account_id, domain_id, patch):
            self._cache.persist()

    def _log(self, message: str, account_id: str, domain_id: str, data: dict) -> None:
        if self._logger:
            self._logger.log(
                LogLevel.INFO,
                self.COMPONENT,
                message,
                {"account_id": account_id, "domain_id": domain_id, **data},
            )
