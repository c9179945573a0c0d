"""
Provider capability table.

Holds the page size limits and features of each supported DNS provider,
and the account -> provider mapping needed to look limits up by account.
"""

from typing import Iterable, Optional

from .config import ProviderLimitConfig
from .models import Account

# Fallback when an account or its provider is not known
DEFAULT_MAX_PAGE_SIZE = 100

BUILTIN_PROVIDERS = [
    ProviderLimitConfig(provider="cloudflare", max_page_size_domains=50, max_page_size_records=5000, supports_proxy=True),
    ProviderLimitConfig(provider="aliyun", max_page_size_domains=100, max_page_size_records=100),
    ProviderLimitConfig(provider="dnspod", max_page_size_domains=3000, max_page_size_records=3000),
    ProviderLimitConfig(provider="huaweicloud", max_page_size_domains=500, max_page_size_records=500),
]


class ProviderCapabilityTable:
    """Lookup of provider limits, by provider id or by account id."""

    def __init__(
        self,
        overrides: Optional[Iterable[ProviderLimitConfig]] = None,
        default_max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
    ) -> None:
        self._default_max = default_max_page_size
        self._limits: dict[str, ProviderLimitConfig] = {p.provider: p for p in BUILTIN_PROVIDERS}
        for override in overrides or ():
            self._limits[override.provider] = override
        self._account_providers: dict[str, str] = {}

    def get(self, provider: str) -> Optional[ProviderLimitConfig]:
        return self._limits.get(provider)

    @property
    def providers(self) -> list[str]:
        return sorted(self._limits)

    def register_accounts(self, accounts: Iterable[Account]) -> None:
        """Replace the known account -> provider mapping."""
        self._account_providers = {a.id: a.provider for a in accounts}

    def register_account(self, account_id: str, provider: str) -> None:
        self._account_providers[account_id] = provider

    def forget_account(self, account_id: str) -> None:
        self._account_providers.pop(account_id, None)

    def provider_of(self, account_id: str) -> Optional[str]:
        return self._account_providers.get(account_id)

    def max_page_size_domains(self, provider: Optional[str]) -> int:
        limits = self._limits.get(provider) if provider else None
        return limits.max_page_size_domains if limits else self._default_max

    def max_page_size_records(self, provider: Optional[str]) -> int:
        limits = self._limits.get(provider) if provider else None
        return limits.max_page_size_records if limits else self._default_max

    def domain_page_size(self, account_id: str, preferred: int) -> int:
        """Page size to request for an account's domains, clamped to its provider."""
        return max(1, min(preferred, self.max_page_size_domains(self.provider_of(account_id))))

    def record_page_size(self, account_id: str, preferred: int) -> int:
        return max(1, min(preferred, self.max_page_size_records(self.provider_of(account_id))))

    def supports_proxy(self, provider: str) -> bool:
        limits = self._limits.get(provider)
        return bool(limits and limits.supports_proxy)

    def update_from_metadata(self, providers: Iterable[dict]) -> int:
        """
        Merge provider metadata as returned by the backend's list_providers.

        Each entry looks like {"id", "features": {"proxy"}, "limits":
        {"maxPageSizeDomains", "maxPageSizeRecords"}}. Entries without limits
        are skipped.

        Returns:
            Number of providers updated
        """
        updated = 0
        for entry in providers:
            limits = entry.get("limits") or {}
            if "maxPageSizeDomains" not in limits or "maxPageSizeRecords" not in limits:
                continue
            features = entry.get("features") or {}
            self._limits[entry["id"]] = ProviderLimitConfig(
                provider=entry["id"],
                max_page_size_domains=int(limits["maxPageSizeDomains"]),
                max_page_size_records=int(limits["maxPageSizeRecords"]),
                supports_proxy=bool(features.get("proxy", False)),
            )
            updated += 1
        return updated
