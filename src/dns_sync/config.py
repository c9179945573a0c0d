"""
Configuration dataclasses for the DNS sync layer.

This module defines all configuration structures used throughout the system,
including pagination sizes, debounce timings, the remote backend endpoint,
persistence and logging configuration.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class ProviderLimitConfig:
    """Per-provider page size override."""

    provider: str
    max_page_size_domains: int
    max_page_size_records: int
    supports_proxy: bool = False


@dataclass
class PaginationConfig:
    """Page sizes requested by the pagination engine."""

    page_size: int = 20
    default_max_page_size: int = 100  # used when the provider is unknown


@dataclass
class TimingConfig:
    """Debounce delays in seconds."""

    scroll_save_debounce: float = 0.3
    search_debounce: float = 0.3


@dataclass
class RemoteConfig:
    """Remote backend (command endpoint) configuration."""

    base_url: str = "http://127.0.0.1:8787"
    timeout: float = 15.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class PersistenceConfig:
    """Persisted key/value store configuration."""

    storage_path: Path
    key_prefix: str = "dns-sync:"
    hmac_secret: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    remote: RemoteConfig
    persistence: PersistenceConfig
    logging: LoggingConfig
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    provider_limits: list[ProviderLimitConfig] = field(default_factory=list)
