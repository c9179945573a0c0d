"""
DNS Sync - Cached, paginated domain and DNS record sync across provider accounts.

This package keeps a persisted per-account cache of domains, pages through
provider listings, applies metadata and tag mutations without refetching,
and guards every request against duplicates and stale responses.
"""

__version__ = "0.1.0"
__author__ = "DNS Sync Team"

from dns_sync.exceptions import (
    DnsSyncError,
    ValidationError,
    NetworkError,
    RemoteError,
    CredentialError,
    PersistenceError,
    TamperingError,
    classify_error,
)
from dns_sync.enums import (
    AccountStatus,
    CacheStatus,
    DnsRecordType,
    DomainColor,
    DomainSortKey,
    DomainStatus,
    FailureKind,
    LogLevel,
    NoticeLevel,
    PaginationMode,
    SelectionState,
    TagOperation,
)
from dns_sync.config import (
    ProviderLimitConfig,
    PaginationConfig,
    TimingConfig,
    RemoteConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
)
from dns_sync.models import (
    UNSET,
    Account,
    AccountDomainCache,
    BatchDeleteFailure,
    BatchDeleteResult,
    BatchTagFailure,
    BatchTagRequest,
    BatchTagResult,
    DnsRecord,
    DnsRecordDraft,
    DnsRecordListState,
    Domain,
    DomainMetadata,
    DomainMetadataUpdate,
    Page,
    RecentDomain,
)
from dns_sync.audit_logger import (
    AuditLogger,
    LogEntry,
    create_logger,
)
from dns_sync.storage import (
    StorageKey,
    KeyValueStorage,
    MemoryStorage,
    JsonFileStorage,
)
from dns_sync.providers import ProviderCapabilityTable
from dns_sync.remote import (
    RemoteClient,
    HttpRemoteClient,
)
from dns_sync.domain_cache import DomainCache
from dns_sync.pagination import PaginationEngine
from dns_sync.refresh import (
    AccountRefreshFailure,
    RefreshCoordinator,
    RefreshSummary,
)
from dns_sync.mutations import MetadataMutationPipeline
from dns_sync.batch import BatchTagReconciler
from dns_sync.selection import (
    SelectionSet,
    make_domain_key,
    parse_domain_key,
)
from dns_sync.filters import (
    FavoriteDomain,
    RecordSearch,
    SessionFavorites,
    TagFilter,
    filter_domains,
    sort_domains,
)
from dns_sync.record_list import RecordListController
from dns_sync.recent_domains import RecentDomains
from dns_sync.request_guard import (
    InFlightSet,
    RequestGuard,
    RequestToken,
)
from dns_sync.debounce import Debouncer
from dns_sync.sync_service import (
    DomainSyncService,
    Notice,
    OperationResult,
)
from dns_sync.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "DnsSyncError",
    "ValidationError",
    "NetworkError",
    "RemoteError",
    "CredentialError",
    "PersistenceError",
    "TamperingError",
    "classify_error",
    # Enums
    "AccountStatus",
    "CacheStatus",
    "DnsRecordType",
    "DomainColor",
    "DomainSortKey",
    "DomainStatus",
    "FailureKind",
    "LogLevel",
    "NoticeLevel",
    "PaginationMode",
    "SelectionState",
    "TagOperation",
    # Configuration
    "ProviderLimitConfig",
    "PaginationConfig",
    "TimingConfig",
    "RemoteConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    # Models
    "UNSET",
    "Account",
    "AccountDomainCache",
    "BatchDeleteFailure",
    "BatchDeleteResult",
    "BatchTagFailure",
    "BatchTagRequest",
    "BatchTagResult",
    "DnsRecord",
    "DnsRecordDraft",
    "DnsRecordListState",
    "Domain",
    "DomainMetadata",
    "DomainMetadataUpdate",
    "Page",
    "RecentDomain",
    # Logging
    "AuditLogger",
    "LogEntry",
    "create_logger",
    # Storage
    "StorageKey",
    "KeyValueStorage",
    "MemoryStorage",
    "JsonFileStorage",
    # Backend
    "ProviderCapabilityTable",
    "RemoteClient",
    "HttpRemoteClient",
    # Cache and sync
    "DomainCache",
    "PaginationEngine",
    "AccountRefreshFailure",
    "RefreshCoordinator",
    "RefreshSummary",
    "MetadataMutationPipeline",
    "BatchTagReconciler",
    "SelectionSet",
    "make_domain_key",
    "parse_domain_key",
    "FavoriteDomain",
    "RecordSearch",
    "SessionFavorites",
    "TagFilter",
    "filter_domains",
    "sort_domains",
    "RecordListController",
    "RecentDomains",
    "InFlightSet",
    "RequestGuard",
    "RequestToken",
    "Debouncer",
    # Service
    "DomainSyncService",
    "Notice",
    "OperationResult",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
