"""
Data models for the DNS sync layer.

This module defines the entities held in the cache (domains, their metadata,
DNS records), the page and list states built around them, and the result
shapes of batch operations. Every model serializes to and from the camelCase
JSON used both on the wire and in the persisted store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar, Union

from .enums import AccountStatus, DnsRecordType, DomainStatus, FailureKind

T = TypeVar("T")


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


class _Unset:
    """Marker for "field not present" in partial updates."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass
class DomainMetadata:
    """
    User-defined metadata attached to a domain.

    favorited_at records the first time the domain was ever favorited and is
    never cleared by un-favoriting.
    """

    is_favorite: bool = False
    tags: list[str] = field(default_factory=list)
    color: str = "none"
    note: Optional[str] = None
    favorited_at: Optional[str] = None
    updated_at: str = field(default_factory=utc_now_iso)

    def is_empty(self) -> bool:
        """True when the metadata carries nothing worth showing."""
        return (
            not self.is_favorite
            and not self.tags
            and self.color == "none"
            and self.note is None
            and self.favorited_at is None
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "isFavorite": self.is_favorite,
            "tags": list(self.tags),
            "color": self.color,
            "updatedAt": self.updated_at,
        }
        if self.note is not None:
            data["note"] = self.note
        if self.favorited_at is not None:
            data["favoritedAt"] = self.favorited_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DomainMetadata":
        return cls(
            is_favorite=bool(data.get("isFavorite", False)),
            tags=list(data.get("tags") or []),
            color=data.get("color") or "none",
            note=data.get("note"),
            favorited_at=data.get("favoritedAt"),
            updated_at=data.get("updatedAt") or utc_now_iso(),
        )


@dataclass
class DomainMetadataUpdate:
    """
    Partial metadata update.

    Fields left as None (or UNSET for note) are not changed. For note, None
    means "clear the note" and UNSET means "leave it alone".
    """

    is_favorite: Optional[bool] = None
    tags: Optional[list[str]] = None
    color: Optional[str] = None
    note: Union[str, None, _Unset] = UNSET

    def is_noop(self) -> bool:
        return (
            self.is_favorite is None
            and self.tags is None
            and self.color is None
            and self.note is UNSET
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        if self.is_favorite is not None:
            data["isFavorite"] = self.is_favorite
        if self.tags is not None:
            data["tags"] = list(self.tags)
        if self.color is not None:
            data["color"] = self.color
        if self.note is not UNSET:
            data["note"] = self.note
        return data


@dataclass
class Domain:
    """A DNS zone owned by one account."""

    id: str
    name: str
    account_id: str
    provider: str
    status: DomainStatus = DomainStatus.ACTIVE
    record_count: Optional[int] = None
    created_at: Optional[str] = None
    metadata: Optional[DomainMetadata] = None

    @property
    def tags(self) -> list[str]:
        return self.metadata.tags if self.metadata else []

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "accountId": self.account_id,
            "provider": self.provider,
            "status": self.status.value,
        }
        if self.record_count is not None:
            data["recordCount"] = self.record_count
        if self.created_at is not None:
            data["createdAt"] = self.created_at
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Domain":
        metadata = data.get("metadata")
        try:
            status = DomainStatus(data.get("status", "active"))
        except ValueError:
            status = DomainStatus.ERROR
        return cls(
            id=data["id"],
            name=data["name"],
            account_id=data["accountId"],
            provider=data.get("provider", ""),
            status=status,
            record_count=data.get("recordCount"),
            created_at=data.get("createdAt"),
            metadata=DomainMetadata.from_dict(metadata) if metadata else None,
        )


@dataclass
class DnsRecord:
    """A single DNS record of a domain."""

    id: str
    domain_id: str
    type: DnsRecordType
    name: str
    value: str
    ttl: int
    priority: Optional[int] = None
    proxied: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "domainId": self.domain_id,
            "type": self.type.value,
            "name": self.name,
            "value": self.value,
            "ttl": self.ttl,
        }
        for key, value in (
            ("priority", self.priority),
            ("proxied", self.proxied),
            ("createdAt", self.created_at),
            ("updatedAt", self.updated_at),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "DnsRecord":
        return cls(
            id=data["id"],
            domain_id=data["domainId"],
            type=DnsRecordType(data["type"]),
            name=data["name"],
            value=data["value"],
            ttl=int(data["ttl"]),
            priority=data.get("priority"),
            proxied=data.get("proxied"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class DnsRecordDraft:
    """Payload for creating or updating a DNS record."""

    domain_id: str
    type: DnsRecordType
    name: str
    value: str
    ttl: int = 300
    priority: Optional[int] = None
    proxied: Optional[bool] = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "domainId": self.domain_id,
            "type": self.type.value,
            "name": self.name,
            "value": self.value,
            "ttl": self.ttl,
        }
        if self.priority is not None:
            data["priority"] = self.priority
        if self.proxied is not None:
            data["proxied"] = self.proxied
        return data


@dataclass
class Page(Generic[T]):
    """One page returned by a remote list call."""

    items: list[T]
    page: int
    page_size: int
    total_count: int
    has_more: bool


@dataclass
class AccountDomainCache:
    """
    Cached domains of one account.

    items holds every domain returned by successful page fetches since the
    last reset, page is the last page fetched, and has_more=False is terminal
    until the account is refreshed from page 1 again.
    """

    items: list[Domain]
    page: int
    has_more: bool
    last_updated: float  # epoch seconds

    def to_dict(self) -> dict:
        return {
            "domains": [d.to_dict() for d in self.items],
            "page": self.page,
            "hasMore": self.has_more,
            "lastUpdated": int(self.last_updated * 1000),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccountDomainCache":
        return cls(
            items=[Domain.from_dict(d) for d in data.get("domains", [])],
            page=int(data.get("page", 1)),
            has_more=bool(data.get("hasMore", False)),
            last_updated=float(data.get("lastUpdated", 0)) / 1000.0,
        )


@dataclass
class DnsRecordListState:
    """Record list of the currently open domain. Never persisted."""

    domain_id: Optional[str] = None
    items: list[DnsRecord] = field(default_factory=list)
    page: int = 1
    page_size: int = 20
    has_more: bool = False
    total_count: int = 0
    keyword: str = ""
    record_type: str = ""


@dataclass
class Account:
    """A configured credential set for one DNS provider."""

    id: str
    name: str
    provider: str
    status: AccountStatus = AccountStatus.ACTIVE
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        try:
            status = AccountStatus(data.get("status") or "active")
        except ValueError:
            status = AccountStatus.ERROR
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            provider=data["provider"],
            status=status,
            error=data.get("error"),
        )


@dataclass
class BatchTagRequest:
    """One target of a batch tag operation."""

    account_id: str
    domain_id: str
    tags: list[str]

    def to_dict(self) -> dict:
        return {"accountId": self.account_id, "domainId": self.domain_id, "tags": list(self.tags)}


def parse_failure_kind(value: Any) -> FailureKind:
    """Failure kind from its wire value; a missing or unknown value means REMOTE."""
    try:
        return FailureKind(value)
    except (TypeError, ValueError):
        return FailureKind.REMOTE


@dataclass
class BatchTagFailure:
    """One failed target of a batch tag operation."""

    account_id: str
    domain_id: str
    reason: str
    kind: FailureKind = FailureKind.REMOTE


@dataclass
class BatchTagResult:
    """Outcome of a batch tag operation."""

    success_count: int
    failed_count: int
    failures: list[BatchTagFailure] = field(default_factory=list)

    @property
    def failure_kind(self) -> FailureKind:
        """Kind shared by every failure; REMOTE when they differ or there are none."""
        kinds = {f.kind for f in self.failures}
        return kinds.pop() if len(kinds) == 1 else FailureKind.REMOTE

    @classmethod
    def from_dict(cls, data: dict) -> "BatchTagResult":
        failures = [
            BatchTagFailure(
                account_id=f["accountId"],
                domain_id=f["domainId"],
                reason=f.get("reason", ""),
                kind=parse_failure_kind(f.get("kind")),
            )
            for f in data.get("failures", [])
        ]
        return cls(
            success_count=int(data.get("successCount", 0)),
            failed_count=int(data.get("failedCount", len(failures))),
            failures=failures,
        )


@dataclass
class BatchDeleteFailure:
    """One record that could not be deleted."""

    record_id: str
    reason: str


@dataclass
class BatchDeleteResult:
    """Outcome of a batch record deletion."""

    success_count: int
    failed_count: int
    failures: list[BatchDeleteFailure] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "BatchDeleteResult":
        failures = [
            BatchDeleteFailure(record_id=f["recordId"], reason=f.get("reason", ""))
            for f in data.get("failures", [])
        ]
        return cls(
            success_count=int(data.get("successCount", 0)),
            failed_count=int(data.get("failedCount", len(failures))),
            failures=failures,
        )


@dataclass
class RecentDomain:
    """A recently opened domain, for quick navigation."""

    account_id: str
    domain_id: str
    domain_name: str
    account_name: str
    provider: str
    timestamp: float  # epoch seconds

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "domainId": self.domain_id,
            "domainName": self.domain_name,
            "accountName": self.account_name,
            "provider": self.provider,
            "timestamp": int(self.timestamp * 1000),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecentDomain":
        return cls(
            account_id=data["accountId"],
            domain_id=data["domainId"],
            domain_name=data.get("domainName", ""),
            account_name=data.get("accountName", ""),
            provider=data.get("provider", ""),
            timestamp=float(data.get("timestamp", 0)) / 1000.0,
        )
