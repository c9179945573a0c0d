"""
Enumeration types for the DNS sync layer.

These enums provide type-safe constants for entity states, operation modes
and error classification throughout the system.
"""

from enum import Enum


class DomainStatus(Enum):
    """Status of a domain (zone) as reported by its provider."""

    ACTIVE = "active"
    PAUSED = "paused"
    PENDING = "pending"
    ERROR = "error"


class AccountStatus(Enum):
    """Health of a configured provider account."""

    ACTIVE = "active"
    ERROR = "error"


class DnsRecordType(Enum):
    """Supported DNS record types."""

    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    SRV = "SRV"
    CAA = "CAA"


class DomainColor(Enum):
    """Color label of a domain. NONE means no label."""

    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    TEAL = "teal"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"
    BROWN = "brown"
    GRAY = "gray"
    NONE = "none"


class TagOperation(Enum):
    """Mode of a batch tag operation."""

    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


class PaginationMode(Enum):
    """How the record list pages: appended scrolling or numbered pages."""

    INFINITE = "infinite"
    PAGINATED = "paginated"


class CacheStatus(Enum):
    """Whether an account has cached domains at all."""

    ABSENT = "absent"  # never fetched, or reset
    EMPTY = "empty"  # fetched, zero domains
    POPULATED = "populated"


class SelectionState(Enum):
    """States of a selection set."""

    INACTIVE = "inactive"
    ACTIVE_EMPTY = "active_empty"
    ACTIVE_NONEMPTY = "active_nonempty"


class FailureKind(Enum):
    """Classification of a failed operation."""

    TRANSPORT = "transport"
    CREDENTIAL = "credential"
    VALIDATION = "validation"
    REMOTE = "remote"


class DomainSortKey(Enum):
    """Orderings offered by the filter layer."""

    NAME = "name"
    FAVORITED_AT = "favorited_at"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class NoticeLevel(Enum):
    """Severity of a notice shown to the user."""

    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
