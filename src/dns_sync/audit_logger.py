"""
Audit logging for the DNS sync layer.

Every component logs through one AuditLogger: entries carry the component
name and a data dict, are written as JSON lines, text lines or both, and can
be HMAC-signed. Provider credentials (API tokens, access key secrets) may
travel through request data, so any key that looks like one is masked
before the entry is stored or written.
"""

import hashlib
import hmac
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

from dns_sync.enums import LogLevel

_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}

OUTPUT_FORMATS = ("json", "text", "both")

# Matched as substrings of the lowercased key
CREDENTIAL_KEY_FRAGMENTS = frozenset({
    'token', 'secret', 'password', 'credential', 'credentials',
    'api_token', 'apitoken', 'access_key', 'accesskey', 'secret_id',
    'authorization', 'auth', 'hmac_secret', 'signing_key',
})

MASK = "***MASKED***"


def is_credential_key(key: Any) -> bool:
    lowered = str(key).lower()
    return any(fragment in lowered for fragment in CREDENTIAL_KEY_FRAGMENTS)


def mask_credentials(value: Any) -> Any:
    """Copy of value with every credential-looking dict key masked, at any depth."""
    if isinstance(value, dict):
        return {
            k: MASK if is_credential_key(k) else mask_credentials(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [mask_credentials(item) for item in value]
    return value


@dataclass
class LogEntry:
    """One logged event."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)
    signature: Optional[str] = None

    def to_dict(self, with_signature: bool = True) -> dict:
        obj: dict[str, Any] = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "component": self.component,
            "message": self.message,
            "data": self.data,
        }
        if with_signature and self.signature:
            obj["signature"] = self.signature
        return obj


class AuditLogger:
    """
    Structured logger shared by the cache, the loaders and the service.

    Entries below min_level are dropped. In audit mode each entry is signed
    with HMAC-SHA256 over its canonical JSON form.
    """

    SENSITIVE_KEYS = CREDENTIAL_KEY_FRAGMENTS
    MASK_VALUE = MASK

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.DEBUG,
    ):
        """
        Args:
            output_format: 'json', 'text', or 'both'
            output_stream: Where entries are written (sys.stderr if omitted)
            min_level: Entries below this level are discarded
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Invalid output_format: {output_format}")

        self._format = output_format
        self._stream = output_stream or sys.stderr
        self._min_level = min_level
        self._key: Optional[bytes] = None
        self._entries: list[LogEntry] = []

    @property
    def output_format(self) -> str:
        return self._format

    @property
    def audit_mode(self) -> bool:
        return self._key is not None

    @property
    def entries(self) -> list[LogEntry]:
        """Entries logged so far (copy)."""
        return list(self._entries)

    def enable_audit_mode(self, signing_key: str) -> None:
        if not signing_key:
            raise ValueError("Signing key cannot be empty")
        self._key = signing_key.encode("utf-8")

    def disable_audit_mode(self) -> None:
        self._key = None

    def is_enabled_for(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self._min_level]

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Record and write one entry.

        Args:
            level: Severity
            component: Name of the component logging (its COMPONENT constant)
            message: Human-readable message
            data: Structured context; credential-looking keys are masked

        Returns:
            The entry, or None if level is below the threshold
        """
        if not self.is_enabled_for(level):
            return None

        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=mask_credentials(data or {}),
        )
        if self._key is not None:
            entry.signature = self._signature(entry)

        self._entries.append(entry)
        self._write(entry)
        return entry

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[BaseException] = None,
        account_id: Optional[str] = None,
        domain_id: Optional[str] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogEntry]:
        """
        Log an error with the account/domain it concerns.

        Structured errors (anything with a to_dict) contribute their code
        and details; other exceptions contribute type and message.
        """
        data = dict(additional_data or {})

        if error is not None:
            data["error_type"] = type(error).__name__
            data["error_message"] = str(error)
            to_dict = getattr(error, "to_dict", None)
            if callable(to_dict):
                structured = to_dict()
                data["error_code"] = structured.get("code")
                if structured.get("details"):
                    data["error_details"] = structured["details"]

        for key, value in (("account_id", account_id), ("domain_id", domain_id)):
            if value is not None:
                data[key] = value

        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        return mask_credentials(data)

    def _signature(self, entry: LogEntry) -> str:
        canonical = json.dumps(
            entry.to_dict(with_signature=False), sort_keys=True, ensure_ascii=False, default=str
        )
        return hmac.new(self._key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify_signature(self, entry: LogEntry) -> bool:
        """True if the entry carries a signature made with the current key."""
        if not entry.signature or self._key is None:
            return False
        return hmac.compare_digest(entry.signature, self._signature(entry))

    def format_json(self, entry: LogEntry) -> str:
        return json.dumps(entry.to_dict(), ensure_ascii=False, default=str)

    def format_text(self, entry: LogEntry) -> str:
        # [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        line = f"[{entry.timestamp}] {entry.level.value.upper()} [{entry.component}] {entry.message}"
        if entry.data:
            line += " " + json.dumps(entry.data, ensure_ascii=False, default=str)
        if entry.signature:
            line += f" [sig:{entry.signature[:16]}...]"
        return line

    def _write(self, entry: LogEntry) -> None:
        if self._format in ("json", "both"):
            self._stream.write(self.format_json(entry) + "\n")
        if self._format in ("text", "both"):
            self._stream.write(self.format_text(entry) + "\n")
        self._stream.flush()

    def clear_entries(self) -> None:
        self._entries.clear()


def create_logger(
    level: str = "info",
    output_format: str = "text",
    output_stream: Optional[TextIO] = None,
    signing_key: Optional[str] = None,
) -> AuditLogger:
    """Build a logger from LoggingConfig-style values; unknown levels mean info."""
    try:
        min_level = LogLevel(level.lower())
    except ValueError:
        min_level = LogLevel.INFO
    logger = AuditLogger(
        output_format=output_format,
        output_stream=output_stream,
        min_level=min_level,
    )
    if signing_key:
        logger.enable_audit_mode(signing_key)
    return logger
