"""
Persisted key/value store for the DNS sync layer.

Every key is namespaced under a prefix so that clearing the store never
touches foreign data sharing the same backing file. The file backend can
optionally protect its content with an HMAC to detect tampering.
"""

import copy
import hashlib
import hmac
import json
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .audit_logger import AuditLogger
from .enums import LogLevel
from .exceptions import PersistenceError, TamperingError

DEFAULT_PREFIX = "dns-sync:"
MIGRATION_MARKER = "migrated"
MIGRATION_VERSION = "v1"


class StorageKey(str, Enum):
    """Keys owned by the sync layer and the UI preferences it reads."""

    DOMAINS_CACHE = "domainsCache"
    PAGINATION_MODE = "paginationMode"
    SHOW_RECORD_HINTS = "showRecordHints"
    RECENT_DOMAINS = "recentDomains"


STORAGE_DEFAULTS: dict[StorageKey, Any] = {
    StorageKey.DOMAINS_CACHE: {"domainsByAccount": {}, "scrollPosition": 0},
    StorageKey.PAGINATION_MODE: "infinite",
    StorageKey.SHOW_RECORD_HINTS: False,
    StorageKey.RECENT_DOMAINS: [],
}

# Un-prefixed keys written by earlier releases
LEGACY_KEYS: dict[str, StorageKey] = {
    "paginationMode": StorageKey.PAGINATION_MODE,
    "showRecordHints": StorageKey.SHOW_RECORD_HINTS,
    "recent_domains": StorageKey.RECENT_DOMAINS,
    "dns-sync-domains-cache": StorageKey.DOMAINS_CACHE,
}


class KeyValueStorage:
    """
    Typed, prefix-scoped key/value store.

    Subclasses provide the raw backend through _read_all and _write_all; the
    raw mapping holds full (prefixed) keys and may contain keys this store
    does not own.
    """

    COMPONENT = "storage"

    def __init__(
        self,
        prefix: str = DEFAULT_PREFIX,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._prefix = prefix
        self._logger = logger

    @property
    def prefix(self) -> str:
        return self._prefix

    def _read_all(self) -> dict[str, Any]:
        raise NotImplementedError

    def _write_all(self, data: dict[str, Any]) -> None:
        raise NotImplementedError

    def full_key(self, key: StorageKey) -> str:
        return f"{self._prefix}{key.value}"

    def get(self, key: StorageKey) -> Optional[Any]:
        """
        Get the stored value of a key.

        Returns:
            A copy of the stored value, or None if the key is absent

        Raises:
            PersistenceError: If the backend cannot be read
        """
        value = self._read_all().get(self.full_key(key))
        return copy.deepcopy(value)

    def get_with_default(self, key: StorageKey, default: Any = None) -> Any:
        """Get a key, falling back to default (or the key's built-in default)."""
        value = self.get(key)
        if value is not None:
            return value
        if default is not None:
            return default
        return copy.deepcopy(STORAGE_DEFAULTS.get(key))

    def set(self, key: StorageKey, value: Any) -> None:
        data = self._read_all()
        data[self.full_key(key)] = copy.deepcopy(value)
        self._write_all(data)

    def remove(self, key: StorageKey) -> None:
        data = self._read_all()
        if data.pop(self.full_key(key), None) is not None:
            self._write_all(data)

    def has(self, key: StorageKey) -> bool:
        return self.full_key(key) in self._read_all()

    def clear(self) -> int:
        """
        Remove every key under this store's prefix.

        Returns:
            Number of keys removed
        """
        data = self._read_all()
        owned = [k for k in data if k.startswith(self._prefix)]
        for k in owned:
            del data[k]
        self._write_all(data)
        self._log(LogLevel.DEBUG, "Cleared storage", {"removed": len(owned)})
        return len(owned)

    def migrate(self) -> bool:
        """
        Move legacy un-prefixed keys under the prefix, once.

        A legacy value only wins when the prefixed key does not exist yet;
        legacy keys are removed either way.

        Returns:
            True if a migration pass ran, False if it had already run
        """
        data = self._read_all()
        marker = f"{self._prefix}{MIGRATION_MARKER}"
        if data.get(marker) == MIGRATION_VERSION:
            return False

        for old_key, new_key in LEGACY_KEYS.items():
            if old_key not in data:
                continue
            value = data.pop(old_key)
            full = self.full_key(new_key)
            if full not in data:
                data[full] = value
                self._log(LogLevel.DEBUG, "Migrated legacy key", {"from": old_key, "to": full})

        data[marker] = MIGRATION_VERSION
        self._write_all(data)
        return True

    def _log(self, level: LogLevel, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            self._logger.log(level, self.COMPONENT, message, data)


class MemoryStorage(KeyValueStorage):
    """In-memory backend. The raw mapping is exposed for inspection."""

    def __init__(
        self,
        initial: Optional[dict[str, Any]] = None,
        prefix: str = DEFAULT_PREFIX,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        super().__init__(prefix=prefix, logger=logger)
        self.raw: dict[str, Any] = dict(initial or {})
        self.write_count = 0

    def _read_all(self) -> dict[str, Any]:
        return dict(self.raw)

    def _write_all(self, data: dict[str, Any]) -> None:
        self.raw = dict(data)
        self.write_count += 1


class JsonFileStorage(KeyValueStorage):
    """
    JSON file backend.

    File layout: {"version": 1, "data": {...}} plus an "hmac" field over the
    data when a secret is configured. The parsed content is kept in memory
    after the first read.
    """

    VERSION = 1

    def __init__(
        self,
        file_path: Path,
        prefix: str = DEFAULT_PREFIX,
        hmac_secret: Optional[str] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the file store.

        Args:
            file_path: Path to the JSON file
            prefix: Namespace prefix for owned keys
            hmac_secret: Secret for HMAC protection (None disables it)
            logger: Optional audit logger
        """
        super().__init__(prefix=prefix, logger=logger)
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8") if hmac_secret else None
        self._data: Optional[dict[str, Any]] = None

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _read_all(self) -> dict[str, Any]:
        if self._data is None:
            self._data = self._load()
        return dict(self._data)

    def _load(self) -> dict[str, Any]:
        """
        Load and validate the file.

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if not self._file_path.exists():
            return {}

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse storage file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read storage file: {e}",
                details={"file_path": str(self._file_path)},
            )

        if not isinstance(raw, dict) or not isinstance(raw.get("data", {}), dict):
            raise PersistenceError(
                code="parse_error",
                message="Storage file has an unexpected shape",
                details={"file_path": str(self._file_path)},
            )

        data = raw.get("data", {})
        if self._hmac_secret is not None:
            stored = raw.get("hmac", "")
            computed = self.compute_hmac(data)
            if not hmac.compare_digest(stored, computed):
                raise TamperingError(
                    code="hmac_mismatch",
                    message="HMAC validation failed - storage may have been tampered with",
                    details={"file_path": str(self._file_path)},
                )
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        output: dict[str, Any] = {"version": self.VERSION, "data": data}
        if self._hmac_secret is not None:
            output["hmac"] = self.compute_hmac(data)

        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._file_path, "w", encoding="utf-8") as f:
                json.dump(output, f, indent=2, sort_keys=True, ensure_ascii=False)
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write storage file: {e}",
                details={"file_path": str(self._file_path)},
            )
        self._data = dict(data)

    def compute_hmac(self, data: dict) -> str:
        """HMAC-SHA256 over the canonical JSON of data."""
        if self._hmac_secret is None:
            raise PersistenceError(code="no_secret", message="HMAC secret not configured")
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
