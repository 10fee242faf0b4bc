"""
Durable key-value cache on the local device.

Records are JSON documents addressed by string keys under a namespace
prefix. When a directory is given every key is persisted as its own
JSON file (atomic write under a file lock); without one the store lives
in memory only. Write failures never raise: ``set``/``remove`` return False and
keep the reason in ``last_error`` so callers can treat the record as
unsaved.
"""

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from ..core.config import DEFAULT_KEY_PREFIX, DEFAULT_QUOTA_BYTES
from ..core.exceptions import StorageError
from ..utils.date import to_iso, utc_now
from ..utils.io import atomic_write, safe_read_json, safe_remove

BACKUP_VERSION = "1.0"

_UNREADABLE = object()


class LocalStore:
    """Namespaced JSON key-value store with a size quota."""

    FILE_SUFFIX = ".json"

    def __init__(self,
                 directory: Optional[str] = None,
                 prefix: str = DEFAULT_KEY_PREFIX,
                 quota_bytes: int = DEFAULT_QUOTA_BYTES,
                 logger: Optional[logging.Logger] = None):
        self.directory = os.path.abspath(os.path.expanduser(directory)) if directory else None
        self.prefix = prefix
        self.quota_bytes = quota_bytes
        self.logger = logger or logging.getLogger(__name__)
        self.last_error: Optional[str] = None

        # full key -> serialized JSON
        self._entries: Dict[str, str] = {}
        self._usage = 0
        self._lock = threading.RLock()

        if self.directory:
            try:
                os.makedirs(self.directory, exist_ok=True)
            except OSError as exc:
                raise StorageError(f"Cannot use local store directory {self.directory}: {exc}") from exc
            self._load_directory()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _path_for(self, full_key: str) -> str:
        return os.path.join(self.directory, quote(full_key, safe="") + self.FILE_SUFFIX)

    @staticmethod
    def _entry_size(full_key: str, serialized: str) -> int:
        return len(full_key) + len(serialized)

    def _load_directory(self) -> None:
        loaded = 0
        for name in sorted(os.listdir(self.directory)):
            if name.startswith(".") or not name.endswith(self.FILE_SUFFIX):
                continue
            full_key = unquote(name[: -len(self.FILE_SUFFIX)])
            if not full_key.startswith(self.prefix):
                continue
            data = safe_read_json(os.path.join(self.directory, name), default=_UNREADABLE)
            if data is _UNREADABLE:
                self.logger.warning("Skipping unreadable local record %s", name)
                continue
            serialized = json.dumps(data, ensure_ascii=False, sort_keys=True)
            self._entries[full_key] = serialized
            self._usage += self._entry_size(full_key, serialized)
            loaded += 1
        self.logger.debug("Loaded %d local records from %s", loaded, self.directory)

    def _fail(self, message: str) -> bool:
        self.last_error = message
        self.logger.warning(message)
        return False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def usage_bytes(self) -> int:
        return self._usage

    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""
        with self._lock:
            serialized = self._entries.get(self._full_key(key))
        if serialized is None:
            return None
        try:
            return json.loads(serialized)
        except json.JSONDecodeError as exc:
            self.logger.error("Corrupt local record %s: %s", key, exc)
            return None

    def contains(self, key: str) -> bool:
        with self._lock:
            return self._full_key(key) in self._entries

    def set(self, key: str, value: Any) -> bool:
        """
        Store a JSON-serializable value.

        Returns:
            True if stored, False on serialization failure, quota
            exhaustion or a failed disk write
        """
        try:
            serialized = json.dumps(value, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError) as exc:
            return self._fail(f"Cannot serialize local record {key}: {exc}")

        full_key = self._full_key(key)
        with self._lock:
            previous = self._entries.get(full_key)
            previous_size = self._entry_size(full_key, previous) if previous is not None else 0
            new_usage = self._usage - previous_size + self._entry_size(full_key, serialized)
            if new_usage > self.quota_bytes:
                return self._fail(
                    f"Local storage quota exceeded writing {key} "
                    f"({new_usage} > {self.quota_bytes} bytes)"
                )

            if self.directory and not atomic_write(self._path_for(full_key), serialized):
                return self._fail(f"Failed to persist local record {key}")

            self._entries[full_key] = serialized
            self._usage = new_usage
            self.last_error = None
        return True

    def remove(self, key: str) -> bool:
        """Remove a key. Removing an absent key succeeds."""
        full_key = self._full_key(key)
        with self._lock:
            previous = self._entries.get(full_key)
            if previous is None:
                return True
            if self.directory and not safe_remove(self._path_for(full_key)):
                return self._fail(f"Failed to remove local record {key}")
            del self._entries[full_key]
            self._usage -= self._entry_size(full_key, previous)
        return True

    def keys(self, namespace_prefix: str = "") -> List[str]:
        """Enumerate keys (without the store prefix) starting with namespace_prefix."""
        wanted = self._full_key(namespace_prefix)
        offset = len(self.prefix)
        with self._lock:
            return sorted(k[offset:] for k in self._entries if k.startswith(wanted))

    def clear(self) -> int:
        """Remove every record under the store prefix. Returns the count removed."""
        removed = 0
        for key in self.keys():
            if self.remove(key):
                removed += 1
        self.logger.info("Cleared %d items from local storage", removed)
        return removed

    def export_data(self) -> Dict[str, Any]:
        """Dump every record for backup."""
        return {
            "exportedAt": to_iso(utc_now()),
            "version": BACKUP_VERSION,
            "data": {key: self.get(key) for key in self.keys()},
        }

    def import_data(self, backup: Dict[str, Any]) -> int:
        """
        Restore records from an ``export_data`` dump.

        Raises:
            ValueError: if the backup does not have the expected shape

        Returns:
            Number of records written
        """
        if not isinstance(backup, dict) or not isinstance(backup.get("data"), dict):
            raise ValueError("Invalid backup data format")

        imported = 0
        for key, value in backup["data"].items():
            if self.set(key, value):
                imported += 1
        self.logger.info("Imported %d items from backup", imported)
        return imported
