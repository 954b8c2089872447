"""Local key/value cache used for the fallback sequence counter and offline invoices."""
from __future__ import annotations

import copy
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict

import diskcache

from .errors import QuotaExceeded

logger = logging.getLogger(__name__)

SEQUENCE_KEY = "invoiceGenerator_sequence"
INVOICES_KEY = "invoiceGenerator_invoices"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class LocalCache:
    """In-memory cache with a size quota; subclasses swap in durable storage.

    The quota is measured on the JSON encoding of everything the cache
    holds, the way browser storage counts it.
    """

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        self.quota_bytes = quota_bytes
        self._data: Dict[str, Any] = {}

    def get_int(self, key: str) -> int:
        value = self._read(key, None)
        try:
            return int(value) if value is not None else 0
        except (TypeError, ValueError):
            logger.warning("Ignoring non-integer cache value for %s: %r", key, value)
            return 0

    def set_int(self, key: str, value: int) -> None:
        self.set_json(key, int(value))

    def get_json(self, key: str, default: Any = None) -> Any:
        return self._read(key, default)

    def set_json(self, key: str, value: Any) -> None:
        candidate = {**self._items(), key: value}
        encoded = json.dumps(candidate, ensure_ascii=False)
        if len(encoded.encode("utf-8")) > self.quota_bytes:
            raise QuotaExceeded(f"Cache quota of {self.quota_bytes} bytes exceeded writing {key}")
        self._write(key, value)

    def remove(self, key: str) -> None:
        self._delete(key)

    # Storage hooks
    def _items(self) -> Dict[str, Any]:
        return dict(self._data)

    def _read(self, key: str, default: Any) -> Any:
        return copy.deepcopy(self._data.get(key, default))

    def _write(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def _delete(self, key: str) -> None:
        self._data.pop(key, None)


class DiskCache(LocalCache):
    """Cache persisted in a ``diskcache`` directory, surviving restarts."""

    def __init__(self, directory: str | Path, quota_bytes: int = DEFAULT_QUOTA_BYTES) -> None:
        super().__init__(quota_bytes=quota_bytes)
        self.directory = Path(directory).expanduser()
        self._cache = diskcache.Cache(str(self.directory))

    def close(self) -> None:
        self._cache.close()

    def _items(self) -> Dict[str, Any]:
        items = {}
        for key in self._cache.iterkeys():
            value = self._cache.get(key)
            if value is not None:
                items[key] = value
        return items

    def _read(self, key: str, default: Any) -> Any:
        return self._cache.get(key, default=default)

    def _write(self, key: str, value: Any) -> None:
        try:
            self._cache.set(key, value)
        except (OSError, sqlite3.Error, diskcache.Timeout) as exc:
            raise QuotaExceeded(f"Could not write {key} to cache at {self.directory}: {exc}") from exc

    def _delete(self, key: str) -> None:
        try:
            self._cache.delete(key)
        except (OSError, sqlite3.Error, diskcache.Timeout) as exc:
            raise QuotaExceeded(f"Could not remove {key} from cache at {self.directory}: {exc}") from exc
