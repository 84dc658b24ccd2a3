"""Persists discovered page boundaries per filter fingerprint across restarts."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from random_level.misc.config_loader import dump_json, load_json
from random_level.misc.logger import get_logger

DEFAULT_CACHE_KEY = "filter_cache"


class BoundaryCache:
    """Fingerprint -> last known max page index, flushed on every mutation."""

    def __init__(
        self,
        entries: dict[str, int] | None = None,
        store: JsonCacheStore | None = None,
        key: str = DEFAULT_CACHE_KEY,
    ) -> None:
        self._entries: dict[str, int] = dict(entries or {})
        self._store = store
        self._key = key

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, fingerprint: str) -> int | None:
        return self._entries.get(fingerprint)

    def set(self, fingerprint: str, max_page: int) -> None:
        """Overwrite the boundary for ``fingerprint`` and persist immediately."""
        if max_page < 0:
            raise ValueError(f"max_page must be >= 0, got {max_page}")
        self._entries[fingerprint] = int(max_page)
        self.flush()

    def invalidate(self, fingerprint: str) -> bool:
        """Drop a stale entry. Returns False when there was nothing to drop."""
        if self._entries.pop(fingerprint, None) is None:
            return False
        self.flush()
        return True

    def flush(self) -> None:
        if self._store is not None:
            self._store.save(self._key, self)

    def to_dict(self) -> dict[str, int]:
        return dict(self._entries)


class JsonCacheStore:
    """Synchronous durable store backed by one JSON document."""

    def __init__(self, path: Path = Path("data/random_cache.json")) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self.logger = get_logger("boundary_cache")

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"caches": {}, "updated_at": None}
        try:
            payload = load_json(self.path)
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("cache file unreadable path=%s error=%s", self.path, exc)
            return {"caches": {}, "updated_at": None}
        if not isinstance(payload, dict):
            return {"caches": {}, "updated_at": None}
        return payload

    def load(self, key: str = DEFAULT_CACHE_KEY) -> BoundaryCache:
        with self._lock:
            raw = self._read().get("caches", {}).get(key, {})
        entries: dict[str, int] = {}
        if isinstance(raw, dict):
            for fingerprint, value in raw.items():
                try:
                    page = int(value)
                except (TypeError, ValueError):
                    continue
                if page >= 0:
                    entries[str(fingerprint)] = page
        self.logger.debug("cache loaded key=%s entries=%s", key, len(entries))
        return BoundaryCache(entries, store=self, key=key)

    def save(self, key: str, cache: BoundaryCache) -> None:
        with self._lock:
            payload = self._read()
            payload.setdefault("caches", {})[key] = cache.to_dict()
            payload["updated_at"] = datetime.now(timezone.utc).isoformat()
            dump_json(self.path, payload)
