from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import timedelta
from pathlib import Path
from typing import Protocol

"""Time-bounded cache for inferred header mappings.

Keys are the lower-cased, trimmed header text. Entries older than the TTL are
deleted when read. The backing store is injected so a run can use a plain dict
or a JSON file that survives between runs.
"""

__all__ = [
    "CacheStore",
    "CachedMapping",
    "InMemoryCacheStore",
    "JsonFileCacheStore",
    "MappingCache",
]

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=7)


@dataclass(frozen=True)
class CachedMapping:
    field: str
    confidence: float
    stored_at: float  # epoch seconds


class CacheStore(Protocol):
    def get(self, key: str) -> CachedMapping | None: ...

    def set(self, key: str, entry: CachedMapping) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryCacheStore:
    def __init__(self) -> None:
        self._data: dict[str, CachedMapping] = {}

    def get(self, key: str) -> CachedMapping | None:
        return self._data.get(key)

    def set(self, key: str, entry: CachedMapping) -> None:
        self._data[key] = entry

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileCacheStore:
    """Whole-file JSON store; rewritten on every change."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._data: dict[str, CachedMapping] = self._load()

    def _load(self) -> dict[str, CachedMapping]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return {k: CachedMapping(**v) for k, v in raw.items()}
        except (json.JSONDecodeError, TypeError, AttributeError) as e:
            logger.warning(f"mapping cache {self.path} unreadable, starting empty: {e}")
            return {}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {k: asdict(v) for k, v in self._data.items()}
        self.path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    def get(self, key: str) -> CachedMapping | None:
        return self._data.get(key)

    def set(self, key: str, entry: CachedMapping) -> None:
        self._data[key] = entry
        self._save()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._save()


class MappingCache:
    def __init__(
        self,
        store: CacheStore | None = None,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store: CacheStore = store if store is not None else InMemoryCacheStore()
        self.ttl = ttl
        self._clock = clock

    @staticmethod
    def key(header: str) -> str:
        return header.strip().lower()

    def get(self, header: str) -> CachedMapping | None:
        key = self.key(header)
        entry = self.store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl.total_seconds():
            logger.debug(f"mapping cache entry expired: {key!r}")
            self.store.delete(key)
            return None
        return entry

    def put(self, header: str, field: str, confidence: float) -> None:
        self.store.set(self.key(header), CachedMapping(field, confidence, self._clock()))
