from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    last_accessed_at: float
    ttl: float  # seconds, 0 = no expiry
    access_count: int = 0
    tags: List[str] = field(default_factory=list)

    def expired(self, now: float) -> bool:
        return self.ttl > 0 and (now - self.created_at) >= self.ttl


@dataclass
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    expired: int
    hit_rate: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expired": self.expired,
            "hit_rate": self.hit_rate,
        }


class TTLRUCache:
    """
    In-memory TTL + LRU cache.
    - TTL: запись видна, пока now - created_at < ttl (ttl=0 живёт вечно)
    - LRU: при переполнении выкидываем самую давно использованную запись
    - tags: для инвалидации группами
    """

    def __init__(
        self,
        *,
        max_size: int = 200,
        default_ttl_s: float = 600.0,
        cleanup_interval_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.default_ttl_s = default_ttl_s
        self.cleanup_interval_s = cleanup_interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._items: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0
        self._cleanup_task: Optional[asyncio.Task] = None

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expired(now):
                del self._items[key]
                self._expired += 1
                self._misses += 1
                return None
            entry.last_accessed_at = now
            entry.access_count += 1
            self._items.move_to_end(key)
            self._hits += 1
            return entry.value

    def peek(self, key: str) -> CacheEntry | None:
        """Entry without touching LRU order or counters."""
        now = self._clock()
        with self._lock:
            entry = self._items.get(key)
            if entry is None or entry.expired(now):
                return None
            return entry

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl: float | None = None,
        tags: Iterable[str] | None = None,
    ) -> None:
        now = self._clock()
        entry = CacheEntry(
            value=value,
            created_at=now,
            last_accessed_at=now,
            ttl=self.default_ttl_s if ttl is None else ttl,
            tags=list(tags or []),
        )
        evicted: List[str] = []
        with self._lock:
            if key in self._items:
                del self._items[key]
            self._items[key] = entry
            while len(self._items) > self.max_size:
                old_key, _ = self._items.popitem(last=False)
                self._evictions += 1
                evicted.append(old_key)
        for old_key in evicted:
            logger.debug(json.dumps({"event": "cache_evict", "key": old_key}, ensure_ascii=False))

    def has(self, key: str) -> bool:
        return self.peek(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def invalidate_where(self, predicate: Callable[[str, CacheEntry], bool]) -> int:
        with self._lock:
            doomed = [k for k, e in self._items.items() if predicate(k, e)]
            for k in doomed:
                del self._items[k]
        return len(doomed)

    def invalidate_by_tags(self, tags: Iterable[str]) -> int:
        wanted = set(tags)
        return self.invalidate_where(lambda _k, e: bool(wanted.intersection(e.tags)))

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [k for k, e in self._items.items() if e.expired(now)]
            for k in doomed:
                del self._items[k]
            self._expired += len(doomed)
        return len(doomed)

    def get_stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                size=len(self._items),
                max_size=self.max_size,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expired=self._expired,
                hit_rate=(self._hits / total) if total else 0.0,
            )

    def reset_stats(self) -> None:
        with self._lock:
            self._hits = self._misses = self._evictions = self._expired = 0

    def export(self) -> List[Dict[str, Any]]:
        now = self._clock()
        with self._lock:
            return [
                {
                    "key": k,
                    "value": e.value,
                    "ttl": e.ttl,
                    "age_s": now - e.created_at,
                    "access_count": e.access_count,
                    "tags": list(e.tags),
                }
                for k, e in self._items.items()
                if not e.expired(now)
            ]

    def import_entries(self, entries: Iterable[Dict[str, Any]]) -> int:
        """Re-creates exported entries, keeping their remaining lifetime."""
        now = self._clock()
        count = 0
        for item in entries:
            ttl = float(item.get("ttl", self.default_ttl_s))
            age = float(item.get("age_s", 0.0))
            if ttl > 0 and age >= ttl:
                continue
            self.set(item["key"], item["value"], ttl=ttl, tags=item.get("tags"))
            with self._lock:
                entry = self._items.get(item["key"])
                if entry is not None:
                    entry.created_at = now - age
                    entry.access_count = int(item.get("access_count", 0))
            count += 1
        return count

    # --- background sweep ---

    def start_cleanup(self) -> None:
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def stop_cleanup(self) -> None:
        task = self._cleanup_task
        self._cleanup_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_s)
            removed = self.purge_expired()
            if removed:
                logger.info(json.dumps({"event": "cache_sweep", "removed": removed}, ensure_ascii=False))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
