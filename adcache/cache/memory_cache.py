"""adcache — In-Memory Cache.

Process-local TTL cache bounded by entry count and by an estimated memory
footprint. Eviction removes expired entries first, then the least-hit entry
(oldest first on ties) until the new entry fits. Each process has its own
instance: nothing survives a restart and nothing is shared across workers.
"""

import fnmatch
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from adcache.core.logging import get_logger

logger = get_logger("cache.memory")


@dataclass
class CacheEntry:
    data: Any
    created_at: float
    expires_at: float
    hits: int
    size: int
    seq: int


def estimate_size(data: Any) -> int:
    """Serialized-size heuristic in bytes."""
    try:
        if isinstance(data, BaseModel):
            raw = data.model_dump_json()
        else:
            raw = json.dumps(data, default=str)
    except (TypeError, ValueError):
        raw = repr(data)
    return len(raw.encode("utf-8"))


class MemoryCache:
    """Size- and memory-bounded TTL cache with least-hit eviction."""

    def __init__(
        self,
        max_entries: int = 1000,
        max_memory_mb: float = 50.0,
        default_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.max_memory_bytes = int(max_memory_mb * 1024 * 1024)
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._memory_bytes = 0
        self._seq = 0
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "rejected": 0}

    def __len__(self) -> int:
        return len(self._entries)

    # ── Public API ──

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        if entry.expires_at <= self._clock():
            self._remove(key)
            self._stats["misses"] += 1
            return None
        entry.hits += 1
        self._stats["hits"] += 1
        return entry.data

    def set(self, key: str, data: Any, ttl_seconds: Optional[float] = None) -> bool:
        """Store ``data``; returns False when the entry is too large to cache."""
        size = estimate_size(data)
        if size > self.max_memory_bytes / 2:
            self._stats["rejected"] += 1
            logger.warning(
                f"⚠️ Not caching {key}: {size} bytes exceeds half the memory budget"
            )
            return False

        if key in self._entries:
            self._remove(key)

        self._ensure_space(size)

        now = self._clock()
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._seq += 1
        self._entries[key] = CacheEntry(
            data=data,
            created_at=now,
            expires_at=now + ttl,
            hits=0,
            size=size,
            seq=self._seq,
        )
        self._memory_bytes += size
        return True

    def delete(self, key: str) -> bool:
        if key not in self._entries:
            return False
        self._remove(key)
        return True

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern (``smart:meta:*``)."""
        keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            self._remove(key)
        return len(keys)

    def cleanup(self) -> int:
        """Drop expired entries; under memory pressure (>80%) trim to 60%."""
        removed = self._remove_expired()
        if self._memory_bytes > self.max_memory_bytes * 0.8:
            target = self.max_memory_bytes * 0.6
            while self._entries and self._memory_bytes > target:
                self._evict_one()
                removed += 1
        if removed:
            logger.info(f"🧹 Memory cache cleanup removed {removed} entries")
        return removed

    def clear(self) -> None:
        self._entries.clear()
        self._memory_bytes = 0

    def get_stats(self) -> Dict[str, Any]:
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "memory_bytes": self._memory_bytes,
            "max_memory_bytes": self.max_memory_bytes,
            "memory_usage_pct": round(
                self._memory_bytes / self.max_memory_bytes * 100, 2
            )
            if self.max_memory_bytes
            else 0.0,
            "hit_rate": round(self._stats["hits"] / lookups, 4) if lookups else 0.0,
            **self._stats,
        }

    # ── Internals ──

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._memory_bytes -= entry.size

    def _remove_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            self._remove(key)
        return len(expired)

    def _evict_one(self) -> None:
        victim = min(
            self._entries,
            key=lambda k: (
                self._entries[k].hits,
                self._entries[k].created_at,
                self._entries[k].seq,
            ),
        )
        self._remove(victim)
        self._stats["evictions"] += 1

    def _ensure_space(self, incoming_size: int) -> None:
        if (
            len(self._entries) < self.max_entries
            and self._memory_bytes + incoming_size <= self.max_memory_bytes
        ):
            return
        self._remove_expired()
        while self._entries and (
            len(self._entries) >= self.max_entries
            or self._memory_bytes + incoming_size > self.max_memory_bytes
        ):
            self._evict_one()
