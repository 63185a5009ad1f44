"""
In-memory TTL + LRU cache for validation contexts and results.

Entries expire by age (``now - timestamp >= ttl`` is always a miss) and are
evicted least-recently-used first when the entry count or the estimated
memory footprint goes over budget. Access is serialised with a re-entrant
lock so the cache can be shared between the validation engine, the
pre-validator and background sweeps.

The cache is an ordinary object: whoever composes it owns it and passes it by
reference. Nothing here is module-global.
"""

import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from sandbox_seeder.domain.exceptions import CacheError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENTRY_OVERHEAD_BYTES = 1024


class CacheHealthStatus(Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class CacheEntry(Generic[T]):
    """A cached payload with its bookkeeping."""

    key: str
    payload: T
    timestamp: float
    ttl: float
    hit_count: int = 0
    last_access: float = 0.0
    size_estimate: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp >= self.ttl


@dataclass
class CacheStats:
    total_requests: int = 0
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    evictions: int = 0
    expirations: int = 0
    entries_count: int = 0
    total_size_bytes: int = 0
    memory_usage_mb: float = 0.0
    oldest_entry_age: float | None = None
    newest_entry_age: float | None = None


@dataclass
class CacheHealthInfo:
    status: CacheHealthStatus
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    stats: CacheStats | None = None


def estimate_size(payload: Any) -> int:
    """Rough byte size: serialized length doubled plus a fixed overhead."""
    try:
        text = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    return len(text) * 2 + ENTRY_OVERHEAD_BYTES


class ValidationCache(Generic[T]):
    """
    Thread-safe TTL + LRU cache.

    Args:
        default_ttl: Seconds an entry lives unless ``set`` overrides it
        max_size: Maximum number of entries
        max_memory_mb: Maximum estimated memory footprint
        clock: Monotonic time source, injectable for tests
        name: Label used in log messages
    """

    def __init__(
        self,
        default_ttl: float = 3600.0,
        max_size: int = 1000,
        max_memory_mb: float = 50.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "validation",
    ) -> None:
        if default_ttl <= 0:
            raise CacheError(f"default_ttl must be positive, got {default_ttl}")
        if max_size < 1:
            raise CacheError(f"max_size must be at least 1, got {max_size}")
        if max_memory_mb <= 0:
            raise CacheError(f"max_memory_mb must be positive, got {max_memory_mb}")

        self.default_ttl = default_ttl
        self.max_size = max_size
        self.max_memory_bytes = int(max_memory_mb * 1024 * 1024)
        self.name = name
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.RLock()
        self._total_size = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> T | None:
        """Return the payload for key, or None on a miss or expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()

            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(now):
                self._remove(key)
                self._expirations += 1
                self._misses += 1
                return None

            entry.hit_count += 1
            entry.last_access = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.payload

    def set(self, key: str, payload: T, ttl: float | None = None, metadata: dict[str, Any] | None = None) -> None:
        """Store a payload, evicting least-recently-used entries if over budget."""
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl <= 0:
            raise CacheError(f"ttl must be positive, got {effective_ttl}")

        with self._lock:
            now = self._clock()
            if key in self._entries:
                self._remove(key)

            entry = CacheEntry(
                key=key,
                payload=payload,
                timestamp=now,
                ttl=effective_ttl,
                last_access=now,
                size_estimate=estimate_size(payload),
                metadata=dict(metadata or {}),
            )
            self._entries[key] = entry
            self._total_size += entry.size_estimate
            self._enforce_limits(protect=key)

    def contains(self, key: str) -> bool:
        """True when key holds a live entry; does not count as an access."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._entries:
                self._remove(key)
                return True
            return False

    def invalidate(self, prefix: str | None = None, older_than: float | None = None) -> int:
        """
        Drop entries matching all given criteria.

        Args:
            prefix: Only keys starting with this prefix
            older_than: Only entries at least this many seconds old

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            doomed = [
                key
                for key, entry in self._entries.items()
                if (prefix is None or key.startswith(prefix))
                and (older_than is None or now - entry.timestamp >= older_than)
            ]
            for key in doomed:
                self._remove(key)

        if doomed:
            logger.debug(f"Invalidated {len(doomed)} {self.name} cache entries")
        return len(doomed)

    def purge_expired(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._expirations += len(expired)

        if expired:
            logger.debug(f"Purged {len(expired)} expired {self.name} cache entries")
        return len(expired)

    def clear(self) -> None:
        """Drop all entries and reset statistics."""
        with self._lock:
            self._entries.clear()
            self._total_size = 0
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0
        logger.info(f"Cleared {self.name} cache")

    def get_stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            total = self._hits + self._misses
            ages = [now - entry.timestamp for entry in self._entries.values()]
            return CacheStats(
                total_requests=total,
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total else 0.0,
                evictions=self._evictions,
                expirations=self._expirations,
                entries_count=len(self._entries),
                total_size_bytes=self._total_size,
                memory_usage_mb=self._total_size / (1024 * 1024),
                oldest_entry_age=max(ages) if ages else None,
                newest_entry_age=min(ages) if ages else None,
            )

    def get_health_info(self) -> CacheHealthInfo:
        """Classify cache health and recommend configuration changes."""
        stats = self.get_stats()
        issues: list[str] = []
        recommendations: list[str] = []
        status = CacheHealthStatus.HEALTHY

        if stats.total_requests > 0:
            if stats.hit_rate < 0.3:
                status = CacheHealthStatus.WARNING
                issues.append(f"Low hit rate: {stats.hit_rate:.1%}")
                recommendations.append("Consider increasing the cache TTL or reviewing key construction")
            elif stats.hit_rate > 0.7:
                recommendations.append(f"Excellent hit rate: {stats.hit_rate:.1%}")

        memory_ratio = stats.total_size_bytes / self.max_memory_bytes
        if memory_ratio > 0.9:
            status = CacheHealthStatus.CRITICAL
            issues.append(f"Memory usage at {memory_ratio:.0%} of limit")
            recommendations.append("Increase max_memory_mb or reduce the cache TTL")
        elif memory_ratio > 0.7:
            if status is CacheHealthStatus.HEALTHY:
                status = CacheHealthStatus.WARNING
            issues.append(f"Memory usage at {memory_ratio:.0%} of limit")
            recommendations.append("Monitor memory usage; eviction will start soon")

        if stats.entries_count > self.max_size * 0.9:
            if status is CacheHealthStatus.HEALTHY:
                status = CacheHealthStatus.WARNING
            issues.append(f"Cache nearly full: {stats.entries_count}/{self.max_size} entries")
            recommendations.append("Increase max_size to reduce evictions")

        return CacheHealthInfo(status=status, issues=issues, recommendations=recommendations, stats=stats)

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._total_size -= entry.size_estimate

    def _enforce_limits(self, protect: str) -> None:
        while len(self._entries) > 1 and (
            len(self._entries) > self.max_size or self._total_size > self.max_memory_bytes
        ):
            oldest = next(iter(self._entries))
            if oldest == protect:
                break
            self._remove(oldest)
            self._evictions += 1
            logger.debug(f"Evicted {oldest} from {self.name} cache")
