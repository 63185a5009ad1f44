"""In-memory caches."""

from .validation_cache import (
    CacheEntry,
    CacheHealthInfo,
    CacheHealthStatus,
    CacheStats,
    ValidationCache,
    estimate_size,
)

__all__ = [
    "CacheEntry",
    "CacheHealthInfo",
    "CacheHealthStatus",
    "CacheStats",
    "ValidationCache",
    "estimate_size",
]
