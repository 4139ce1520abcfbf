"""
In-process TTL caches for GitHub API responses.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from codeconnect.core.config import CacheSettings
from codeconnect.core.constants import CacheTier
from codeconnect.core.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    value: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class TTLCache:
    """
    Key/value cache where every entry carries its own TTL.

    Expired entries are dropped lazily on read and in bulk by
    ``cleanup_expired()``.
    """

    def __init__(self, default_ttl: float = 300, clock: Optional[Clock] = None) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl: TTL in seconds for entries set without one
            clock: Returns the current time in seconds, defaults to time.monotonic
        """
        self._entries: dict[str, CacheEntry] = {}
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Get a value; expired or missing keys count as a miss."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock(), ttl=ttl)

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """
        Remove keys containing ``pattern``, or every key when no pattern is given.

        Returns:
            Number of removed entries
        """
        if pattern is None:
            removed = len(self._entries)
            self._entries.clear()
            return removed

        keys = [key for key in self._entries if pattern in key]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        active = sum(1 for e in self._entries.values() if not e.is_expired(now))
        lookups = self.hits + self.misses
        return {
            "total_entries": len(self._entries),
            "active_entries": active,
            "expired_entries": len(self._entries) - active,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups * 100, 1) if lookups else 0.0,
        }

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value or await ``factory()`` and cache its result."""
        entry = self._entries.get(key)
        if entry is not None and not entry.is_expired(self._clock()):
            self.hits += 1
            return entry.value

        self.misses += 1
        value = await factory()
        self.set(key, value, ttl)
        return value


class TieredCache:
    """A TTLCache per CacheTier, each with its configured default TTL."""

    def __init__(self, config: Optional[CacheSettings] = None, clock: Optional[Clock] = None) -> None:
        config = config or CacheSettings()
        ttls = {
            CacheTier.REPOSITORY: config.repository_ttl,
            CacheTier.FILE: config.file_ttl,
            CacheTier.CONTENTS: config.contents_ttl,
            CacheTier.DEPENDENCY: config.dependency_ttl,
            CacheTier.PR: config.details_ttl,
            CacheTier.COMMIT: config.details_ttl,
        }
        self._tiers = {tier: TTLCache(default_ttl=ttl, clock=clock) for tier, ttl in ttls.items()}

    def tier(self, name: Union[CacheTier, str]) -> TTLCache:
        return self._tiers[CacheTier(name)]

    def invalidate(self, tier: Union[CacheTier, str, None] = None, pattern: Optional[str] = None) -> int:
        """Invalidate matching keys in one tier, or in all tiers when ``tier`` is None."""
        tiers = [self.tier(tier)] if tier is not None else list(self._tiers.values())
        removed = sum(cache.invalidate(pattern) for cache in tiers)
        logger.info("Cache invalidated", tier=CacheTier(tier).value if tier else "all", pattern=pattern, removed=removed)
        return removed

    def cleanup_expired(self) -> int:
        removed = sum(cache.cleanup_expired() for cache in self._tiers.values())
        if removed:
            logger.debug("Cleared expired cache entries", count=removed)
        return removed

    def get_stats(self) -> dict[str, dict[str, Any]]:
        return {tier.value: cache.get_stats() for tier, cache in self._tiers.items()}


def repo_key(owner: str, repo: str) -> str:
    return f"{owner}/{repo}"


def detail_key(kind: str, repo: str, identifier: Union[str, int]) -> str:
    """Key for a single PR/commit/file, e.g. ``pr:owner/repo:42``."""
    return f"{kind}:{repo}:{identifier}"
