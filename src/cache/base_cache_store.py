# src/cache/base_cache_store.py — v1
"""Abstract cache store interface.

Backends persist entries and enforce expiry and per-scope size bounds;
similarity and acceptance policy live in SemanticCache.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ragtiers.cache.models import CacheEntry
from ragtiers.core.models import QueryScope


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, slot_key: str) -> CacheEntry | None:
        """Retrieve a non-expired entry by slot key."""

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous entry in the same slot.

        Evicts the least recently used entries of the scope beyond the
        configured bound.
        """

    @abstractmethod
    async def delete(self, slot_key: str) -> None:
        """Remove an entry."""

    @abstractmethod
    async def list_scope(self, scope: QueryScope) -> list[CacheEntry]:
        """List non-expired entries belonging to exactly ``scope``."""

    @abstractmethod
    async def touch(self, slot_key: str) -> None:
        """Record a hit (hit count, last-used time) without changing the entry."""

    @abstractmethod
    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete expired entries; return how many were removed."""

    @abstractmethod
    async def count(self, scope: QueryScope | None = None) -> int:
        """Number of stored entries, optionally restricted to one scope."""

    @abstractmethod
    async def hit_count(self, slot_key: str) -> int:
        """Number of recorded hits for a slot (0 if absent)."""
