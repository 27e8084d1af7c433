# src/cache/redis_store.py — v1
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for multi-instance deployments. Entries expire through native
key TTLs; a sorted set per scope (score = last-used epoch seconds)
provides scope listing and LRU eviction.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone

from ragtiers.cache.base_cache_store import BaseCacheStore
from ragtiers.cache.models import CacheEntry
from ragtiers.core.models import QueryScope

logger = logging.getLogger(__name__)

_KEY_PREFIX = "ragtiers:cache:"
_ENTRY_PREFIX = f"{_KEY_PREFIX}entry:"
_SCOPE_PREFIX = f"{_KEY_PREFIX}scope:"
_HITS_KEY = f"{_KEY_PREFIX}__hits__"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for distributed deployments."""

    def __init__(
        self, redis_url: str = "", max_entries_per_scope: int = 500, client=None
    ) -> None:
        if client is None:
            try:
                import redis
            except ImportError as e:
                raise ImportError(
                    "redis package required: pip install redis"
                ) from e
            client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._client = client
        self._max_entries = max_entries_per_scope

    @staticmethod
    def _entry_key(slot_key: str) -> str:
        return f"{_ENTRY_PREFIX}{slot_key}"

    @staticmethod
    def _scope_key(scope_key: str) -> str:
        return f"{_SCOPE_PREFIX}{scope_key}"

    @staticmethod
    def _decode(slot_key: str, raw: str) -> CacheEntry | None:
        try:
            return CacheEntry(**json.loads(raw))
        except Exception as e:
            logger.warning("Failed to deserialize cache entry %s: %s", slot_key, e)
            return None

    async def get(self, slot_key: str) -> CacheEntry | None:
        """Retrieve a non-expired entry by slot key."""
        raw = self._client.get(self._entry_key(slot_key))
        if raw is None:
            return None
        entry = self._decode(slot_key, raw)
        if entry is not None and entry.is_expired(datetime.now(timezone.utc)):
            return None
        return entry

    async def put(self, entry: CacheEntry) -> None:
        """Store an entry with a native TTL and enforce the scope bound."""
        now = datetime.now(timezone.utc)
        ttl_seconds: int | None = None
        if entry.expires_at is not None:
            ttl_seconds = max(1, math.ceil((entry.expires_at - now).total_seconds()))

        index = self._scope_key(entry.scope.key)
        self._client.set(self._entry_key(entry.slot_key), entry.model_dump_json(), ex=ttl_seconds)
        self._client.zadd(index, {entry.slot_key: now.timestamp()})
        self._client.hset(_HITS_KEY, entry.slot_key, 0)

        overflow = self._client.zcard(index) - self._max_entries
        if overflow > 0:
            stale = self._client.zrange(index, 0, overflow - 1)
            for slot_key in stale:
                self._client.delete(self._entry_key(slot_key))
                self._client.hdel(_HITS_KEY, slot_key)
            self._client.zrem(index, *stale)
            logger.debug("Evicted %d LRU cache entries from scope %s", len(stale), entry.scope.key)

    async def delete(self, slot_key: str) -> None:
        """Remove an entry and its index membership."""
        raw = self._client.get(self._entry_key(slot_key))
        if raw is not None:
            entry = self._decode(slot_key, raw)
            if entry is not None:
                self._client.zrem(self._scope_key(entry.scope.key), slot_key)
        self._client.delete(self._entry_key(slot_key))
        self._client.hdel(_HITS_KEY, slot_key)

    async def list_scope(self, scope: QueryScope) -> list[CacheEntry]:
        """List non-expired entries of one scope, most recently used first."""
        index = self._scope_key(scope.key)
        entries: list[CacheEntry] = []
        missing: list[str] = []
        for slot_key in self._client.zrevrange(index, 0, -1):
            entry = await self.get(slot_key)
            if entry is None:
                missing.append(slot_key)
                continue
            entries.append(entry)
        if missing:
            self._client.zrem(index, *missing)
        return entries

    async def touch(self, slot_key: str) -> None:
        """Bump hit count and last-used score."""
        raw = self._client.get(self._entry_key(slot_key))
        if raw is None:
            return
        entry = self._decode(slot_key, raw)
        if entry is None:
            return
        self._client.zadd(
            self._scope_key(entry.scope.key),
            {slot_key: datetime.now(timezone.utc).timestamp()},
            xx=True,
        )
        self._client.hincrby(_HITS_KEY, slot_key, 1)

    async def hit_count(self, slot_key: str) -> int:
        value = self._client.hget(_HITS_KEY, slot_key)
        return int(value) if value is not None else 0

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Drop index members whose entry has expired.

        Redis removes the entries themselves; this sweeps the scope indexes
        and the hit counters so they do not grow unbounded.
        """
        now = now or datetime.now(timezone.utc)
        removed = 0
        for index in self._client.scan_iter(match=f"{_SCOPE_PREFIX}*"):
            stale: list[str] = []
            for slot_key in self._client.zrange(index, 0, -1):
                raw = self._client.get(self._entry_key(slot_key))
                entry = self._decode(slot_key, raw) if raw is not None else None
                if entry is None or entry.is_expired(now):
                    stale.append(slot_key)
            if stale:
                for slot_key in stale:
                    self._client.delete(self._entry_key(slot_key))
                    self._client.hdel(_HITS_KEY, slot_key)
                self._client.zrem(index, *stale)
                removed += len(stale)
        return removed

    async def count(self, scope: QueryScope | None = None) -> int:
        if scope is not None:
            return int(self._client.zcard(self._scope_key(scope.key)))
        return sum(
            int(self._client.zcard(index))
            for index in self._client.scan_iter(match=f"{_SCOPE_PREFIX}*")
        )

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
