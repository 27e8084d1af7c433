# tests/unit/cache/test_unit_sqlite_cache_store.py — v1
"""Tests for cache/sqlite_store.py — full functional tests (stdlib sqlite3)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ragtiers.cache.models import CacheEntry
from ragtiers.cache.sqlite_store import SqliteCacheStore
from ragtiers.core.models import QueryScope, SourceReference


def _entry(slot: str, scope: QueryScope, ttl: timedelta | None = timedelta(days=30)) -> CacheEntry:
    now = datetime.now(timezone.utc)
    return CacheEntry(
        slot_key=slot,
        query_hash=f"hash-{slot}",
        query_text=f"consulta {slot}",
        scope=scope,
        response=f"respuesta {slot}",
        sources=[SourceReference(filename="lista_precios.pdf", page=2, relevance_score=0.9)],
        embedding=[0.1, 0.2],
        created_at=now,
        expires_at=now + ttl if ttl is not None else None,
    )


@pytest.fixture
def store(tmp_path):
    s = SqliteCacheStore(db_path=tmp_path / "test_cache.db", max_entries_per_scope=3)
    yield s
    s.close()


class TestSqliteCacheStore:
    @pytest.mark.asyncio
    async def test_put_and_get(self, store, scope):
        await store.put(_entry("k1", scope))
        result = await store.get("k1")
        assert result is not None
        assert result.response == "respuesta k1"
        assert result.scope == scope
        assert result.sources[0].filename == "lista_precios.pdf"

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_put_replaces_whole_entry(self, store, scope):
        await store.put(_entry("k1", scope))
        replacement = _entry("k1", scope).model_copy(update={"response": "nueva", "sources": []})
        await store.put(replacement)
        result = await store.get("k1")
        assert result.response == "nueva"
        assert result.sources == []
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_delete(self, store, scope):
        await store.put(_entry("k1", scope))
        await store.delete("k1")
        assert await store.get("k1") is None

    @pytest.mark.asyncio
    async def test_expired_entry_not_returned(self, store, scope):
        await store.put(_entry("old", scope, ttl=timedelta(seconds=-1)))
        assert await store.get("old") is None
        assert await store.list_scope(scope) == []

    @pytest.mark.asyncio
    async def test_entry_without_expiry(self, store, scope):
        await store.put(_entry("forever", scope, ttl=None))
        assert await store.get("forever") is not None

    @pytest.mark.asyncio
    async def test_list_scope_isolated(self, store, scope, other_scope):
        await store.put(_entry("a", scope))
        await store.put(_entry("b", other_scope))
        listed = await store.list_scope(scope)
        assert [e.slot_key for e in listed] == ["a"]

    @pytest.mark.asyncio
    async def test_lru_eviction_per_scope(self, store, scope, other_scope):
        for slot in ("a", "b", "c"):
            await store.put(_entry(slot, scope))
        await store.put(_entry("x", other_scope))
        await store.touch("a")
        await store.put(_entry("d", scope))

        assert await store.count(scope) == 3
        assert await store.get("b") is None
        assert await store.get("a") is not None
        assert await store.get("x") is not None

    @pytest.mark.asyncio
    async def test_touch_counts_hits(self, store, scope):
        await store.put(_entry("k1", scope))
        await store.touch("k1")
        await store.touch("k1")
        assert await store.hit_count("k1") == 2
        assert await store.hit_count("missing") == 0

    @pytest.mark.asyncio
    async def test_purge_expired(self, store, scope):
        await store.put(_entry("live", scope))
        await store.put(_entry("dead", scope, ttl=timedelta(seconds=-5)))
        removed = await store.purge_expired()
        assert removed == 1
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_purge_with_explicit_now(self, store, scope):
        await store.put(_entry("live", scope, ttl=timedelta(days=1)))
        removed = await store.purge_expired(now=datetime.now(timezone.utc) + timedelta(days=2))
        assert removed == 1

    @pytest.mark.asyncio
    async def test_corrupted_row_is_a_miss(self, store, scope):
        await store.put(_entry("k1", scope))
        store._conn.execute("UPDATE cache_entries SET data = '{broken' WHERE slot_key = 'k1'")
        assert await store.get("k1") is None

    @pytest.mark.asyncio
    async def test_memory_database(self, scope):
        s = SqliteCacheStore(":memory:")
        await s.put(_entry("k1", scope))
        assert await s.count(scope) == 1
        s.close()
