# src/cache/sqlite_store.py — v1
"""SQLite-based cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. Expiry is checked on read
and swept by ``purge_expired``; each scope keeps at most
``max_entries_per_scope`` entries, evicting the least recently used.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from ragtiers.cache.base_cache_store import BaseCacheStore
from ragtiers.cache.models import CacheEntry
from ragtiers.core.models import QueryScope

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    slot_key TEXT PRIMARY KEY,
    scope_key TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT,
    hit_count INTEGER NOT NULL DEFAULT 0,
    last_used_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cache_scope ON cache_entries(scope_key, last_used_at);
CREATE INDEX IF NOT EXISTS idx_cache_expires ON cache_entries(expires_at);
"""


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _now() -> str:
    return _ts(datetime.now(timezone.utc))


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store."""

    def __init__(
        self, db_path: Path | str, max_entries_per_scope: int = 500
    ) -> None:
        if str(db_path) != ":memory:":
            db_path = Path(db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._max_entries = max_entries_per_scope
        self._conn = sqlite3.connect(str(db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    @staticmethod
    def _decode(slot_key: str, raw: str) -> CacheEntry | None:
        try:
            return CacheEntry(**json.loads(raw))
        except Exception as e:
            logger.warning("Failed to deserialize cache entry %s: %s", slot_key, e)
            return None

    async def get(self, slot_key: str) -> CacheEntry | None:
        """Retrieve a non-expired entry by slot key."""
        row = self._conn.execute(
            """SELECT data FROM cache_entries
               WHERE slot_key = ? AND (expires_at IS NULL OR expires_at > ?)""",
            (slot_key, _now()),
        ).fetchone()
        if row is None:
            return None
        return self._decode(slot_key, row[0])

    async def put(self, entry: CacheEntry) -> None:
        """Store an entry (whole-entry replace) and enforce the scope bound."""
        scope_key = entry.scope.key
        now = _now()
        self._conn.execute(
            """INSERT OR REPLACE INTO cache_entries
               (slot_key, scope_key, data, created_at, expires_at, hit_count, last_used_at)
               VALUES (?, ?, ?, ?, ?, 0, ?)""",
            (
                entry.slot_key,
                scope_key,
                entry.model_dump_json(),
                _ts(entry.created_at),
                _ts(entry.expires_at) if entry.expires_at else None,
                now,
            ),
        )
        cursor = self._conn.execute(
            """DELETE FROM cache_entries WHERE slot_key IN (
                   SELECT slot_key FROM cache_entries WHERE scope_key = ?
                   ORDER BY last_used_at DESC, rowid DESC LIMIT -1 OFFSET ?
               )""",
            (scope_key, self._max_entries),
        )
        if cursor.rowcount:
            logger.debug(
                "Evicted %d LRU cache entries from scope %s", cursor.rowcount, scope_key
            )
        self._conn.commit()

    async def delete(self, slot_key: str) -> None:
        """Remove an entry."""
        self._conn.execute("DELETE FROM cache_entries WHERE slot_key = ?", (slot_key,))
        self._conn.commit()

    async def list_scope(self, scope: QueryScope) -> list[CacheEntry]:
        """List non-expired entries of one scope, most recently used first."""
        cursor = self._conn.execute(
            """SELECT slot_key, data FROM cache_entries
               WHERE scope_key = ? AND (expires_at IS NULL OR expires_at > ?)
               ORDER BY last_used_at DESC, rowid DESC""",
            (scope.key, _now()),
        )
        entries: list[CacheEntry] = []
        for slot_key, raw in cursor.fetchall():
            entry = self._decode(slot_key, raw)
            if entry is not None:
                entries.append(entry)
        return entries

    async def touch(self, slot_key: str) -> None:
        """Bump hit count and last-used timestamp."""
        self._conn.execute(
            """UPDATE cache_entries
               SET hit_count = hit_count + 1, last_used_at = ?
               WHERE slot_key = ?""",
            (_now(), slot_key),
        )
        self._conn.commit()

    async def hit_count(self, slot_key: str) -> int:
        """Number of recorded hits for a slot (0 if absent)."""
        row = self._conn.execute(
            "SELECT hit_count FROM cache_entries WHERE slot_key = ?", (slot_key,)
        ).fetchone()
        return int(row[0]) if row else 0

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete expired entries."""
        cutoff = _ts(now) if now is not None else _now()
        cursor = self._conn.execute(
            "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (cutoff,),
        )
        self._conn.commit()
        return cursor.rowcount

    async def count(self, scope: QueryScope | None = None) -> int:
        if scope is None:
            row = self._conn.execute("SELECT COUNT(*) FROM cache_entries").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM cache_entries WHERE scope_key = ?", (scope.key,)
            ).fetchone()
        return int(row[0])

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
