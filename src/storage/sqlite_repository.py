# src/storage/sqlite_repository.py — v1
"""SQLite implementation of every relational repository.

Uses stdlib sqlite3 on one connection. The schema is created on open.
Timestamps are stored as UTC ISO-8601 strings so they compare lexically.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ragtiers.core.models import (
    AgentMemory,
    ChunkStats,
    Feedback,
    FeedbackSample,
    LearnedResponse,
    QueryLog,
    UpsertResult,
)
from ragtiers.storage.base_repository import (
    AgentMemoryRepository,
    ChunkStatsRepository,
    ConfigRepository,
    FeedbackRepository,
    LearnedResponseRepository,
    QueryLogRepository,
)

logger = logging.getLogger(__name__)

SUCCESS_RATING_MIN = 4
FAILURE_RATING_MAX = 2

_SCHEMA = """
CREATE TABLE IF NOT EXISTS query_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    query TEXT NOT NULL,
    zone TEXT NOT NULL,
    development TEXT NOT NULL,
    response TEXT NOT NULL,
    sources_used TEXT NOT NULL DEFAULT '[]',
    response_time_ms INTEGER NOT NULL DEFAULT 0,
    tier TEXT NOT NULL DEFAULT '',
    cache_slot TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_query_logs_slot ON query_logs(cache_slot);

CREATE TABLE IF NOT EXISTS feedback (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    query_log_id INTEGER,
    rating INTEGER,
    comment TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_feedback_created ON feedback(created_at);
CREATE INDEX IF NOT EXISTS idx_feedback_log ON feedback(query_log_id);

CREATE TABLE IF NOT EXISTS learned_responses (
    query_key TEXT PRIMARY KEY,
    answer TEXT NOT NULL,
    quality_score REAL NOT NULL,
    usage_count INTEGER NOT NULL DEFAULT 0,
    feedback_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS query_chunks (
    query_log_id INTEGER NOT NULL,
    chunk_id TEXT NOT NULL,
    rank INTEGER NOT NULL,
    score REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (query_log_id, chunk_id)
);

CREATE TABLE IF NOT EXISTS chunk_stats (
    chunk_id TEXT PRIMARY KEY,
    success_count INTEGER NOT NULL DEFAULT 0,
    fail_count INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agent_memories (
    topic TEXT PRIMARY KEY,
    summary TEXT NOT NULL,
    importance REAL NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_UPSERT_LEARNED = """
INSERT INTO learned_responses
    (query_key, answer, quality_score, usage_count, feedback_count, created_at, updated_at)
VALUES (:key, :answer, :score, 0, 1, :now, :now)
ON CONFLICT(query_key) DO UPDATE SET
    answer = excluded.answer,
    quality_score = CASE
        WHEN :alpha IS NULL THEN excluded.quality_score
        ELSE :alpha * excluded.quality_score + (1 - :alpha) * learned_responses.quality_score
    END,
    feedback_count = learned_responses.feedback_count + 1,
    updated_at = excluded.updated_at
RETURNING feedback_count, quality_score
"""


def _ts(value: datetime | None = None) -> str:
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class SqliteRepository(
    QueryLogRepository,
    FeedbackRepository,
    LearnedResponseRepository,
    ConfigRepository,
    AgentMemoryRepository,
    ChunkStatsRepository,
):
    """All relational tables on one SQLite database."""

    def __init__(self, db_path: Path | str) -> None:
        if str(db_path) != ":memory:":
            db_path = Path(db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    # --- Query logs ---

    async def save_query_log(self, log: QueryLog) -> int:
        cursor = self._conn.execute(
            """INSERT INTO query_logs
               (user_id, query, zone, development, response, sources_used,
                response_time_ms, tier, cache_slot, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                log.user_id,
                log.query,
                log.zone,
                log.development,
                log.response,
                json.dumps(log.sources_used, ensure_ascii=False),
                log.response_time_ms,
                log.tier,
                log.cache_slot,
                _ts(log.created_at),
            ),
        )
        self._conn.commit()
        return int(cursor.lastrowid)

    async def get_query_log(self, query_log_id: int) -> QueryLog | None:
        row = self._conn.execute(
            "SELECT * FROM query_logs WHERE id = ?", (query_log_id,)
        ).fetchone()
        if row is None:
            return None
        return QueryLog(
            id=row["id"],
            user_id=row["user_id"],
            query=row["query"],
            zone=row["zone"],
            development=row["development"],
            response=row["response"],
            sources_used=json.loads(row["sources_used"] or "[]"),
            response_time_ms=row["response_time_ms"],
            tier=row["tier"],
            cache_slot=row["cache_slot"],
            created_at=_parse_ts(row["created_at"]),
        )

    async def register_query_chunks(
        self, query_log_id: int, chunks: list[tuple[str, float]]
    ) -> None:
        self._conn.executemany(
            """INSERT OR IGNORE INTO query_chunks (query_log_id, chunk_id, rank, score)
               VALUES (?, ?, ?, ?)""",
            [
                (query_log_id, chunk_id, rank, score)
                for rank, (chunk_id, score) in enumerate(chunks)
            ],
        )
        self._conn.commit()

    async def get_query_chunks(self, query_log_id: int) -> list[str]:
        cursor = self._conn.execute(
            "SELECT chunk_id FROM query_chunks WHERE query_log_id = ? ORDER BY rank",
            (query_log_id,),
        )
        return [row["chunk_id"] for row in cursor.fetchall()]

    # --- Feedback ---

    async def save_feedback(self, feedback: Feedback) -> int:
        cursor = self._conn.execute(
            """INSERT INTO feedback (query_log_id, rating, comment, created_at)
               VALUES (?, ?, ?, ?)""",
            (
                feedback.query_log_id,
                feedback.rating,
                feedback.comment,
                _ts(feedback.created_at),
            ),
        )
        self._conn.commit()
        return int(cursor.lastrowid)

    async def list_feedback_since(self, since: datetime) -> list[FeedbackSample]:
        cursor = self._conn.execute(
            """SELECT f.id, f.query_log_id, f.rating, f.created_at,
                      q.query, q.response
               FROM feedback f
               LEFT JOIN query_logs q ON q.id = f.query_log_id
               WHERE f.created_at >= ?
               ORDER BY f.created_at, f.id""",
            (_ts(since),),
        )
        return [
            FeedbackSample(
                feedback_id=row["id"],
                query_log_id=row["query_log_id"],
                rating=row["rating"] if isinstance(row["rating"], int) else None,
                query=row["query"],
                response=row["response"],
                created_at=_parse_ts(row["created_at"]),
            )
            for row in cursor.fetchall()
        ]

    async def latest_rating_for_slot(self, cache_slot: str) -> int | None:
        row = self._conn.execute(
            """SELECT f.rating FROM feedback f
               JOIN query_logs q ON q.id = f.query_log_id
               WHERE q.cache_slot = ?
               ORDER BY f.created_at DESC, f.id DESC
               LIMIT 1""",
            (cache_slot,),
        ).fetchone()
        if row is None or not isinstance(row["rating"], int):
            return None
        return row["rating"]

    # --- Learned responses ---

    async def get(self, query_key: str) -> LearnedResponse | None:
        row = self._conn.execute(
            "SELECT * FROM learned_responses WHERE query_key = ?", (query_key,)
        ).fetchone()
        if row is None:
            return None
        return LearnedResponse(
            query_key=row["query_key"],
            answer=row["answer"],
            quality_score=row["quality_score"],
            usage_count=row["usage_count"],
            feedback_count=row["feedback_count"],
            updated_at=_parse_ts(row["updated_at"]),
        )

    async def increment_usage(self, query_key: str) -> None:
        self._conn.execute(
            "UPDATE learned_responses SET usage_count = usage_count + 1 WHERE query_key = ?",
            (query_key,),
        )
        self._conn.commit()

    async def upsert_score(
        self,
        query_key: str,
        answer: str,
        quality_score: float,
        smoothing: float | None = None,
    ) -> UpsertResult:
        row = self._conn.execute(
            _UPSERT_LEARNED,
            {
                "key": query_key,
                "answer": answer,
                "score": quality_score,
                "alpha": smoothing,
                "now": _ts(),
            },
        ).fetchone()
        self._conn.commit()
        created = row["feedback_count"] == 1
        return UpsertResult(
            created=created,
            updated=not created,
            quality_score=row["quality_score"],
        )

    # --- Dynamic config ---

    async def get_config(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute(
            "SELECT value FROM config WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("Config value for %r is not valid JSON", key)
            return default

    async def set_config(self, key: str, value: Any) -> None:
        self._conn.execute(
            """INSERT INTO config (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value, updated_at = excluded.updated_at""",
            (key, json.dumps(value), _ts()),
        )
        self._conn.commit()

    # --- Agent memories ---

    async def get_agent_memories(
        self, min_importance: float, limit: int = 10
    ) -> list[AgentMemory]:
        cursor = self._conn.execute(
            """SELECT topic, summary, importance FROM agent_memories
               WHERE importance >= ?
               ORDER BY importance DESC, topic
               LIMIT ?""",
            (min_importance, limit),
        )
        return [
            AgentMemory(topic=row["topic"], summary=row["summary"], importance=row["importance"])
            for row in cursor.fetchall()
        ]

    async def upsert_agent_memory(self, memory: AgentMemory) -> None:
        self._conn.execute(
            """INSERT INTO agent_memories (topic, summary, importance, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(topic) DO UPDATE SET
                   summary = excluded.summary,
                   importance = excluded.importance,
                   updated_at = excluded.updated_at""",
            (memory.topic, memory.summary, memory.importance, _ts()),
        )
        self._conn.commit()

    # --- Chunk stats ---

    async def update_chunk_stats(self, query_log_id: int, rating: int) -> int:
        if rating >= SUCCESS_RATING_MIN:
            column = "success_count"
        elif rating <= FAILURE_RATING_MAX:
            column = "fail_count"
        else:
            return 0

        chunk_ids = await self.get_query_chunks(query_log_id)
        now = _ts()
        self._conn.executemany(
            f"""INSERT INTO chunk_stats (chunk_id, {column}, updated_at)
                VALUES (?, 1, ?)
                ON CONFLICT(chunk_id) DO UPDATE SET
                    {column} = chunk_stats.{column} + 1,
                    updated_at = excluded.updated_at""",  # noqa: S608
            [(chunk_id, now) for chunk_id in chunk_ids],
        )
        self._conn.commit()
        return len(chunk_ids)

    async def get_chunk_stats(self, chunk_id: str) -> ChunkStats | None:
        row = self._conn.execute(
            "SELECT chunk_id, success_count, fail_count FROM chunk_stats WHERE chunk_id = ?",
            (chunk_id,),
        ).fetchone()
        if row is None:
            return None
        return ChunkStats(
            chunk_id=row["chunk_id"],
            success_count=row["success_count"],
            fail_count=row["fail_count"],
        )

    async def get_chunk_stats_many(self, chunk_ids: list[str]) -> dict[str, ChunkStats]:
        if not chunk_ids:
            return {}
        placeholders = ", ".join("?" for _ in chunk_ids)
        rows = self._conn.execute(
            f"""SELECT chunk_id, success_count, fail_count FROM chunk_stats
                WHERE chunk_id IN ({placeholders})""",  # noqa: S608
            list(chunk_ids),
        ).fetchall()
        return {
            row["chunk_id"]: ChunkStats(
                chunk_id=row["chunk_id"],
                success_count=row["success_count"],
                fail_count=row["fail_count"],
            )
            for row in rows
        }

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
