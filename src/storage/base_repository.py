# src/storage/base_repository.py — v1
"""Abstract relational storage interfaces.

Each interface covers one table family; ``SqliteRepository`` implements
all of them on a single connection, but callers depend only on the
narrow interface they need.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
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


class QueryLogRepository(ABC):
    """One row per resolved query, plus the chunks it retrieved."""

    @abstractmethod
    async def save_query_log(self, log: QueryLog) -> int:
        """Insert a query log row and return its id."""

    @abstractmethod
    async def get_query_log(self, query_log_id: int) -> QueryLog | None:
        """Fetch a query log row by id."""

    @abstractmethod
    async def register_query_chunks(
        self, query_log_id: int, chunks: list[tuple[str, float]]
    ) -> None:
        """Record the (chunk id, score) pairs retrieved for a query log row."""

    @abstractmethod
    async def get_query_chunks(self, query_log_id: int) -> list[str]:
        """Chunk ids registered for a query log row, in retrieval order."""


class FeedbackRepository(ABC):
    """User ratings on prior answers."""

    @abstractmethod
    async def save_feedback(self, feedback: Feedback) -> int:
        """Insert a feedback row and return its id."""

    @abstractmethod
    async def list_feedback_since(self, since: datetime) -> list[FeedbackSample]:
        """Feedback created at or after ``since`` joined with its query log."""

    @abstractmethod
    async def latest_rating_for_slot(self, cache_slot: str) -> int | None:
        """Rating of the most recent feedback on answers served from a cache slot."""


class LearnedResponseRepository(ABC):
    """Persistent learned responses keyed by normalized query."""

    @abstractmethod
    async def get(self, query_key: str) -> LearnedResponse | None:
        """Fetch the learned response for a key, whatever its score."""

    @abstractmethod
    async def increment_usage(self, query_key: str) -> None:
        """Atomically bump the usage counter of a key."""

    @abstractmethod
    async def upsert_score(
        self,
        query_key: str,
        answer: str,
        quality_score: float,
        smoothing: float | None = None,
    ) -> UpsertResult:
        """Insert or update a key in one atomic conditional statement.

        With ``smoothing`` None the stored score is overwritten; otherwise it
        becomes ``smoothing * new + (1 - smoothing) * old``.
        """


class ConfigRepository(ABC):
    """Dynamic key/value configuration (e.g. ``top_k``)."""

    @abstractmethod
    async def get_config(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for ``key`` or ``default``."""

    @abstractmethod
    async def set_config(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value."""


class AgentMemoryRepository(ABC):
    """Operational memory entries injected into generation prompts."""

    @abstractmethod
    async def get_agent_memories(
        self, min_importance: float, limit: int = 10
    ) -> list[AgentMemory]:
        """Memories with importance >= ``min_importance``, most important first."""

    @abstractmethod
    async def upsert_agent_memory(self, memory: AgentMemory) -> None:
        """Insert or replace a memory by topic."""


class ChunkStatsRepository(ABC):
    """Success/failure counters for retrieved chunks."""

    @abstractmethod
    async def update_chunk_stats(self, query_log_id: int, rating: int) -> int:
        """Apply a rating to every chunk registered for a query log row.

        Returns the number of chunks updated.
        """

    @abstractmethod
    async def get_chunk_stats(self, chunk_id: str) -> ChunkStats | None:
        """Counters for a chunk, or None if it was never rated."""

    @abstractmethod
    async def get_chunk_stats_many(self, chunk_ids: list[str]) -> dict[str, ChunkStats]:
        """Counters for the rated chunks among ``chunk_ids``, keyed by chunk id."""
