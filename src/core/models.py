# src/core/models.py — v1
"""Core domain models shared across packages.

Scope and source references, persisted rows (query logs, feedback,
learned responses, agent memories) and the result types returned by
side effects and the reinforcement batch.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Zone = Literal["yucatan", "puebla", "quintana_roo", "cdmx", "jalisco", "nuevo_leon"]

ContentType = Literal[
    "brochure",
    "policy",
    "price",
    "inventory",
    "floor_plan",
    "amenities",
    "legal",
    "faq",
    "general",
]

# Success ratio assumed for chunks without ratings.
NEUTRAL_SUCCESS_RATIO = 0.5


# ---------------------------------------------------------------------------
# Scope and sources
# ---------------------------------------------------------------------------


class QueryScope(BaseModel, frozen=True):
    """The (zone, development, content type) fingerprint scope.

    Every cache and retrieval operation is bound to exactly one scope.
    """

    zone: Zone
    development: str = Field(min_length=1)
    content_type: ContentType | None = None

    @property
    def key(self) -> str:
        """Stable string form, used as an index key by the cache backends."""
        return f"{self.zone}|{self.development}|{self.content_type or '*'}"

    def vector_filter(self) -> dict[str, str]:
        """Metadata filter for the vector index."""
        flt = {"development": self.development}
        if self.content_type:
            flt["type"] = self.content_type
        return flt


class SourceReference(BaseModel):
    """A cited source shown next to an answer."""

    filename: str
    page: int = 0
    chunk: int = 0
    relevance_score: float = 0.0
    text_preview: str = ""


# ---------------------------------------------------------------------------
# Persisted rows
# ---------------------------------------------------------------------------


class QueryLog(BaseModel):
    """One row per resolved query, whichever tier answered it."""

    id: int | None = None
    user_id: str
    query: str
    zone: str
    development: str
    response: str
    sources_used: list[str] = Field(default_factory=list)
    response_time_ms: int = 0
    tier: str = ""
    cache_slot: str | None = None
    created_at: datetime | None = None


class Feedback(BaseModel):
    """A star rating left by an end user on a prior answer."""

    id: int | None = None
    query_log_id: int
    rating: int = Field(ge=1, le=5)
    comment: str | None = None
    created_at: datetime | None = None


class FeedbackSample(BaseModel):
    """Feedback joined with the query/answer it rates.

    Deliberately lenient: rows are validated by the reinforcement job so a
    malformed row is reported instead of aborting the whole read.
    """

    feedback_id: int
    query_log_id: int | None = None
    rating: int | None = None
    query: str | None = None
    response: str | None = None
    created_at: datetime | None = None


class LearnedResponse(BaseModel):
    """Best known answer for one normalized query key."""

    query_key: str
    answer: str
    quality_score: float = Field(ge=-1.0, le=1.0)
    usage_count: int = 0
    feedback_count: int = 0
    updated_at: datetime | None = None


class UpsertResult(BaseModel):
    """Outcome of an upsert-by-feedback."""

    created: bool = False
    updated: bool = False
    quality_score: float = 0.0


class AgentMemory(BaseModel):
    """Operational memory entry injected into the generation prompt."""

    topic: str
    summary: str
    importance: float = Field(ge=0.0, le=1.0)


class ChunkStats(BaseModel):
    """Success/failure counters for a retrieved chunk."""

    chunk_id: str
    success_count: int = 0
    fail_count: int = 0

    @property
    def success_ratio(self) -> float:
        """Share of positive ratings; NEUTRAL_SUCCESS_RATIO when never rated."""
        total = self.success_count + self.fail_count
        return self.success_count / total if total else NEUTRAL_SUCCESS_RATIO


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class SideEffectResult(BaseModel):
    """Outcome of an auxiliary effect (cache write, usage increment, ...).

    A failed side effect is logged and reported here, never raised.
    """

    name: str
    ok: bool
    skipped: bool = False
    error: str | None = None


class ReinforcementReport(BaseModel):
    """Summary of a reinforcement batch run."""

    processed: int = 0
    updated: int = 0
    created: int = 0
    errors: list[str] = Field(default_factory=list)
    window_hours: int = 24
    duration_seconds: float = 0.0
