# src/cache/models.py — v1
"""Cache domain models: CacheEntry, CacheLookupResult."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ragtiers.core.models import QueryScope, SourceReference


class CacheEntry(BaseModel):
    """A cached (query, answer, sources) triple bound to one scope.

    Entries are never mutated in place: a write to an existing slot
    replaces the whole entry.
    """

    slot_key: str
    query_hash: str
    query_text: str
    scope: QueryScope
    response: str
    sources: list[SourceReference] = Field(default_factory=list)
    embedding: list[float] | None = None
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class CacheLookupResult(BaseModel):
    """Result of a scoped semantic cache lookup."""

    entry: CacheEntry | None = None
    similarity: float | None = None
    match_level: Literal["exact", "semantic"] | None = None

    @property
    def hit(self) -> bool:
        return self.entry is not None
