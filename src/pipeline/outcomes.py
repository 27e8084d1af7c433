# src/pipeline/outcomes.py — v1
"""Tagged outcomes of a tiered resolution.

Exactly one variant is produced per resolved query; ``tier`` is the
discriminator:

  simple     no-context answer to a greeting or filler query
  cache      stored answer from the scoped semantic cache
  learned    feedback-reinforced answer above the usage threshold
  generated  fresh retrieval-augmented answer
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from ragtiers.core.models import SourceReference


class SimpleAnswer(BaseModel):
    tier: Literal["simple"] = "simple"
    answer: str
    sources: list[SourceReference] = Field(default_factory=list)


class CacheHit(BaseModel):
    tier: Literal["cache"] = "cache"
    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    similarity: float
    match_level: Literal["exact", "semantic"]
    slot_key: str


class LearnedHit(BaseModel):
    tier: Literal["learned"] = "learned"
    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    query_key: str
    quality_score: float


class Generated(BaseModel):
    tier: Literal["generated"] = "generated"
    answer: str
    sources: list[SourceReference] = Field(default_factory=list)
    chunk_ids: list[str] = Field(default_factory=list)
    chunk_scores: list[float] = Field(default_factory=list)
    slot_key: str


Outcome = Annotated[
    Union[SimpleAnswer, CacheHit, LearnedHit, Generated],
    Field(discriminator="tier"),
]


def is_from_cache(outcome: Outcome) -> bool:
    """Only a semantic cache hit counts as served from cache."""
    return isinstance(outcome, CacheHit)


def cache_slot_of(outcome: Outcome) -> str | None:
    """Cache slot whose answer this outcome served or wrote, if any."""
    if isinstance(outcome, (CacheHit, Generated)):
        return outcome.slot_key
    return None
