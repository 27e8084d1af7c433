# src/api/models.py — v1
"""API-level request/response models for the resolve and feedback operations."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ragtiers.core.errors import ErrorClass
from ragtiers.core.models import ContentType, SourceReference, Zone

QUERY_MIN_CHARS = 3
QUERY_MAX_CHARS = 2000


class ResolveRequest(BaseModel):
    """Resolve-query input as received from the HTTP layer."""

    query: str
    zone: Zone
    development: str = Field(min_length=1)
    content_type: ContentType | None = None
    force_regenerate: bool = False
    on_behalf_of_user_id: str | None = None

    @field_validator("query")
    @classmethod
    def validate_query_length(cls, v: str) -> str:
        if len(v.strip()) < QUERY_MIN_CHARS:
            raise ValueError(f"La consulta debe tener al menos {QUERY_MIN_CHARS} caracteres")
        if len(v) > QUERY_MAX_CHARS:
            raise ValueError(f"La consulta no puede exceder {QUERY_MAX_CHARS} caracteres")
        return v

    @field_validator("development")
    @classmethod
    def validate_development(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("development must not be blank")
        return v.strip()


class ResolveResponse(BaseModel):
    """Resolve-query output; on failure only ``error`` fields are set."""

    success: bool
    answer: str | None = None
    sources: list[SourceReference] = Field(default_factory=list)
    query_log_id: int | None = None
    tier: str | None = None
    from_cache: bool = False
    response_time_ms: int | None = None
    error: str | None = None
    error_class: ErrorClass | None = None


class FeedbackRequest(BaseModel):
    """A 1-5 rating on a prior answer."""

    query_log_id: int = Field(gt=0)
    rating: int = Field(ge=1, le=5)
    comment: str | None = None


class FeedbackResponse(BaseModel):
    success: bool
    feedback_id: int | None = None
    chunks_updated: int = 0
    error: str | None = None
    error_class: ErrorClass | None = None
