# src/rag/models.py — v1
"""Retrieval types: ChunkMatch."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChunkMatch(BaseModel):
    """A scored chunk returned by the vector index."""

    id: str
    score: float
    text: str = ""
    filename: str = "Documento desconocido"
    page: int = 0
    chunk: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
