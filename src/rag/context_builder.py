# src/rag/context_builder.py — v1
"""Turn retrieved chunks into a prompt context and citation list."""

from __future__ import annotations

import re

from ragtiers.core.models import SourceReference
from ragtiers.rag.models import ChunkMatch

CONTEXT_SEPARATOR = "\n\n---\n\n"

_WHITESPACE_RE = re.compile(r"\s+")


def build_context(matches: list[ChunkMatch]) -> str:
    """Numbered "[Fuente n: file, Página p]" blocks, separated by ``---``."""
    blocks = [
        f"[Fuente {i}: {m.filename}, Página {m.page}]\n{m.text}"
        for i, m in enumerate(matches, start=1)
    ]
    return CONTEXT_SEPARATOR.join(blocks)


def generate_preview(text: str, max_length: int = 150) -> str:
    """Whitespace-collapsed preview cut on a word boundary."""
    clean = _WHITESPACE_RE.sub(" ", text or "").strip()
    if len(clean) <= max_length:
        return clean
    cut = clean[:max_length]
    space = cut.rfind(" ")
    if space > max_length // 2:
        cut = cut[:space]
    return cut.rstrip(" .,;:") + "..."


def build_source_references(
    matches: list[ChunkMatch], preview_length: int = 150
) -> list[SourceReference]:
    """Citation entries in retrieval order, relevance rounded to 2 decimals."""
    return [
        SourceReference(
            filename=m.filename,
            page=m.page,
            chunk=m.chunk,
            relevance_score=round(m.score, 2),
            text_preview=generate_preview(m.text, preview_length),
        )
        for m in matches
    ]
