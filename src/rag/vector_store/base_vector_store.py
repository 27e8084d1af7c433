# src/rag/vector_store/base_vector_store.py — v1
"""Abstract vector store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragtiers.rag.models import ChunkMatch


class BaseVectorStore(ABC):
    """Unified interface for vector index backends.

    A namespace partitions the index (one per zone); ``filter`` is an
    equality filter on chunk metadata.
    """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        query_text: str,
        top_k: int = 5,
        filter: dict | None = None,
    ) -> list[ChunkMatch]:
        """Return up to ``top_k`` chunks ranked by descending score."""

    @abstractmethod
    async def upsert(
        self,
        namespace: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict] | None = None,
    ) -> None:
        """Insert or update chunk texts with metadata."""

    @abstractmethod
    async def count(self, namespace: str) -> int:
        """Number of chunks in a namespace."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (chromadb)."""
