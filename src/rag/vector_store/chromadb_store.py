# src/rag/vector_store/chromadb_store.py — v1
"""ChromaDB vector store adapter.

Uses the chromadb SDK for local or remote vector storage; one collection
per namespace, embedded with the collection's embedding function.
Requires: pip install chromadb.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ragtiers.rag.models import ChunkMatch
from ragtiers.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


def to_where(filter: dict | None) -> dict | None:
    """Translate a flat equality filter into a Chroma ``where`` clause."""
    if not filter:
        return None
    clauses = [{key: value} for key, value in filter.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class ChromaDBStore(BaseVectorStore):
    """Vector store backed by ChromaDB."""

    def __init__(
        self,
        persist_path: str | Path | None = None,
        host: str | None = None,
        port: int = 8000,
        client: Any = None,
    ) -> None:
        if client is not None:
            self._client = client
            return
        try:
            import chromadb
        except ImportError as e:
            raise ImportError(
                "chromadb package required: pip install chromadb"
            ) from e

        if host:
            self._client = chromadb.HttpClient(host=host, port=port)
        elif persist_path:
            self._client = chromadb.PersistentClient(path=str(Path(persist_path).expanduser()))
        else:
            self._client = chromadb.Client()

    async def query(
        self,
        namespace: str,
        query_text: str,
        top_k: int = 5,
        filter: dict | None = None,
    ) -> list[ChunkMatch]:
        """Query a namespace by text similarity."""
        col = self._client.get_or_create_collection(namespace)
        kwargs: dict = {
            "query_texts": [query_text],
            "n_results": top_k,
            "include": ["documents", "metadatas", "distances"],
        }
        where = to_where(filter)
        if where:
            kwargs["where"] = where

        results = col.query(**kwargs)

        matches: list[ChunkMatch] = []
        if results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                distance = results["distances"][0][i] if results.get("distances") else 0.0
                doc = results["documents"][0][i] if results.get("documents") else ""
                meta = (results["metadatas"][0][i] if results.get("metadatas") else None) or {}
                matches.append(
                    ChunkMatch(
                        id=chunk_id,
                        score=1.0 - float(distance),
                        text=meta.get("text") or doc or "",
                        filename=(
                            meta.get("source_file_name")
                            or meta.get("sourceFileName")
                            or "Documento desconocido"
                        ),
                        page=_as_int(meta.get("page")),
                        chunk=_as_int(meta.get("chunk")),
                        metadata=dict(meta),
                    )
                )
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    async def upsert(
        self,
        namespace: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict] | None = None,
    ) -> None:
        """Insert or update chunk texts."""
        col = self._client.get_or_create_collection(namespace)
        col.upsert(ids=ids, documents=documents, metadatas=metadatas)

    async def count(self, namespace: str) -> int:
        col = self._client.get_or_create_collection(namespace)
        return col.count()

    @property
    def provider_name(self) -> str:
        return "chromadb"
