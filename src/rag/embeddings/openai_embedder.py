# src/rag/embeddings/openai_embedder.py — v1
"""OpenAI embedding adapter (text-embedding-3-small by default).

Also works against OpenAI-compatible servers exposing /v1/embeddings.
"""

from __future__ import annotations

import logging

from ragtiers.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)

_BATCH_SIZE = 64


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings via the openai SDK."""

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        dimensions: int = 1536,
        base_url: str | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._dimensions = dimensions
        self._base_url = base_url
        self.__client = None

    @property
    def _client(self):
        if self.__client is None:
            import openai

            self.__client = openai.AsyncOpenAI(
                api_key=self._api_key or "not-needed", base_url=self._base_url or None
            )
        return self.__client

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in batches, preserving input order."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_SIZE):
            batch = texts[start:start + _BATCH_SIZE]
            response = await self._client.embeddings.create(input=batch, model=self._model)
            ordered = sorted(response.data, key=lambda item: item.index)
            vectors.extend(item.embedding for item in ordered)
        return vectors

    async def embed_query(self, query: str) -> list[float]:
        response = await self._client.embeddings.create(input=[query], model=self._model)
        return response.data[0].embedding

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
