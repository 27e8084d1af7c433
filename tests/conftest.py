# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides a scripted LLM client, a deterministic embedder, an in-memory
vector store, SQLite repositories under tmp_path and a dispatcher
builder. No external services: every provider is faked.
"""

from __future__ import annotations

import hashlib
import math
from typing import Any

import pytest

from ragtiers.cache.semantic_cache import SemanticCache
from ragtiers.cache.sqlite_store import SqliteCacheStore
from ragtiers.config.settings import load_settings
from ragtiers.core.models import QueryScope
from ragtiers.learning.learned_store import LearnedResponseStore
from ragtiers.llm.base_client import BaseLLMClient
from ragtiers.llm.generator import AnswerGenerator
from ragtiers.llm.models import LLMResponse, Message
from ragtiers.pipeline.dispatcher import TieredDispatcher
from ragtiers.rag.embeddings.base_embedder import BaseEmbedder
from ragtiers.rag.models import ChunkMatch
from ragtiers.rag.vector_store.base_vector_store import BaseVectorStore
from ragtiers.storage.sqlite_repository import SqliteRepository


# =====================================================================
#  FAKE PROVIDERS
# =====================================================================


class MockLLMClient(BaseLLMClient):
    """Scripted LLM client: queued responses, recorded calls, toggled health."""

    def __init__(self, default_response: str = "Respuesta de prueba [1]"):
        self._default_response = default_response
        self._response_queue: list[str] = []
        self.calls: list[dict[str, Any]] = []
        self.healthy = True
        self.health_checks = 0

    def set_responses(self, *responses: str) -> None:
        self._response_queue = list(responses)

    def set_default(self, response: str) -> None:
        self._default_response = response

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        content = self._response_queue.pop(0) if self._response_queue else self._default_response
        self.calls.append({
            "messages": messages, "system": system,
            "max_tokens": max_tokens, "temperature": temperature,
        })
        return LLMResponse(
            content=content, input_tokens=50, output_tokens=len(content) // 4,
            model="mock-model", provider="mock", latency_ms=10,
        )

    async def health_check(self) -> bool:
        self.health_checks += 1
        return self.healthy

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return "mock-model"


class MockEmbedder(BaseEmbedder):
    """Deterministic embedder: sha256-derived unit vectors, or fixed vectors per text."""

    def __init__(self, dimensions: int = 32, vectors: dict[str, list[float]] | None = None):
        self._dims = dimensions
        self.vectors = dict(vectors or {})
        self.call_count = 0

    def _text_to_vec(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode()).hexdigest()
        raw = [int(digest[i:i + 2], 16) / 255.0 - 0.5 for i in range(0, len(digest), 2)]
        while len(raw) < self._dims:
            raw.extend(raw[:self._dims - len(raw)])
        raw = raw[:self._dims]
        norm = math.sqrt(sum(x * x for x in raw)) or 1.0
        return [x / norm for x in raw]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        self.call_count += len(texts)
        return [self._text_to_vec(t) for t in texts]

    async def embed_query(self, query: str) -> list[float]:
        self.call_count += 1
        return self._text_to_vec(query)

    @property
    def dimensions(self) -> int:
        return self._dims

    @property
    def provider_name(self) -> str:
        return "mock"

    @property
    def model_name(self) -> str:
        return "mock-embedder"


class FakeVectorStore(BaseVectorStore):
    """Returns preset matches and records every query.

    ``by_text`` answers specific query texts with their own matches;
    texts in ``failing_texts`` raise.
    """

    def __init__(self, matches: list[ChunkMatch] | None = None):
        self.matches = list(matches or [])
        self.by_text: dict[str, list[ChunkMatch]] = {}
        self.failing_texts: set[str] = set()
        self.queries: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def query(
        self,
        namespace: str,
        query_text: str,
        top_k: int = 5,
        filter: dict | None = None,
    ) -> list[ChunkMatch]:
        self.queries.append({
            "namespace": namespace, "query_text": query_text,
            "top_k": top_k, "filter": filter,
        })
        if self.error is not None:
            raise self.error
        if query_text in self.failing_texts:
            raise RuntimeError(f"query failed: {query_text}")
        return self.by_text.get(query_text, self.matches)[:top_k]

    async def upsert(self, namespace, ids, documents, metadatas=None) -> None:
        for chunk_id, doc in zip(ids, documents):
            self.matches.append(ChunkMatch(id=chunk_id, score=1.0, text=doc))

    async def count(self, namespace: str) -> int:
        return len(self.matches)

    @property
    def provider_name(self) -> str:
        return "fake"


# =====================================================================
#  FIXTURES: fakes
# =====================================================================


@pytest.fixture
def mock_llm() -> MockLLMClient:
    return MockLLMClient()


@pytest.fixture
def mock_embedder() -> MockEmbedder:
    return MockEmbedder()


@pytest.fixture
def embedder_cls() -> type[MockEmbedder]:
    return MockEmbedder


@pytest.fixture
def sample_matches() -> list[ChunkMatch]:
    return [
        ChunkMatch(
            id="fuego-precios-p3-c0",
            score=0.91,
            text="Lote 12 en Fuego: 350 m2, precio de lista $1,850,000 MXN.",
            filename="lista_precios_fuego.pdf",
            page=3,
            chunk=0,
        ),
        ChunkMatch(
            id="fuego-brochure-p1-c2",
            score=0.78,
            text="Fuego es un desarrollo residencial con club de playa y amenidades.",
            filename="brochure_fuego.pdf",
            page=1,
            chunk=2,
        ),
        ChunkMatch(
            id="fuego-reglamento-p7-c1",
            score=0.66,
            text="Reglamento de Fuego: construcción permitida hasta dos niveles.",
            filename="reglamento_fuego.pdf",
            page=7,
            chunk=1,
        ),
    ]


@pytest.fixture
def vector_store(sample_matches) -> FakeVectorStore:
    return FakeVectorStore(sample_matches)


# =====================================================================
#  FIXTURES: scopes and settings
# =====================================================================


@pytest.fixture
def scope() -> QueryScope:
    return QueryScope(zone="quintana_roo", development="fuego")


@pytest.fixture
def other_scope() -> QueryScope:
    return QueryScope(zone="yucatan", development="tierra")


@pytest.fixture
def settings(tmp_path):
    return load_settings(
        _env_file=None,
        embedding_provider="none",
        database_path=tmp_path / "ragtiers.db",
        cache_root=tmp_path / "cache",
        vector_db_path=tmp_path / "vectordb",
    )


# =====================================================================
#  FIXTURES: storage and dispatcher
# =====================================================================


@pytest.fixture
def repository(tmp_path):
    repo = SqliteRepository(tmp_path / "ragtiers.db")
    yield repo
    repo.close()


@pytest.fixture
def cache_store(tmp_path):
    store = SqliteCacheStore(tmp_path / "cache.db")
    yield store
    store.close()


@pytest.fixture
def make_dispatcher(mock_llm, vector_store, repository, cache_store):
    """Build a TieredDispatcher over the fakes; keyword overrides replace parts."""

    def _make(**overrides: Any) -> TieredDispatcher:
        embedder = overrides.pop("embedder", None)
        cache = overrides.pop("cache", None) or SemanticCache(
            cache_store, embedder=embedder, feedback=repository
        )
        learned = overrides.pop("learned", None) or LearnedResponseStore(repository)
        generator = overrides.pop("generator", None) or AnswerGenerator(
            mock_llm, retry_configs={}
        )
        kwargs: dict[str, Any] = {
            "generator": generator,
            "cache": cache,
            "learned": learned,
            "vector_store": vector_store,
            "query_logs": repository,
            "config": repository,
            "memories": repository,
            "chunk_stats": repository,
        }
        kwargs.update(overrides)
        return TieredDispatcher(**kwargs)

    return _make
