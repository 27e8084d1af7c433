# src/cache/cache_factory.py — v1
"""Factory for cache store and semantic cache instantiation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ragtiers.cache.base_cache_store import BaseCacheStore
from ragtiers.config.settings import Settings

if TYPE_CHECKING:
    from ragtiers.cache.semantic_cache import SemanticCache
    from ragtiers.rag.embeddings.base_embedder import BaseEmbedder
    from ragtiers.storage.base_repository import FeedbackRepository


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to an SQLite backend.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "sqlite" if settings is None else settings.cache_backend
    max_entries = 500 if settings is None else settings.cache_max_entries_per_scope

    if backend == "sqlite":
        from ragtiers.cache.sqlite_store import SqliteCacheStore
        cache_root = "~/.ragtiers/cache" if settings is None else str(settings.cache_root)
        return SqliteCacheStore(
            db_path=f"{cache_root}/ragtiers_cache.db",
            max_entries_per_scope=max_entries,
        )

    if backend == "redis":
        from ragtiers.cache.redis_store import RedisCacheStore
        if settings is None or not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCacheStore(
            redis_url=settings.cache_redis_url,
            max_entries_per_scope=max_entries,
        )

    raise ValueError(f"Unsupported cache backend: {backend!r}")


def create_semantic_cache(
    settings: Settings,
    store: BaseCacheStore | None = None,
    embedder: BaseEmbedder | None = None,
    feedback: FeedbackRepository | None = None,
) -> SemanticCache:
    """Build a SemanticCache wired with the configured thresholds."""
    from ragtiers.cache.semantic_cache import SemanticCache

    return SemanticCache(
        store=store if store is not None else create_cache_store(settings),
        embedder=embedder,
        feedback=feedback,
        similarity_threshold=settings.cache_similarity_threshold,
        candidate_limit=settings.cache_candidate_limit,
        ttl_days=settings.cache_ttl_days,
        negative_rating_max=settings.cache_negative_rating_max,
        embedding_timeout=settings.timeout_embedding,
        store_timeout=settings.timeout_store,
    )
