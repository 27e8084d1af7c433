# src/cache/semantic_cache.py — v1
"""Semantic response cache scoped by (zone, development, content type).

Lookup order:
  1. Exact slot match (same canonical query text, same scope) → similarity 1.0.
  2. Embedding similarity against the scope's live entries; the best of the
     top ``candidate_limit`` candidates is returned if it clears the threshold.

Entries from another scope are never candidates, whatever their similarity.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from ragtiers.cache.base_cache_store import BaseCacheStore
from ragtiers.cache.fingerprint import canonical_text, query_hash, slot_key
from ragtiers.cache.models import CacheEntry, CacheLookupResult
from ragtiers.core.models import QueryScope, SideEffectResult, SourceReference
from ragtiers.core.similarity import cosine_similarities
from ragtiers.core.timeout import with_timeout

if TYPE_CHECKING:
    from ragtiers.rag.embeddings.base_embedder import BaseEmbedder
    from ragtiers.storage.base_repository import FeedbackRepository

logger = logging.getLogger(__name__)

# Scores are compared at this precision so 0.85 stored as 0.8500000001 still hits.
SCORE_PRECISION = 6


class SemanticCache:
    """Scope-bound semantic cache over a BaseCacheStore."""

    def __init__(
        self,
        store: BaseCacheStore,
        embedder: BaseEmbedder | None = None,
        feedback: FeedbackRepository | None = None,
        similarity_threshold: float = 0.85,
        candidate_limit: int = 3,
        ttl_days: int = 30,
        negative_rating_max: int = 2,
        embedding_timeout: float = 30.0,
        store_timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._feedback = feedback
        self._threshold = similarity_threshold
        self._candidate_limit = candidate_limit
        self._ttl = timedelta(days=ttl_days)
        self._negative_rating_max = negative_rating_max
        self._embedding_timeout = embedding_timeout
        self._store_timeout = store_timeout

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    @property
    def similarity_threshold(self) -> float:
        return self._threshold

    async def find(self, query: str, scope: QueryScope) -> CacheLookupResult:
        """Find the best cached answer for ``query`` within ``scope``.

        Args:
            query: Processed query text.
            scope: Scope the lookup is bound to.

        Returns:
            CacheLookupResult; ``hit`` is False on a miss.
        """
        slot = slot_key(query, scope)

        exact = await with_timeout(self._store.get(slot), self._store_timeout, "cache_get")
        if exact is not None and exact.scope == scope:
            await with_timeout(self._store.touch(slot), self._store_timeout, "cache_touch")
            logger.debug("Cache exact hit: slot=%s", slot)
            return CacheLookupResult(entry=exact, similarity=1.0, match_level="exact")

        if self._embedder is None:
            return CacheLookupResult()

        entries = await with_timeout(
            self._store.list_scope(scope), self._store_timeout, "cache_list_scope"
        )
        candidates = [e for e in entries if e.scope == scope and e.embedding]
        if not candidates:
            return CacheLookupResult()

        vector = await with_timeout(
            self._embedder.embed_query(canonical_text(query)),
            self._embedding_timeout,
            "embedding",
        )
        candidates = [e for e in candidates if len(e.embedding or []) == len(vector)]
        if not candidates:
            return CacheLookupResult()

        scores = cosine_similarities(vector, [e.embedding for e in candidates])
        ranked = sorted(
            zip(candidates, (round(float(s), SCORE_PRECISION) for s in scores)),
            key=lambda pair: pair[1],
            reverse=True,
        )[: self._candidate_limit]

        best_entry, best_score = ranked[0]
        if best_score < self._threshold:
            logger.debug(
                "Cache miss: best similarity %.4f below %.4f", best_score, self._threshold
            )
            return CacheLookupResult()

        await with_timeout(
            self._store.touch(best_entry.slot_key), self._store_timeout, "cache_touch"
        )
        logger.debug(
            "Cache semantic hit: slot=%s similarity=%.4f", best_entry.slot_key, best_score
        )
        return CacheLookupResult(
            entry=best_entry, similarity=best_score, match_level="semantic"
        )

    async def peek_sources(self, query: str, scope: QueryScope) -> list[SourceReference]:
        """Sources stored in the exact slot for (query, scope), or [].

        Read-only: no similarity search and no hit/LRU bookkeeping.
        """
        slot = slot_key(query, scope)
        entry = await with_timeout(self._store.get(slot), self._store_timeout, "cache_get")
        if entry is None or entry.scope != scope:
            return []
        return list(entry.sources)

    async def save(
        self,
        query: str,
        scope: QueryScope,
        response: str,
        sources: list[SourceReference],
    ) -> SideEffectResult:
        """Store (query, response, sources) in the slot for (query, scope).

        Skipped when the latest feedback on the slot is negative. Failures are
        logged and reported, never raised.
        """
        slot = slot_key(query, scope)
        try:
            if self._feedback is not None:
                rating = await with_timeout(
                    self._feedback.latest_rating_for_slot(slot),
                    self._store_timeout,
                    "feedback_latest_rating",
                )
                if rating is not None and rating <= self._negative_rating_max:
                    logger.info(
                        "Cache write skipped: slot %s last rated %d", slot, rating
                    )
                    return SideEffectResult(name="cache_write", ok=True, skipped=True)

            embedding: list[float] | None = None
            if self._embedder is not None:
                embedding = await with_timeout(
                    self._embedder.embed_query(canonical_text(query)),
                    self._embedding_timeout,
                    "embedding",
                )

            now = datetime.now(timezone.utc)
            entry = CacheEntry(
                slot_key=slot,
                query_hash=query_hash(query),
                query_text=query,
                scope=scope,
                response=response,
                sources=list(sources),
                embedding=embedding,
                created_at=now,
                expires_at=now + self._ttl,
            )
            await with_timeout(self._store.put(entry), self._store_timeout, "cache_put")
        except Exception as e:
            logger.warning("Cache write failed for slot %s: %s", slot, e)
            return SideEffectResult(name="cache_write", ok=False, error=str(e))
        return SideEffectResult(name="cache_write", ok=True)

    async def purge_expired(self) -> int:
        """Sweep expired entries from the backing store."""
        removed = await self._store.purge_expired()
        logger.info("Purged %d expired cache entries", removed)
        return removed
