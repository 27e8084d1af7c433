# src/pipeline/dispatcher.py — v1
"""Tiered resolution dispatcher.

For every query the tiers are evaluated strictly in order, first match wins:

  1. simple     is_simple(raw) → no-context answer; no cache read or write.
  2. cache      (skipped on force_regenerate) scoped semantic cache lookup
                on the processed query.
  3. learned    (skipped on force_regenerate) learned response whose score
                clears the usage threshold; usage counted in the background.
  4. generated  vector retrieval (re-ranked by chunk feedback, widened with
                query variants when thin) + grounded generation; result cached.

The raw query is what gets logged and sent to the model; the processed
(normalized + augmented) query is only a lookup key and retrieval text.
A provider health check runs before any tier. Retrieval and generation
errors propagate; cache writes, usage counts, source back-fill, re-ranking,
variant queries, memory loading and chunk registration are best effort.
"""

from __future__ import annotations

import asyncio
import logging
import time

from pydantic import BaseModel, Field

from ragtiers.cache.fingerprint import slot_key
from ragtiers.cache.semantic_cache import SemanticCache
from ragtiers.core.errors import EmptyAnswerError, UpstreamUnavailableError
from ragtiers.core.models import (
    NEUTRAL_SUCCESS_RATIO,
    AgentMemory,
    QueryLog,
    QueryScope,
    SideEffectResult,
    SourceReference,
)
from ragtiers.core.timeout import with_timeout
from ragtiers.learning.learned_store import LearnedResponseStore
from ragtiers.llm.generator import AnswerGenerator
from ragtiers.logging.context import set_tier_context
from ragtiers.pipeline.outcomes import (
    CacheHit,
    Generated,
    LearnedHit,
    Outcome,
    SimpleAnswer,
    cache_slot_of,
    is_from_cache,
)
from ragtiers.query.expander import generate_variants, learning_key, process_query
from ragtiers.query.simple_classifier import is_simple
from ragtiers.rag.context_builder import build_context, build_source_references
from ragtiers.rag.models import ChunkMatch
from ragtiers.rag.vector_store.base_vector_store import BaseVectorStore
from ragtiers.storage.base_repository import (
    AgentMemoryRepository,
    ChunkStatsRepository,
    ConfigRepository,
    QueryLogRepository,
)

logger = logging.getLogger(__name__)

TOP_K_CONFIG_KEY = "top_k"

# Blend of vector similarity and historical success ratio when re-ranking.
SIMILARITY_WEIGHT = 0.8
FEEDBACK_WEIGHT = 0.2

# A match at or above this score counts as relevant; fewer relevant matches
# than min(top_k, MAX_VARIANT_QUERIES) triggers the variant retry.
RELEVANT_SCORE = 0.5
MAX_VARIANT_QUERIES = 3


class DispatchRequest(BaseModel):
    """An authenticated, validated query."""

    user_id: str
    query: str
    scope: QueryScope
    force_regenerate: bool = False


class Resolution(BaseModel):
    """Result of one resolution: the outcome plus bookkeeping."""

    outcome: Outcome
    query_log_id: int
    latency_ms: int
    side_effects: list[SideEffectResult] = Field(default_factory=list)

    @property
    def answer(self) -> str:
        return self.outcome.answer

    @property
    def sources(self) -> list[SourceReference]:
        return self.outcome.sources

    @property
    def tier(self) -> str:
        return self.outcome.tier

    @property
    def from_cache(self) -> bool:
        return is_from_cache(self.outcome)


class TieredDispatcher:
    """Route each query through simple → cache → learned → generated."""

    def __init__(
        self,
        generator: AnswerGenerator,
        cache: SemanticCache,
        learned: LearnedResponseStore,
        vector_store: BaseVectorStore,
        query_logs: QueryLogRepository,
        config: ConfigRepository | None = None,
        memories: AgentMemoryRepository | None = None,
        chunk_stats: ChunkStatsRepository | None = None,
        default_top_k: int = 5,
        memory_min_importance: float = 0.7,
        preview_length: int = 150,
        vector_timeout: float = 15.0,
        store_timeout: float = 10.0,
    ) -> None:
        self._generator = generator
        self._cache = cache
        self._learned = learned
        self._vector_store = vector_store
        self._query_logs = query_logs
        self._config = config
        self._memories = memories
        self._chunk_stats = chunk_stats
        self._default_top_k = default_top_k
        self._memory_min_importance = memory_min_importance
        self._preview_length = preview_length
        self._vector_timeout = vector_timeout
        self._store_timeout = store_timeout
        self._background: set[asyncio.Task] = set()

    async def resolve(self, request: DispatchRequest) -> Resolution:
        """Resolve one query.

        Raises:
            UpstreamUnavailableError: Provider health check failed.
            EmptyAnswerError: The answering tier produced blank text.
            RagTiersError: Retrieval or generation failed (propagated).
        """
        started = time.monotonic()

        if not await self._generator.is_available():
            logger.error("LLM provider unavailable; refusing request")
            raise UpstreamUnavailableError("LLM provider health check failed")

        side_effects: list[SideEffectResult] = []
        outcome = await self._dispatch(request, side_effects)
        set_tier_context(outcome.tier)

        if not outcome.answer or not outcome.answer.strip():
            logger.error("Empty answer from tier %s", outcome.tier)
            raise EmptyAnswerError(outcome.tier)

        latency_ms = int((time.monotonic() - started) * 1000)
        query_log_id = await with_timeout(
            self._query_logs.save_query_log(
                QueryLog(
                    user_id=request.user_id,
                    query=request.query,
                    zone=request.scope.zone,
                    development=request.scope.development,
                    response=outcome.answer,
                    sources_used=[s.filename for s in outcome.sources],
                    response_time_ms=latency_ms,
                    tier=outcome.tier,
                    cache_slot=cache_slot_of(outcome),
                )
            ),
            self._store_timeout,
            "query_log_save",
        )

        if isinstance(outcome, Generated) and outcome.chunk_ids:
            side_effects.append(await self._register_chunks(query_log_id, outcome))

        logger.info(
            "Resolved query: tier=%s latency_ms=%d log_id=%d",
            outcome.tier, latency_ms, query_log_id,
            extra={"data": {"sources": len(outcome.sources), "from_cache": is_from_cache(outcome)}},
        )
        return Resolution(
            outcome=outcome,
            query_log_id=query_log_id,
            latency_ms=latency_ms,
            side_effects=side_effects,
        )

    async def drain(self) -> None:
        """Wait for pending background usage increments."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def _dispatch(
        self, request: DispatchRequest, side_effects: list[SideEffectResult]
    ) -> Outcome:
        raw = request.query
        scope = request.scope

        if is_simple(raw):
            set_tier_context("simple")
            logger.info("Simple query; answering without retrieval")
            return SimpleAnswer(answer=await self._generator.answer_simple(raw))

        processed = process_query(raw)

        if request.force_regenerate:
            logger.info("Force regenerate; skipping cache and learned tiers")
        else:
            hit = await self._lookup_cache(processed, scope, side_effects)
            if hit is not None:
                return hit
            learned = await self._lookup_learned(raw, processed, scope, side_effects)
            if learned is not None:
                return learned

        return await self._generate(raw, processed, scope, side_effects)

    async def _lookup_cache(
        self, processed: str, scope: QueryScope, side_effects: list[SideEffectResult]
    ) -> CacheHit | None:
        try:
            result = await self._cache.find(processed, scope)
        except Exception as e:
            logger.warning("Cache lookup failed, treating as miss: %s", e)
            side_effects.append(SideEffectResult(name="cache_lookup", ok=False, error=str(e)))
            return None
        if not result.hit:
            return None

        entry = result.entry
        set_tier_context("cache")
        logger.info("Cache hit: similarity=%.4f level=%s", result.similarity, result.match_level)
        return CacheHit(
            answer=entry.response,
            sources=entry.sources,
            similarity=result.similarity,
            match_level=result.match_level,
            slot_key=entry.slot_key,
        )

    async def _lookup_learned(
        self,
        raw: str,
        processed: str,
        scope: QueryScope,
        side_effects: list[SideEffectResult],
    ) -> LearnedHit | None:
        key = learning_key(raw)
        try:
            learned = await self._learned.get_servable(key)
        except Exception as e:
            logger.warning("Learned response lookup failed, treating as miss: %s", e)
            side_effects.append(SideEffectResult(name="learned_lookup", ok=False, error=str(e)))
            return None
        if learned is None:
            return None

        set_tier_context("learned")
        logger.info("Learned response hit: score=%.2f", learned.quality_score)
        self._count_usage(key)
        sources = await self._backfill_sources(processed, scope, side_effects)
        return LearnedHit(
            answer=learned.answer,
            sources=sources,
            query_key=key,
            quality_score=learned.quality_score,
        )

    async def _generate(
        self,
        raw: str,
        processed: str,
        scope: QueryScope,
        side_effects: list[SideEffectResult],
    ) -> Generated:
        set_tier_context("generated")
        top_k = await self._top_k()
        candidates = await with_timeout(
            self._vector_store.query(
                namespace=scope.zone,
                query_text=processed,
                top_k=top_k * 2,
                filter=scope.vector_filter(),
            ),
            self._vector_timeout,
            "vector_query",
        )
        matches = await self._rerank(candidates, top_k, side_effects)
        matches = await self._widen_with_variants(processed, scope, matches, top_k, side_effects)
        logger.info("Retrieved %d chunks (top_k=%d)", len(matches), top_k)

        memories = await self._load_memories(side_effects)
        answer = await self._generator.answer_with_context(
            raw, build_context(matches), scope.content_type, memories
        )
        if not answer or not answer.strip():
            logger.error("Empty answer from generation")
            raise EmptyAnswerError("generated")

        sources = build_source_references(matches, self._preview_length)
        if matches:
            side_effects.append(await self._cache.save(processed, scope, answer, sources))
        else:
            side_effects.append(SideEffectResult(name="cache_write", ok=True, skipped=True))

        return Generated(
            answer=answer,
            sources=sources,
            chunk_ids=[m.id for m in matches],
            chunk_scores=[m.score for m in matches],
            slot_key=slot_key(processed, scope),
        )

    # ------------------------------------------------------------------
    # Best-effort helpers
    # ------------------------------------------------------------------

    async def _top_k(self) -> int:
        if self._config is None:
            return self._default_top_k
        try:
            value = await with_timeout(
                self._config.get_config(TOP_K_CONFIG_KEY, self._default_top_k),
                self._store_timeout,
                "config_top_k",
            )
            top_k = int(value)
        except Exception as e:
            logger.warning("Cannot read top_k config, using %d: %s", self._default_top_k, e)
            return self._default_top_k
        return top_k if top_k >= 1 else self._default_top_k

    async def _rerank(
        self,
        candidates: list[ChunkMatch],
        top_k: int,
        side_effects: list[SideEffectResult],
    ) -> list[ChunkMatch]:
        """Blend similarity with each chunk's feedback history, keep the best ``top_k``.

        Without a stats repository (or when it fails) the candidates are
        ranked by similarity alone.
        """
        ranked = candidates
        if self._chunk_stats is not None and candidates:
            try:
                stats = await with_timeout(
                    self._chunk_stats.get_chunk_stats_many([m.id for m in candidates]),
                    self._store_timeout,
                    "chunk_stats",
                )
                ranked = [
                    m.model_copy(update={
                        "score": m.score * SIMILARITY_WEIGHT
                        + (stats[m.id].success_ratio if m.id in stats else NEUTRAL_SUCCESS_RATIO)
                        * FEEDBACK_WEIGHT,
                    })
                    for m in candidates
                ]
            except Exception as e:
                logger.warning("Chunk re-ranking skipped: %s", e)
                side_effects.append(SideEffectResult(name="chunk_rerank", ok=False, error=str(e)))
        return sorted(ranked, key=lambda m: m.score, reverse=True)[:top_k]

    async def _widen_with_variants(
        self,
        processed: str,
        scope: QueryScope,
        matches: list[ChunkMatch],
        top_k: int,
        side_effects: list[SideEffectResult],
    ) -> list[ChunkMatch]:
        """Retry retrieval with query variants when too few matches are relevant.

        Each variant query is best effort. The merged list replaces
        ``matches`` only when it holds more chunks.
        """
        wanted = min(top_k, MAX_VARIANT_QUERIES)
        relevant = sum(1 for m in matches if m.score >= RELEVANT_SCORE)
        if relevant >= wanted:
            return matches

        merged = {m.id: m for m in matches}
        for variant in generate_variants(processed)[1:MAX_VARIANT_QUERIES + 1]:
            try:
                extra = await with_timeout(
                    self._vector_store.query(
                        namespace=scope.zone,
                        query_text=variant,
                        top_k=wanted,
                        filter=scope.vector_filter(),
                    ),
                    self._vector_timeout,
                    "vector_query_variant",
                )
            except Exception as e:
                logger.warning("Variant retrieval failed for %r: %s", variant, e)
                side_effects.append(
                    SideEffectResult(name="variant_retrieval", ok=False, error=str(e))
                )
                continue
            for m in extra:
                merged.setdefault(m.id, m)

        widened = sorted(merged.values(), key=lambda m: m.score, reverse=True)[:top_k]
        if len(widened) > len(matches):
            logger.info("Variant retry widened retrieval from %d to %d chunks", len(matches), len(widened))
            return widened
        return matches

    async def _load_memories(self, side_effects: list[SideEffectResult]) -> list[AgentMemory]:
        if self._memories is None:
            return []
        try:
            return await with_timeout(
                self._memories.get_agent_memories(self._memory_min_importance),
                self._store_timeout,
                "agent_memories",
            )
        except Exception as e:
            logger.warning("Cannot load agent memories: %s", e)
            side_effects.append(SideEffectResult(name="memory_load", ok=False, error=str(e)))
            return []

    async def _backfill_sources(
        self, processed: str, scope: QueryScope, side_effects: list[SideEffectResult]
    ) -> list[SourceReference]:
        try:
            return await self._cache.peek_sources(processed, scope)
        except Exception as e:
            logger.warning("Source back-fill failed: %s", e)
            side_effects.append(SideEffectResult(name="source_backfill", ok=False, error=str(e)))
            return []

    def _count_usage(self, query_key: str) -> None:
        task = asyncio.create_task(self._learned.increment_usage(query_key))
        self._background.add(task)
        task.add_done_callback(self._on_usage_counted)

    def _on_usage_counted(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Usage increment failed: %s", error)

    async def _register_chunks(self, query_log_id: int, outcome: Generated) -> SideEffectResult:
        try:
            await with_timeout(
                self._query_logs.register_query_chunks(
                    query_log_id, list(zip(outcome.chunk_ids, outcome.chunk_scores))
                ),
                self._store_timeout,
                "register_query_chunks",
            )
        except Exception as e:
            logger.warning("Chunk registration failed for log %d: %s", query_log_id, e)
            return SideEffectResult(name="chunk_registration", ok=False, error=str(e))
        return SideEffectResult(name="chunk_registration", ok=True)
