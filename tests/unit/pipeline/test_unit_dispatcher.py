# tests/unit/pipeline/test_unit_dispatcher.py — v1
"""Tests for pipeline/dispatcher.py — tier order and side-effect handling."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from ragtiers.cache.fingerprint import slot_key
from ragtiers.cache.semantic_cache import SemanticCache
from ragtiers.core.errors import EmptyAnswerError, UpstreamUnavailableError
from ragtiers.core.models import (
    AgentMemory,
    ChunkStats,
    Feedback,
    LearnedResponse,
    SideEffectResult,
    SourceReference,
)
from ragtiers.learning.learned_store import LearnedResponseStore
from ragtiers.llm.prompts import NO_CONTEXT_RESPONSE
from ragtiers.pipeline.dispatcher import DispatchRequest
from ragtiers.query.expander import generate_variants, learning_key, process_query
from ragtiers.rag.models import ChunkMatch

QUERY = "precio del lote en Fuego"
PROCESSED = "precio del lote en fuego lista precios costo valor lotes"


def _request(scope, query: str = QUERY, force: bool = False) -> DispatchRequest:
    return DispatchRequest(user_id="u1", query=query, scope=scope, force_regenerate=force)


def _effects(resolution) -> dict[str, SideEffectResult]:
    return {e.name: e for e in resolution.side_effects}


class TestSimpleTier:
    @pytest.mark.asyncio
    async def test_simple_query_skips_cache_and_retrieval(self, make_dispatcher, mock_llm, vector_store, repository, scope):
        cache = MagicMock()
        cache.find = AsyncMock()
        cache.save = AsyncMock()
        mock_llm.set_responses("¡Hola! ¿En qué puedo ayudarte?")
        dispatcher = make_dispatcher(cache=cache)

        resolution = await dispatcher.resolve(_request(scope, "Hola!"))

        assert resolution.tier == "simple"
        assert resolution.answer == "¡Hola! ¿En qué puedo ayudarte?"
        assert resolution.sources == []
        assert not resolution.from_cache
        cache.find.assert_not_awaited()
        cache.save.assert_not_awaited()
        assert vector_store.queries == []
        assert mock_llm.calls[0]["temperature"] == 0.7
        assert mock_llm.calls[0]["max_tokens"] == 150

        log = await repository.get_query_log(resolution.query_log_id)
        assert log.tier == "simple"
        assert log.cache_slot is None
        assert log.query == "Hola!"


class TestGeneratedTier:
    @pytest.mark.asyncio
    async def test_generation_retrieves_and_caches(self, make_dispatcher, mock_llm, vector_store, repository, cache_store, scope):
        mock_llm.set_responses("El lote 12 cuesta $1,850,000 [1]")
        dispatcher = make_dispatcher()

        resolution = await dispatcher.resolve(_request(scope))

        assert resolution.tier == "generated"
        assert not resolution.from_cache
        assert [s.filename for s in resolution.sources] == [
            "lista_precios_fuego.pdf", "brochure_fuego.pdf", "reglamento_fuego.pdf",
        ]
        assert vector_store.queries == [{
            "namespace": "quintana_roo",
            "query_text": PROCESSED,
            "top_k": 10,
            "filter": {"development": "fuego"},
        }]
        user_turn = mock_llm.calls[0]["messages"][0].content
        assert user_turn.startswith(f"Pregunta: {QUERY}")
        assert "[Fuente 1: lista_precios_fuego.pdf, Página 3]" in user_turn

        effects = _effects(resolution)
        assert effects["cache_write"].ok and not effects["cache_write"].skipped
        assert effects["chunk_registration"].ok
        assert await cache_store.count(scope) == 1

        log = await repository.get_query_log(resolution.query_log_id)
        assert log.tier == "generated"
        assert log.cache_slot == slot_key(PROCESSED, scope)
        assert log.sources_used == [
            "lista_precios_fuego.pdf", "brochure_fuego.pdf", "reglamento_fuego.pdf",
        ]
        assert await repository.get_query_chunks(resolution.query_log_id) == [
            "fuego-precios-p3-c0", "fuego-brochure-p1-c2", "fuego-reglamento-p7-c1",
        ]

    @pytest.mark.asyncio
    async def test_content_type_scopes_retrieval(self, make_dispatcher, vector_store, scope):
        typed = scope.model_copy(update={"content_type": "price"})
        await make_dispatcher().resolve(_request(typed))
        assert vector_store.queries[0]["filter"] == {"development": "fuego", "type": "price"}

    @pytest.mark.asyncio
    async def test_no_matches_returns_fixed_answer_without_caching(self, make_dispatcher, mock_llm, vector_store, cache_store, scope):
        vector_store.matches = []
        resolution = await make_dispatcher().resolve(_request(scope))

        assert resolution.answer == NO_CONTEXT_RESPONSE
        assert resolution.sources == []
        assert mock_llm.calls == []
        assert _effects(resolution)["cache_write"].skipped
        assert await cache_store.count() == 0

    @pytest.mark.asyncio
    async def test_top_k_from_dynamic_config(self, make_dispatcher, vector_store, repository, scope):
        await repository.set_config("top_k", 1)
        resolution = await make_dispatcher().resolve(_request(scope))
        assert vector_store.queries[0]["top_k"] == 2
        assert len(resolution.sources) == 1

    @pytest.mark.asyncio
    async def test_invalid_top_k_config_uses_default(self, make_dispatcher, vector_store, repository, scope):
        await repository.set_config("top_k", "muchos")
        await make_dispatcher().resolve(_request(scope))
        assert vector_store.queries[0]["top_k"] == 10

    @pytest.mark.asyncio
    async def test_memories_injected_in_prompt(self, make_dispatcher, mock_llm, repository, scope):
        await repository.upsert_agent_memory(
            AgentMemory(topic="precios", summary="Se actualizan cada mes", importance=0.9)
        )
        await make_dispatcher().resolve(_request(scope))
        assert "Se actualizan cada mes" in mock_llm.calls[0]["system"]

    @pytest.mark.asyncio
    async def test_memory_failure_is_best_effort(self, make_dispatcher, scope):
        memories = MagicMock()
        memories.get_agent_memories = AsyncMock(side_effect=RuntimeError("table missing"))
        resolution = await make_dispatcher(memories=memories).resolve(_request(scope))
        assert resolution.tier == "generated"
        assert not _effects(resolution)["memory_load"].ok

    @pytest.mark.asyncio
    async def test_retrieval_error_propagates(self, make_dispatcher, vector_store, repository, scope):
        vector_store.error = RuntimeError("index offline")
        with pytest.raises(RuntimeError, match="index offline"):
            await make_dispatcher().resolve(_request(scope))
        assert await repository.get_query_log(1) is None


def _chunk(chunk_id: str, score: float) -> ChunkMatch:
    return ChunkMatch(id=chunk_id, score=score, text=f"texto {chunk_id}", filename=f"{chunk_id}.pdf", page=1)


class TestFeedbackReranking:
    @pytest.mark.asyncio
    async def test_well_rated_chunk_moves_up(self, make_dispatcher, vector_store, scope):
        vector_store.matches = [_chunk("mal", 0.80), _chunk("nuevo", 0.70), _chunk("bien", 0.75)]
        chunk_stats = MagicMock()
        chunk_stats.get_chunk_stats_many = AsyncMock(return_value={
            "mal": ChunkStats(chunk_id="mal", fail_count=4),
            "bien": ChunkStats(chunk_id="bien", success_count=3),
        })

        resolution = await make_dispatcher(chunk_stats=chunk_stats).resolve(_request(scope))

        # bien 0.80, nuevo 0.66 (neutral), mal 0.64
        assert [s.filename for s in resolution.sources] == ["bien.pdf", "nuevo.pdf", "mal.pdf"]
        assert resolution.sources[0].relevance_score == pytest.approx(0.80)
        chunk_stats.get_chunk_stats_many.assert_awaited_once_with(["mal", "nuevo", "bien"])

    @pytest.mark.asyncio
    async def test_overfetch_trimmed_to_top_k(self, make_dispatcher, vector_store, repository, scope):
        await repository.set_config("top_k", 2)
        vector_store.matches = [_chunk(f"c{i}", 0.9 - i * 0.05) for i in range(6)]

        resolution = await make_dispatcher().resolve(_request(scope))

        assert vector_store.queries[0]["top_k"] == 4
        assert [s.filename for s in resolution.sources] == ["c0.pdf", "c1.pdf"]

    @pytest.mark.asyncio
    async def test_stats_failure_keeps_similarity_order(self, make_dispatcher, vector_store, scope):
        vector_store.matches = [_chunk("b", 0.70), _chunk("a", 0.90), _chunk("c", 0.60)]
        chunk_stats = MagicMock()
        chunk_stats.get_chunk_stats_many = AsyncMock(side_effect=RuntimeError("table locked"))

        resolution = await make_dispatcher(chunk_stats=chunk_stats).resolve(_request(scope))

        assert resolution.tier == "generated"
        assert [s.filename for s in resolution.sources] == ["a.pdf", "b.pdf", "c.pdf"]
        assert resolution.sources[0].relevance_score == 0.90
        assert not _effects(resolution)["chunk_rerank"].ok


class TestVariantRetry:
    @pytest.mark.asyncio
    async def test_thin_search_widened_with_variants(self, make_dispatcher, vector_store, repository, scope):
        variants = generate_variants(PROCESSED)[1:4]
        vector_store.matches = [_chunk("debil", 0.55)]
        vector_store.by_text[variants[0]] = [_chunk("extra", 0.70), _chunk("debil", 0.55)]

        resolution = await make_dispatcher().resolve(_request(scope))

        assert [q["query_text"] for q in vector_store.queries[1:]] == variants
        assert all(q["top_k"] == 3 for q in vector_store.queries[1:])
        assert [s.filename for s in resolution.sources] == ["extra.pdf", "debil.pdf"]
        assert await repository.get_query_chunks(resolution.query_log_id) == ["extra", "debil"]

    @pytest.mark.asyncio
    async def test_failed_variant_queries_keep_first_results(self, make_dispatcher, vector_store, scope):
        variants = generate_variants(PROCESSED)[1:4]
        vector_store.matches = [_chunk("debil", 0.55)]
        vector_store.failing_texts = set(variants)

        resolution = await make_dispatcher().resolve(_request(scope))

        assert resolution.tier == "generated"
        assert [s.filename for s in resolution.sources] == ["debil.pdf"]
        failures = [e for e in resolution.side_effects if e.name == "variant_retrieval"]
        assert len(failures) == len(variants)
        assert not any(e.ok for e in failures)

    @pytest.mark.asyncio
    async def test_no_retry_when_enough_relevant_matches(self, make_dispatcher, vector_store, scope):
        await make_dispatcher().resolve(_request(scope))
        assert len(vector_store.queries) == 1


class TestCacheTier:
    @pytest.mark.asyncio
    async def test_repeat_query_served_from_cache(self, make_dispatcher, mock_llm, vector_store, repository, scope):
        dispatcher = make_dispatcher()
        first = await dispatcher.resolve(_request(scope))
        second = await dispatcher.resolve(_request(scope, "  PRECIO del lote en fuego?"))

        assert second.tier == "cache"
        assert second.from_cache
        assert second.outcome.similarity == 1.0
        assert second.answer == first.answer
        assert second.sources == first.sources
        assert len(mock_llm.calls) == 1
        assert len(vector_store.queries) == 1
        assert mock_llm.health_checks == 2

        log = await repository.get_query_log(second.query_log_id)
        assert log.tier == "cache"
        assert log.cache_slot == first.outcome.slot_key

    @pytest.mark.asyncio
    async def test_other_scope_misses(self, make_dispatcher, vector_store, scope, other_scope):
        dispatcher = make_dispatcher()
        await dispatcher.resolve(_request(scope))
        resolution = await dispatcher.resolve(_request(other_scope))
        assert resolution.tier == "generated"
        assert len(vector_store.queries) == 2

    @pytest.mark.asyncio
    async def test_force_regenerate_bypasses_cache(self, make_dispatcher, mock_llm, vector_store, scope):
        dispatcher = make_dispatcher()
        await dispatcher.resolve(_request(scope))
        mock_llm.set_responses("Respuesta regenerada [1]")
        resolution = await dispatcher.resolve(_request(scope, force=True))

        assert resolution.tier == "generated"
        assert resolution.answer == "Respuesta regenerada [1]"
        assert len(vector_store.queries) == 2

    @pytest.mark.asyncio
    async def test_cache_lookup_failure_is_a_miss(self, make_dispatcher, scope):
        cache = MagicMock()
        cache.find = AsyncMock(side_effect=RuntimeError("redis down"))
        cache.save = AsyncMock(return_value=SideEffectResult(name="cache_write", ok=True))
        resolution = await make_dispatcher(cache=cache).resolve(_request(scope))

        assert resolution.tier == "generated"
        assert not _effects(resolution)["cache_lookup"].ok

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_request(self, make_dispatcher, scope):
        store = MagicMock()
        store.get = AsyncMock(return_value=None)
        store.put = AsyncMock(side_effect=RuntimeError("disk full"))
        resolution = await make_dispatcher(cache=SemanticCache(store)).resolve(_request(scope))

        assert resolution.tier == "generated"
        effect = _effects(resolution)["cache_write"]
        assert not effect.ok
        assert "disk full" in effect.error

    @pytest.mark.asyncio
    async def test_negatively_rated_slot_not_rewritten(self, make_dispatcher, repository, cache_store, scope):
        dispatcher = make_dispatcher()
        first = await dispatcher.resolve(_request(scope))
        await repository.save_feedback(Feedback(query_log_id=first.query_log_id, rating=1))

        regenerated = await dispatcher.resolve(_request(scope, force=True))
        assert _effects(regenerated)["cache_write"].skipped
        assert await cache_store.count(scope) == 1


class TestLearnedTier:
    @pytest.mark.asyncio
    async def test_learned_hit_counts_usage(self, make_dispatcher, mock_llm, vector_store, repository, scope):
        key = learning_key(QUERY)
        await repository.upsert_score(key, "Respuesta aprendida [1]", 1.0)
        dispatcher = make_dispatcher()

        resolution = await dispatcher.resolve(_request(scope))
        await dispatcher.drain()

        assert resolution.tier == "learned"
        assert resolution.answer == "Respuesta aprendida [1]"
        assert resolution.outcome.quality_score == 1.0
        assert resolution.sources == []
        assert not resolution.from_cache
        assert mock_llm.calls == []
        assert vector_store.queries == []
        assert (await repository.get(key)).usage_count == 1

        log = await repository.get_query_log(resolution.query_log_id)
        assert log.tier == "learned"
        assert log.cache_slot is None

    @pytest.mark.asyncio
    async def test_below_threshold_falls_through(self, make_dispatcher, repository, scope):
        await repository.upsert_score(learning_key(QUERY), "Respuesta floja", 0.5)
        resolution = await make_dispatcher().resolve(_request(scope))
        assert resolution.tier == "generated"

    @pytest.mark.asyncio
    async def test_cache_checked_before_learned(self, make_dispatcher, repository, scope):
        dispatcher = make_dispatcher()
        await dispatcher.resolve(_request(scope))
        await repository.upsert_score(learning_key(QUERY), "Respuesta aprendida", 1.0)
        assert (await dispatcher.resolve(_request(scope))).tier == "cache"

    @pytest.mark.asyncio
    async def test_force_regenerate_bypasses_learned(self, make_dispatcher, repository, scope):
        await repository.upsert_score(learning_key(QUERY), "Respuesta aprendida", 1.0)
        resolution = await make_dispatcher().resolve(_request(scope, force=True))
        assert resolution.tier == "generated"

    @pytest.mark.asyncio
    async def test_unrelated_cached_question_is_not_cited(
        self, make_dispatcher, repository, cache_store, embedder_cls, sample_matches, scope
    ):
        other = process_query("amenidades del club de playa en Fuego")
        embedder = embedder_cls(vectors={other: [1.0, 0.0], PROCESSED: [0.38, 0.925]})
        cache = SemanticCache(cache_store, embedder=embedder)
        await cache.save(
            other, scope, "El club de playa abre todo el año.",
            [SourceReference(filename=m.filename, page=m.page) for m in sample_matches],
        )
        await repository.upsert_score(learning_key(QUERY), "Respuesta aprendida", 1.0)
        dispatcher = make_dispatcher(cache=cache)

        resolution = await dispatcher.resolve(_request(scope))
        await dispatcher.drain()

        assert resolution.tier == "learned"
        assert resolution.sources == []
        assert await cache_store.count(scope) == 1
        assert await cache_store.hit_count(slot_key(other, scope)) == 0

    @pytest.mark.asyncio
    async def test_sources_backfilled_from_exact_slot(self, make_dispatcher, scope):
        cache = MagicMock()
        cache.find = AsyncMock(side_effect=RuntimeError("cache timeout"))
        cache.peek_sources = AsyncMock(
            return_value=[SourceReference(filename="lista_precios_fuego.pdf", page=3)]
        )
        learned = MagicMock()
        learned.get_servable = AsyncMock(return_value=LearnedResponse(
            query_key="k", answer="Respuesta aprendida", quality_score=0.8,
        ))
        learned.increment_usage = AsyncMock()
        dispatcher = make_dispatcher(cache=cache, learned=learned)

        resolution = await dispatcher.resolve(_request(scope))
        await dispatcher.drain()

        assert resolution.tier == "learned"
        assert [s.filename for s in resolution.sources] == ["lista_precios_fuego.pdf"]
        cache.peek_sources.assert_awaited_once_with(PROCESSED, scope)
        assert _effects(resolution)["cache_lookup"].ok is False
        learned.increment_usage.assert_awaited_once_with(learning_key(QUERY))

    @pytest.mark.asyncio
    async def test_usage_increment_failure_is_swallowed_and_logged(self, make_dispatcher, scope, caplog):
        learned = MagicMock()
        learned.get_servable = AsyncMock(return_value=LearnedResponse(
            query_key="k", answer="Respuesta aprendida", quality_score=0.9,
        ))
        learned.increment_usage = AsyncMock(side_effect=RuntimeError("locked"))
        dispatcher = make_dispatcher(learned=learned)

        resolution = await dispatcher.resolve(_request(scope))
        await dispatcher.drain()

        assert resolution.tier == "learned"
        assert "Usage increment failed" in caplog.text

    @pytest.mark.asyncio
    async def test_learned_lookup_failure_is_a_miss(self, make_dispatcher, scope):
        learned = MagicMock()
        learned.get_servable = AsyncMock(side_effect=RuntimeError("db locked"))
        resolution = await make_dispatcher(learned=learned).resolve(_request(scope))
        assert resolution.tier == "generated"
        assert not _effects(resolution)["learned_lookup"].ok

    def test_learning_key_matches_processed_query(self):
        assert process_query(QUERY) == PROCESSED
        assert learning_key(QUERY) == PROCESSED


class TestFailures:
    @pytest.mark.asyncio
    async def test_unhealthy_provider_rejected_before_any_tier(self, make_dispatcher, mock_llm, vector_store, repository, scope):
        mock_llm.healthy = False
        with pytest.raises(UpstreamUnavailableError):
            await make_dispatcher().resolve(_request(scope, "Hola!"))
        assert mock_llm.calls == []
        assert vector_store.queries == []
        assert await repository.get_query_log(1) is None

    @pytest.mark.asyncio
    async def test_blank_generated_answer(self, make_dispatcher, mock_llm, cache_store, repository, scope):
        mock_llm.set_responses("   ")
        with pytest.raises(EmptyAnswerError) as exc_info:
            await make_dispatcher().resolve(_request(scope))
        assert exc_info.value.tier == "generated"
        assert await cache_store.count() == 0
        assert await repository.get_query_log(1) is None

    @pytest.mark.asyncio
    async def test_blank_simple_answer(self, make_dispatcher, mock_llm, scope):
        mock_llm.set_responses("")
        with pytest.raises(EmptyAnswerError) as exc_info:
            await make_dispatcher().resolve(_request(scope, "Hola!"))
        assert exc_info.value.tier == "simple"

    @pytest.mark.asyncio
    async def test_chunk_registration_failure_is_best_effort(self, make_dispatcher, repository, scope):
        query_logs = MagicMock()
        query_logs.save_query_log = AsyncMock(return_value=41)
        query_logs.register_query_chunks = AsyncMock(side_effect=RuntimeError("fk"))
        resolution = await make_dispatcher(query_logs=query_logs).resolve(_request(scope))
        assert resolution.query_log_id == 41
        assert not _effects(resolution)["chunk_registration"].ok
