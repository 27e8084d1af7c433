# src/api/facade.py — v1
"""Public API facade: resolve queries, record feedback, run the learning batch.

Usage:
    services = build_services(load_settings())
    response = await resolve_query(identity, payload, services.dispatcher)

Errors are converted into response objects here. Validation and
authorization errors keep their message; an unavailable provider gets a
"try again later" message; every other failure gets a generic message and
the details go to the log only.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from ragtiers.api.access import UserIdentity, effective_user_id, ensure_can_query
from ragtiers.api.models import (
    FeedbackRequest,
    FeedbackResponse,
    ResolveRequest,
    ResolveResponse,
)
from ragtiers.cache.cache_factory import create_semantic_cache
from ragtiers.cache.semantic_cache import SemanticCache
from ragtiers.config.settings import Settings, load_settings
from ragtiers.core.errors import (
    GENERIC_INTERNAL_MESSAGE,
    UNAVAILABLE_MESSAGE,
    FeedbackError,
    QueryValidationError,
    RagTiersError,
)
from ragtiers.core.models import Feedback, QueryScope, ReinforcementReport
from ragtiers.core.timeout import with_timeout
from ragtiers.learning.learned_store import LearnedResponseStore
from ragtiers.learning.reinforcement import ReinforcementJob
from ragtiers.llm.client_factory import create_llm_client
from ragtiers.llm.generator import AnswerGenerator
from ragtiers.logging.context import clear_context, set_request_context
from ragtiers.logging.logger import setup_logging_from_settings
from ragtiers.pipeline.dispatcher import DispatchRequest, TieredDispatcher
from ragtiers.rag.embeddings.embedder_factory import create_embedder
from ragtiers.rag.vector_store.vector_store_factory import create_vector_store
from ragtiers.storage.sqlite_repository import SqliteRepository

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLES: tuple[str, ...] = ("admin", "ceo")

M = TypeVar("M", bound=BaseModel)


@dataclass
class Services:
    """Every backend wired from settings."""

    settings: Settings
    repository: SqliteRepository
    cache: SemanticCache
    learned: LearnedResponseStore
    generator: AnswerGenerator
    dispatcher: TieredDispatcher
    reinforcement: ReinforcementJob


def build_services(
    settings: Settings | None = None, configure_logging: bool = False
) -> Services:
    """Instantiate repositories, cache, provider clients and the dispatcher.

    With ``configure_logging`` the ragtiers logger is set up from the
    logging section of ``settings`` (hosts that do not configure it).
    """
    settings = settings or load_settings()
    if configure_logging:
        setup_logging_from_settings(settings)

    repository = SqliteRepository(settings.database_path)
    cache = create_semantic_cache(
        settings, embedder=create_embedder(settings), feedback=repository
    )
    learned = LearnedResponseStore(
        repository,
        usage_threshold=settings.learned_usage_threshold,
        score_policy=settings.learned_score_policy,
        smoothing=settings.learned_score_smoothing,
        timeout=settings.timeout_store,
    )
    generator = AnswerGenerator(
        create_llm_client(settings),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        simple_temperature=settings.simple_temperature,
        simple_max_tokens=settings.simple_max_tokens,
        timeout=settings.timeout_llm,
        health_timeout=settings.timeout_health,
    )
    dispatcher = TieredDispatcher(
        generator=generator,
        cache=cache,
        learned=learned,
        vector_store=create_vector_store(settings),
        query_logs=repository,
        config=repository,
        memories=repository,
        chunk_stats=repository,
        default_top_k=settings.retrieval_top_k,
        memory_min_importance=settings.memory_min_importance,
        preview_length=settings.preview_length,
        vector_timeout=settings.timeout_vector_query,
        store_timeout=settings.timeout_store,
    )
    reinforcement = ReinforcementJob(
        repository,
        learned,
        window_hours=settings.reinforcement_window_hours,
        concurrency=settings.reinforcement_concurrency,
        read_timeout=settings.timeout_store,
    )
    logger.debug(
        "Services built: llm=%s cache=%s embeddings=%s",
        settings.llm_provider, settings.cache_backend, settings.embedding_provider,
    )
    return Services(
        settings=settings,
        repository=repository,
        cache=cache,
        learned=learned,
        generator=generator,
        dispatcher=dispatcher,
        reinforcement=reinforcement,
    )


async def resolve_query(
    identity: UserIdentity,
    request: ResolveRequest | Mapping[str, Any],
    dispatcher: TieredDispatcher,
    admin_roles: Iterable[str] = DEFAULT_ADMIN_ROLES,
    request_id: str | None = None,
) -> ResolveResponse:
    """Validate, authorize and resolve one query."""
    try:
        req = _parse(ResolveRequest, request, QueryValidationError)
        scope = QueryScope(
            zone=req.zone, development=req.development, content_type=req.content_type
        )
        user_id = effective_user_id(identity, req.on_behalf_of_user_id, admin_roles)
        set_request_context(request_id or uuid.uuid4().hex, user_id, scope.zone, scope.development)
        ensure_can_query(identity, scope, admin_roles)

        resolution = await dispatcher.resolve(
            DispatchRequest(
                user_id=user_id,
                query=req.query,
                scope=scope,
                force_regenerate=req.force_regenerate,
            )
        )
    except RagTiersError as e:
        return ResolveResponse(success=False, **_error_fields(e))
    except Exception:
        logger.error("Unhandled error resolving query", exc_info=True)
        return ResolveResponse(
            success=False, error=GENERIC_INTERNAL_MESSAGE, error_class="internal"
        )
    finally:
        clear_context()

    return ResolveResponse(
        success=True,
        answer=resolution.answer,
        sources=resolution.sources,
        query_log_id=resolution.query_log_id,
        tier=resolution.tier,
        from_cache=resolution.from_cache,
        response_time_ms=resolution.latency_ms,
    )


async def submit_feedback(
    identity: UserIdentity,
    request: FeedbackRequest | Mapping[str, Any],
    repository: SqliteRepository,
    timeout: float = 10.0,
) -> FeedbackResponse:
    """Store a rating and update success/failure stats of the chunks it covers."""
    try:
        req = _parse(FeedbackRequest, request, FeedbackError)
        log = await with_timeout(
            repository.get_query_log(req.query_log_id), timeout, "query_log_get"
        )
        if log is None:
            raise FeedbackError(f"Query log {req.query_log_id} not found")
        feedback_id = await with_timeout(
            repository.save_feedback(
                Feedback(query_log_id=req.query_log_id, rating=req.rating, comment=req.comment)
            ),
            timeout,
            "feedback_save",
        )
    except RagTiersError as e:
        return FeedbackResponse(success=False, **_error_fields(e))
    except Exception:
        logger.error("Unhandled error saving feedback", exc_info=True)
        return FeedbackResponse(
            success=False, error=GENERIC_INTERNAL_MESSAGE, error_class="internal"
        )

    chunks_updated = 0
    try:
        chunks_updated = await with_timeout(
            repository.update_chunk_stats(req.query_log_id, req.rating),
            timeout,
            "chunk_stats_update",
        )
    except Exception as e:
        logger.warning("Chunk stats update failed for log %d: %s", req.query_log_id, e)

    logger.info(
        "Feedback saved: id=%d log=%d rating=%d by=%s",
        feedback_id, req.query_log_id, req.rating, identity.user_id,
    )
    return FeedbackResponse(
        success=True, feedback_id=feedback_id, chunks_updated=chunks_updated
    )


async def run_reinforcement(
    job: ReinforcementJob, window_hours: int | None = None
) -> ReinforcementReport:
    """Run the reinforcement batch.

    Raises:
        ReinforcementError: If the feedback window cannot be read.
    """
    return await job.run(window_hours)


async def purge_cache(cache: SemanticCache) -> int:
    """Delete expired semantic cache entries."""
    return await cache.purge_expired()


def _parse(
    model: type[M], payload: M | Mapping[str, Any], error_cls: type[RagTiersError]
) -> M:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise error_cls(_validation_message(e)) from e


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    message = str(first.get("msg", "invalid value")).removeprefix("Value error, ")
    return f"{field}: {message}" if field else message


def _error_fields(error: RagTiersError) -> dict[str, Any]:
    error_class = error.error_class
    if error_class in ("validation", "authorization"):
        message = str(error)
    elif error_class == "unavailable":
        message = UNAVAILABLE_MESSAGE
    else:
        logger.error("Query failed: %s", error, exc_info=error)
        message = GENERIC_INTERNAL_MESSAGE
    return {"error": message, "error_class": error_class}
