# src/learning/reinforcement.py — v1
"""Reinforcement job: fold recent user feedback into learned responses.

Reads every feedback row in a trailing window, maps its 1-5 rating onto a
[-1, 1] quality score and upserts the rated answer under the query's
learning key. Rows are processed with bounded concurrency; a bad row is
recorded in the report and never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone

from ragtiers.core.errors import ReinforcementError
from ragtiers.core.models import FeedbackSample, ReinforcementReport, UpsertResult
from ragtiers.core.timeout import with_timeout
from ragtiers.learning.learned_store import LearnedResponseStore
from ragtiers.query.expander import learning_key
from ragtiers.storage.base_repository import FeedbackRepository

logger = logging.getLogger(__name__)

NEUTRAL_RATING = 3


def rating_to_quality_score(rating: object) -> float:
    """Map a 1-5 star rating linearly onto [-1, 1]: ``(rating - 3) / 2``.

    Raises:
        ValueError: If ``rating`` is not an integer between 1 and 5.
    """
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValueError(f"rating must be an integer, got {rating!r}")
    if not 1 <= rating <= 5:
        raise ValueError(f"rating must be between 1 and 5, got {rating}")
    return (rating - NEUTRAL_RATING) / 2


class ReinforcementJob:
    """Batch job run by an external scheduler."""

    def __init__(
        self,
        feedback: FeedbackRepository,
        store: LearnedResponseStore,
        window_hours: int = 24,
        concurrency: int = 4,
        read_timeout: float = 10.0,
    ) -> None:
        self._feedback = feedback
        self._store = store
        self._window_hours = window_hours
        self._concurrency = max(1, concurrency)
        self._read_timeout = read_timeout

    async def run(self, window_hours: int | None = None) -> ReinforcementReport:
        """Process the feedback window and report counts.

        Raises:
            ReinforcementError: Only if the feedback window cannot be read.
        """
        hours = window_hours if window_hours is not None else self._window_hours
        started = time.monotonic()
        since = datetime.now(timezone.utc) - timedelta(hours=hours)

        try:
            samples = await with_timeout(
                self._feedback.list_feedback_since(since),
                self._read_timeout,
                "feedback_window",
            )
        except Exception as e:
            logger.error("Cannot read feedback window (%dh): %s", hours, e, exc_info=True)
            raise ReinforcementError(f"Cannot read feedback window: {e}") from e

        logger.info("Reinforcement started: %d feedback rows in last %dh", len(samples), hours)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(sample: FeedbackSample) -> UpsertResult:
            async with semaphore:
                return await self._process(sample)

        results = await asyncio.gather(
            *(_bounded(s) for s in samples), return_exceptions=True
        )

        report = ReinforcementReport(window_hours=hours)
        for sample, result in zip(samples, results):
            if isinstance(result, Exception):
                message = f"feedback {sample.feedback_id}: {result}"
                logger.warning("Reinforcement row failed: %s", message)
                report.errors.append(message)
                continue
            if isinstance(result, BaseException):
                raise result
            report.processed += 1
            if result.created:
                report.created += 1
            elif result.updated:
                report.updated += 1

        report.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            "Reinforcement done: processed=%d created=%d updated=%d errors=%d",
            report.processed, report.created, report.updated, len(report.errors),
            extra={"data": report.model_dump()},
        )
        return report

    async def _process(self, sample: FeedbackSample) -> UpsertResult:
        if not sample.query or not sample.query.strip():
            raise ValueError("missing original query")
        if not sample.response or not sample.response.strip():
            raise ValueError("missing answer text")
        score = rating_to_quality_score(sample.rating)
        key = learning_key(sample.query)
        if not key:
            raise ValueError("query is empty after normalization")
        return await self._store.upsert_by_feedback(key, sample.response, score)
