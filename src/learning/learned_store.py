# src/learning/learned_store.py — v1
"""Learned response store: policy layer over LearnedResponseRepository.

Owns the usage threshold (answers below it are kept but never served) and
the score update policy applied on repeated feedback for the same key:

  overwrite  the new score replaces the stored one (default)
  ema        new = smoothing * rating_score + (1 - smoothing) * stored

The answer text is always replaced by the latest rated answer. The upsert
itself is a single atomic statement in the repository.
"""

from __future__ import annotations

import logging
from typing import Literal

from ragtiers.core.models import LearnedResponse, UpsertResult
from ragtiers.core.timeout import with_timeout
from ragtiers.storage.base_repository import LearnedResponseRepository

logger = logging.getLogger(__name__)

ScorePolicy = Literal["overwrite", "ema"]


class LearnedResponseStore:
    """Get, gate, count and reinforce learned responses."""

    def __init__(
        self,
        repository: LearnedResponseRepository,
        usage_threshold: float = 0.7,
        score_policy: ScorePolicy = "overwrite",
        smoothing: float = 0.5,
        timeout: float = 10.0,
    ) -> None:
        if score_policy not in ("overwrite", "ema"):
            raise ValueError(f"Unsupported score policy: {score_policy!r}")
        self._repository = repository
        self._usage_threshold = usage_threshold
        self._score_policy = score_policy
        self._smoothing = smoothing
        self._timeout = timeout

    @property
    def usage_threshold(self) -> float:
        return self._usage_threshold

    async def get(self, query_key: str) -> LearnedResponse | None:
        """Learned response for ``query_key`` regardless of score."""
        if not query_key:
            return None
        return await with_timeout(
            self._repository.get(query_key), self._timeout, "learned_get"
        )

    async def get_servable(self, query_key: str) -> LearnedResponse | None:
        """Learned response only if its score clears the usage threshold."""
        learned = await self.get(query_key)
        if learned is None:
            return None
        if round(learned.quality_score, 6) < self._usage_threshold:
            logger.debug(
                "Learned response below threshold: score=%.3f threshold=%.3f",
                learned.quality_score, self._usage_threshold,
            )
            return None
        return learned

    async def increment_usage(self, query_key: str) -> None:
        await with_timeout(
            self._repository.increment_usage(query_key), self._timeout, "learned_increment_usage"
        )

    async def upsert_by_feedback(
        self, query_key: str, answer: str, quality_score: float
    ) -> UpsertResult:
        """Create or reinforce the learned response for ``query_key``."""
        if not query_key:
            raise ValueError("query_key must not be empty")
        if not answer or not answer.strip():
            raise ValueError("answer must not be blank")
        if not -1.0 <= quality_score <= 1.0:
            raise ValueError(f"quality_score out of range: {quality_score}")

        smoothing = self._smoothing if self._score_policy == "ema" else None
        result = await with_timeout(
            self._repository.upsert_score(query_key, answer, quality_score, smoothing),
            self._timeout,
            "learned_upsert",
        )
        logger.debug(
            "Learned response %s: key=%r score=%.3f",
            "created" if result.created else "updated", query_key, result.quality_score,
        )
        return result
