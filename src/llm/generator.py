# src/llm/generator.py — v1
"""Answer generation on top of a BaseLLMClient.

Two entry points: a no-context answer for trivial queries and a
retrieval-grounded answer. Provider calls are retried with backoff
(``with_retry``) and bounded by a timeout per attempt.
"""

from __future__ import annotations

import logging

from ragtiers.core.models import AgentMemory
from ragtiers.core.timeout import with_timeout
from ragtiers.llm.base_client import BaseLLMClient
from ragtiers.llm.models import LLMResponse, Message
from ragtiers.llm.prompts import (
    NO_CONTEXT_RESPONSE,
    SIMPLE_SYSTEM_PROMPT,
    build_rag_user_message,
    build_system_prompt,
)
from ragtiers.llm.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)


class AnswerGenerator:
    """Generate user-facing answers through the configured provider."""

    def __init__(
        self,
        client: BaseLLMClient,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        simple_temperature: float = 0.7,
        simple_max_tokens: int = 150,
        timeout: float = 60.0,
        health_timeout: float = 5.0,
        retry_configs: dict[str, RetryConfig] | None = None,
    ) -> None:
        self._client = client
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._simple_temperature = simple_temperature
        self._simple_max_tokens = simple_max_tokens
        self._timeout = timeout
        self._health_timeout = health_timeout
        self._retry_configs = retry_configs

    @property
    def client(self) -> BaseLLMClient:
        return self._client

    async def is_available(self) -> bool:
        """Provider health check, bounded by the health timeout."""
        try:
            return await with_timeout(
                self._client.health_check(), self._health_timeout, "llm_health"
            )
        except Exception as e:
            logger.warning("LLM health check error: %s", e)
            return False

    async def answer_simple(self, query: str) -> str:
        """Friendly answer with no retrieval context."""
        response = await self._complete(
            [Message(role="user", content=query)],
            system=SIMPLE_SYSTEM_PROMPT,
            max_tokens=self._simple_max_tokens,
            temperature=self._simple_temperature,
            operation="llm_simple",
        )
        return response.content

    async def answer_with_context(
        self,
        query: str,
        context: str,
        content_type: str | None = None,
        memories: list[AgentMemory] | None = None,
    ) -> str:
        """Answer ``query`` grounded in ``context``.

        An empty context short-circuits to the fixed no-context answer
        without calling the provider.
        """
        if not context or not context.strip():
            logger.info("No retrieval context; returning fixed no-context answer")
            return NO_CONTEXT_RESPONSE

        response = await self._complete(
            [Message(role="user", content=build_rag_user_message(query, context))],
            system=build_system_prompt(content_type, memories),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            operation="llm_rag",
        )
        return response.content

    async def _complete(
        self,
        messages: list[Message],
        system: str,
        max_tokens: int,
        temperature: float,
        operation: str,
    ) -> LLMResponse:
        async def _attempt() -> LLMResponse:
            return await with_timeout(
                self._client.complete(
                    messages, system=system, max_tokens=max_tokens, temperature=temperature
                ),
                self._timeout,
                operation,
            )

        response: LLMResponse = await with_retry(
            _attempt, operation=operation, retry_configs=self._retry_configs
        )
        logger.debug(
            "%s: %d in / %d out tokens, %dms",
            operation, response.input_tokens, response.output_tokens, response.latency_ms,
        )
        return response
