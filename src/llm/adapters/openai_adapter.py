# src/llm/adapters/openai_adapter.py — v1
"""OpenAI chat adapter implementing BaseLLMClient.

Uses the official openai SDK. With ``base_url`` it also talks to
OpenAI-compatible local servers (LM Studio, vLLM).
"""

from __future__ import annotations

import logging
import time
from typing import Any

from ragtiers.llm.base_client import BaseLLMClient
from ragtiers.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


class OpenAIAdapter(BaseLLMClient):
    """OpenAI (or OpenAI-compatible) chat adapter."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str = "",
        base_url: str = "",
        **kwargs: Any,
    ):
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self.__client = None

    @property
    def _client(self):
        if self.__client is None:
            import openai

            kwargs: dict[str, Any] = {"api_key": self._api_key or "not-needed"}
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self.__client = openai.AsyncOpenAI(**kwargs)
        return self.__client

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for m in messages:
            oai_messages.append({"role": m.role, "content": m.content})

        t0 = time.monotonic()
        resp = await self._client.chat.completions.create(
            model=self._model,
            messages=oai_messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider="openai",
            latency_ms=latency,
            raw_response=resp,
        )

    async def health_check(self) -> bool:
        """Probe the models endpoint."""
        try:
            await self._client.models.list()
        except Exception as e:
            logger.warning("OpenAI health check failed: %s", e)
            return False
        return True

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model
