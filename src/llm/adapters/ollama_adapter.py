# src/llm/adapters/ollama_adapter.py — v1
"""Ollama local LLM adapter implementing BaseLLMClient.

Uses the ollama Python SDK.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from ragtiers.llm.base_client import BaseLLMClient
from ragtiers.llm.models import LLMResponse, Message

logger = logging.getLogger(__name__)


class OllamaAdapter(BaseLLMClient):
    """Ollama local inference adapter."""

    def __init__(
        self, model: str = "llama3", host: str = "http://localhost:11434", **kwargs: Any,
    ):
        self._model = model
        self._host = host

    def _client(self):
        import ollama

        return ollama.AsyncClient(host=self._host)

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        msgs: list[dict[str, str]] = []
        if system:
            msgs.append({"role": "system", "content": system})
        for m in messages:
            msgs.append({"role": m.role, "content": m.content})

        t0 = time.monotonic()
        resp = await self._client().chat(
            model=self._model,
            messages=msgs,
            options={"num_predict": max_tokens, "temperature": temperature},
        )
        latency = int((time.monotonic() - t0) * 1000)

        return LLMResponse(
            content=resp["message"]["content"] or "",
            input_tokens=resp.get("prompt_eval_count", 0) or 0,
            output_tokens=resp.get("eval_count", 0) or 0,
            model=self._model,
            provider="ollama",
            latency_ms=latency,
            raw_response=resp,
        )

    async def health_check(self) -> bool:
        """Probe the local model list."""
        try:
            await self._client().list()
        except Exception as e:
            logger.warning("Ollama health check failed: %s", e)
            return False
        return True

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model
