# src/llm/base_client.py — v1
"""Abstract LLM client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ragtiers.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Text completion."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight availability check; never raises."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (openai, ollama)."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""
