# src/rag/embeddings/embedder_factory.py — v1
"""Factory: instantiate embedding provider from configuration.

``EMBEDDING_PROVIDER=none`` disables embeddings; the semantic cache then
matches exact slots only.
"""

from __future__ import annotations

import importlib
import logging

from ragtiers.config.settings import Settings
from ragtiers.rag.embeddings.base_embedder import BaseEmbedder

logger = logging.getLogger(__name__)

_PROVIDER_REGISTRY: dict[str, str] = {
    "openai": "ragtiers.rag.embeddings.openai_embedder.OpenAIEmbedder",
    "ollama": "ragtiers.rag.embeddings.ollama_embedder.OllamaEmbedder",
}


class UnsupportedEmbeddingProviderError(ValueError):
    """Raised when an embedding provider is not registered."""


def create_embedder(settings: Settings) -> BaseEmbedder | None:
    """Instantiate the configured embedding provider, or None when disabled."""
    provider = settings.embedding_provider
    if provider == "none":
        logger.info("Embeddings disabled; semantic cache uses exact matches only")
        return None
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedEmbeddingProviderError(
            f"Unsupported embedding provider: {provider!r}. "
            f"Available: none, {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    cls = _import_class(_PROVIDER_REGISTRY[provider])
    kwargs: dict = {"dimensions": settings.embedding_dimensions}
    if provider == "openai":
        kwargs["model"] = settings.embedding_model
        kwargs["api_key"] = settings.openai_api_key
    elif provider == "ollama":
        kwargs["model"] = settings.embedding_ollama_model
        kwargs["base_url"] = settings.ollama_base_url

    logger.debug("Creating embedder: provider=%s", provider)
    return cls(**kwargs)


def register_embedding_provider(name: str, class_path: str) -> None:
    """Register a custom embedding provider."""
    _PROVIDER_REGISTRY[name] = class_path


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
