# src/rag/vector_store/vector_store_factory.py — v1
"""Factory: instantiate vector store from configuration."""

from __future__ import annotations

import logging

from ragtiers.config.settings import Settings
from ragtiers.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


class UnsupportedVectorStoreError(ValueError):
    """Raised when a vector store type is not supported."""


def parse_host_port(url: str, default_port: int = 8000) -> tuple[str, int]:
    """Split ``http://host:port`` (scheme optional) into host and port."""
    netloc = url.split("://", 1)[-1].split("/", 1)[0]
    if ":" in netloc:
        host, port = netloc.rsplit(":", 1)
        return host, int(port)
    return netloc, default_port


def create_vector_store(settings: Settings) -> BaseVectorStore:
    """Instantiate the configured vector store.

    Raises:
        UnsupportedVectorStoreError: If type is not supported.
    """
    db_type = settings.vector_db_type

    if db_type == "chromadb":
        from ragtiers.rag.vector_store.chromadb_store import ChromaDBStore
        if settings.vector_db_url:
            host, port = parse_host_port(settings.vector_db_url)
            logger.debug("Using remote ChromaDB at %s:%d", host, port)
            return ChromaDBStore(host=host, port=port)
        return ChromaDBStore(persist_path=settings.vector_db_path)

    raise UnsupportedVectorStoreError(
        f"Unsupported vector store type: {db_type!r}. Available: chromadb"
    )
