# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: provider
selection, tier thresholds, cache bounds, timeouts and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM PROVIDER ===
    llm_provider: Literal["openai", "ollama"] = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = ""  # OpenAI-compatible servers (LM Studio, vLLM)
    openai_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 2048
    simple_temperature: float = 0.7
    simple_max_tokens: int = 150

    # === EMBEDDINGS (semantic cache similarity) ===
    embedding_provider: Literal["none", "openai", "ollama"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_ollama_model: str = "nomic-embed-text"
    embedding_dimensions: int = 1536

    # === Vector index ===
    vector_db_type: Literal["chromadb"] = "chromadb"
    vector_db_path: Path = Path("~/.ragtiers/vectordb")
    vector_db_url: str = ""

    # === Semantic cache ===
    cache_backend: Literal["sqlite", "redis"] = "sqlite"
    cache_root: Path = Path("~/.ragtiers/cache")
    cache_redis_url: str = ""
    cache_similarity_threshold: float = 0.85
    cache_candidate_limit: int = 3
    cache_ttl_days: int = 30
    cache_max_entries_per_scope: int = 500
    cache_negative_rating_max: int = 2

    # === Learned responses ===
    learned_usage_threshold: float = 0.7
    learned_score_policy: Literal["overwrite", "ema"] = "overwrite"
    learned_score_smoothing: float = 0.5

    # === Retrieval ===
    retrieval_top_k: int = 5
    memory_min_importance: float = 0.7
    preview_length: int = 150

    # === Reinforcement job ===
    reinforcement_window_hours: int = 24
    reinforcement_concurrency: int = 4

    # === Timeouts (seconds) ===
    timeout_llm: float = 60.0
    timeout_health: float = 5.0
    timeout_vector_query: float = 15.0
    timeout_embedding: float = 30.0
    timeout_store: float = 10.0

    # === Relational storage ===
    database_path: Path = Path("~/.ragtiers/ragtiers.db")

    # === Access ===
    admin_roles: str = "admin,ceo"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("cache_similarity_threshold", "memory_min_importance")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("value must be within [0, 1]")
        return v

    @field_validator("learned_usage_threshold")
    @classmethod
    def validate_quality_threshold(cls, v: float) -> float:
        if not -1.0 <= v <= 1.0:
            raise ValueError("learned_usage_threshold must be within [-1, 1]")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if self.retrieval_top_k < 1:
            errors.append("RETRIEVAL_TOP_K must be >= 1")

        if not 0.0 < self.learned_score_smoothing <= 1.0:
            errors.append("LEARNED_SCORE_SMOOTHING must be in (0, 1]")

        if self.cache_candidate_limit < 1:
            errors.append("CACHE_CANDIDATE_LIMIT must be >= 1")

        if self.reinforcement_concurrency < 1:
            errors.append("REINFORCEMENT_CONCURRENCY must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def admin_roles_list(self) -> list[str]:
        """Parse comma-separated admin roles."""
        return [r.strip() for r in self.admin_roles.split(",") if r.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-deployment config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
