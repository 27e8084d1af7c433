# src/logging/context.py — v1
"""Contextual logging support: attach request_id, user, scope and tier to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set once per resolution.
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_user_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "user_id", default=None
)
_zone: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "zone", default=None
)
_development: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "development", default=None
)
_tier: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tier", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    user_id: str | None = None
    zone: str | None = None
    development: str | None = None
    tier: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        user_id=_user_id.get(),
        zone=_zone.get(),
        development=_development.get(),
        tier=_tier.get(),
    )


def set_request_context(
    request_id: str, user_id: str, zone: str, development: str
) -> None:
    """Set request-level context (called once per query resolution)."""
    _request_id.set(request_id)
    _user_id.set(user_id)
    _zone.set(zone)
    _development.set(development)
    _tier.set(None)


def set_tier_context(tier: str) -> None:
    """Record which resolution tier is answering."""
    _tier.set(tier)


def clear_context() -> None:
    """Reset all context variables."""
    _request_id.set(None)
    _user_id.set(None)
    _zone.set(None)
    _development.set(None)
    _tier.set(None)
