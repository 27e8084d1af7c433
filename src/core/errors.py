# src/core/errors.py — v1
"""Error taxonomy for query resolution and the learning loop.

Each error carries an ``error_class`` that the facade maps to a
user-visible status class:

- ``validation``: malformed request, rejected before any tier runs.
- ``authorization``: caller may not query the requested scope.
- ``unavailable``: the model provider failed its health check.
- ``internal``: anything else; surfaced with a generic message.
"""

from __future__ import annotations

from typing import Literal

ErrorClass = Literal["validation", "authorization", "unavailable", "internal"]

GENERIC_INTERNAL_MESSAGE = "Error procesando la consulta"
UNAVAILABLE_MESSAGE = (
    "El servicio de lenguaje no está disponible. Intenta de nuevo más tarde."
)


class RagTiersError(Exception):
    """Base class for all ragtiers errors."""

    error_class: ErrorClass = "internal"


class QueryValidationError(RagTiersError):
    """Malformed or out-of-range query input."""

    error_class: ErrorClass = "validation"


class AccessDeniedError(RagTiersError):
    """Caller lacks permission for the requested zone/development."""

    error_class: ErrorClass = "authorization"


class UpstreamUnavailableError(RagTiersError):
    """The model provider failed its up-front health check."""

    error_class: ErrorClass = "unavailable"


class UpstreamTimeoutError(RagTiersError):
    """An external call exceeded its timeout."""

    def __init__(self, operation: str, timeout_s: float) -> None:
        self.operation = operation
        self.timeout_s = timeout_s
        super().__init__(f"{operation} timed out after {timeout_s:.1f}s")


class EmptyAnswerError(RagTiersError):
    """A tier produced a blank answer."""

    def __init__(self, tier: str) -> None:
        self.tier = tier
        super().__init__(f"Tier '{tier}' produced an empty answer")


class FeedbackError(RagTiersError):
    """Invalid feedback submission (unknown query log, rating out of range)."""

    error_class: ErrorClass = "validation"


class ReinforcementError(RagTiersError):
    """The reinforcement batch could not read its feedback window."""
