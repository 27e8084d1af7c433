# src/core/timeout.py — v1
"""Timeout helper for external calls (vector index, model provider, stores)."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from ragtiers.core.errors import UpstreamTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(
    awaitable: Awaitable[T], timeout_s: float, operation: str
) -> T:
    """Await ``awaitable`` for at most ``timeout_s`` seconds.

    Raises:
        UpstreamTimeoutError: If the deadline expires. The pending call is cancelled.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except asyncio.TimeoutError as e:
        logger.error("%s exceeded timeout of %.1fs", operation, timeout_s)
        raise UpstreamTimeoutError(operation, timeout_s) from e
