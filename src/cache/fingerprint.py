# src/cache/fingerprint.py — v1
"""Cache slot fingerprints.

A slot is identified by the hash of the lower-cased, whitespace-collapsed
query text together with its (zone, development, content type) scope, so
identical text in two scopes never shares a slot.
"""

from __future__ import annotations

import hashlib
import re

from ragtiers.core.models import QueryScope

_WHITESPACE_RE = re.compile(r"\s+")


def canonical_text(query: str) -> str:
    """Lowercase, trim and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", query.lower().strip())


def query_hash(query: str) -> str:
    """MD5 hex digest of the canonical query text."""
    return hashlib.md5(canonical_text(query).encode("utf-8")).hexdigest()  # noqa: S324


def slot_key(query: str, scope: QueryScope) -> str:
    """Stable cache slot identifier for (query, scope)."""
    digest = hashlib.sha256(
        f"{scope.key}\n{canonical_text(query)}".encode("utf-8")
    ).hexdigest()
    return f"cache-{digest[:32]}"
