# src/query/normalizer.py — v1
"""Query normalizer: lowercase, punctuation stripping, whitespace collapse
and static spelling corrections.

``normalize`` is pure and idempotent: every correction target is itself a
fixed point of the table, so ``normalize(normalize(x)) == normalize(x)``.
"""

from __future__ import annotations

import re
from types import MappingProxyType

# Punctuation and interrogation marks removed before matching.
_PUNCTUATION_RE = re.compile(r"[¿?¡!.,;:()\[\]{}'\"]")
_WHITESPACE_RE = re.compile(r"\s+")

# Known misspellings → correct form (exact token match).
SPELLING_CORRECTIONS: MappingProxyType[str, str] = MappingProxyType({
    # Construcción
    "contruir": "construir",
    "contrucción": "construcción",
    "construccion": "construcción",
    "edificacion": "edificación",
    # Acabados y elementos
    "canceleria": "cancelaría",
    "cancelaria": "cancelaría",
    "fachda": "fachada",
    "techunbre": "techumbre",
    "cluster": "clúster",
    # Comercial
    "presio": "precio",
    "presios": "precios",
    "amenidaes": "amenidades",
    "amenidads": "amenidades",
    "inbentario": "inventario",
    "inventaro": "inventario",
    "disponibilida": "disponibilidad",
    "desarollo": "desarrollo",
    "desarollos": "desarrollos",
    "finansiamiento": "financiamiento",
    # Documentos
    "reglamnto": "reglamento",
    "brochur": "brochure",
    "folletto": "folleto",
})


def _match_case(original: str, corrected: str) -> str:
    if original[:1].isupper():
        return corrected[:1].upper() + corrected[1:]
    return corrected


def correct_spelling(text: str) -> str:
    """Apply the spelling table token by token, preserving leading capitals.

    Punctuation attached to a token is ignored for matching and kept in place
    only when the token is left unchanged.
    """
    corrected: list[str] = []
    for word in text.split():
        clean = _PUNCTUATION_RE.sub("", word).lower()
        correction = SPELLING_CORRECTIONS.get(clean)
        corrected.append(_match_case(word, correction) if correction else word)
    return " ".join(corrected)


def normalize(raw: str | None) -> str:
    """Normalize raw query text.

    Lowercase, strip punctuation/interrogation marks, collapse whitespace
    and apply spelling corrections. Empty or None input yields "".
    """
    if not raw:
        return ""
    text = _PUNCTUATION_RE.sub("", raw.lower())
    tokens = _WHITESPACE_RE.split(text.strip())
    return " ".join(SPELLING_CORRECTIONS.get(t, t) for t in tokens if t)
