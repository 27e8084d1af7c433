# src/query/simple_classifier.py — v1
"""Simple-query classifier: detect greetings and filler that need no retrieval.

Runs on the original (pre-correction) query text. Rules, in order:
  1. Greeting/small-talk regex match → simple.
  2. Fewer than 10 non-space characters and no domain keyword → simple.
  3. Otherwise → not simple.
"""

from __future__ import annotations

import re

_GREETINGS = r"(hola|hi|hello|buenos días|buenos dias|buenas tardes|buenas noches|saludos|hey)"

SIMPLE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # Saludos
        rf"^{_GREETINGS}[\s!.,]*$",
        rf"^{_GREETINGS}\s+(amigo|amiga|señor|señora|equipo|team)[\s!.,]*$",
        # Small talk
        r"^¿?(qué tal|que tal|qué pasa|qué hay|qué onda|cómo estás|como estás|como estas|how are you)[\s?.,!]*$",
        # Una sola palabra muy corta
        r"^[a-záéíóúñ]{1,4}[\s?.,!]*$",
        # Preguntas sobre el propio asistente
        r"^¿?(quién eres|quien eres|qué eres|que eres|qué puedes hacer|que puedes hacer|help|ayuda|help me)[\s?.,!]*$",
        # Agradecimientos y despedidas
        r"^(gracias|muchas gracias|ok|okay|vale|perfecto|adiós|adios|bye)[\s!.,]*$",
    )
)

SHORT_QUERY_MAX_CHARS = 10

# Keywords that always require retrieval, even in very short queries.
RAG_KEYWORDS: tuple[str, ...] = (
    "precio", "precios", "costo", "costos",
    "amenidad", "amenidades", "característica", "caracteristica",
    "inventario", "disponibilidad", "unidad", "unidades",
    "documento", "documentos", "brochure", "folleto",
    "lote", "lotes", "plano", "planos", "enganche", "m2",
)


def is_simple(raw: str) -> bool:
    """Return True if ``raw`` is conversational/trivial and needs no retrieval."""
    query = (raw or "").lower().strip()

    for pattern in SIMPLE_PATTERNS:
        if pattern.match(query):
            return True

    compact = re.sub(r"\s+", "", query)
    if len(compact) < SHORT_QUERY_MAX_CHARS:
        return not any(keyword in query for keyword in RAG_KEYWORDS)

    return False
