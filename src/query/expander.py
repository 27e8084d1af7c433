# src/query/expander.py — v1
"""Semantic expander: derive query variants and key terms from a normalized query.

Expansion rules are a static table. A rule fires when all of its trigger
substrings occur in the normalized query; several rules may fire and all
of them contribute variants. ``augment`` appends up to five unseen key
terms harvested from those variants, producing the "processed query"
used for cache/learned lookups and vector retrieval.
"""

from __future__ import annotations

from dataclasses import dataclass

from ragtiers.query.normalizer import correct_spelling, normalize

MAX_AUGMENT_TERMS = 5
MIN_TERM_LENGTH = 4

STOP_WORDS: frozenset[str] = frozenset({
    "el", "la", "los", "las", "de", "del", "en", "con", "para", "por",
    "que", "se", "no", "un", "una", "unos", "unas", "al", "lo", "su", "sus",
    "como", "cual", "cuales", "cuál", "cuáles", "este", "esta", "estos",
    "estas", "sobre", "según", "puede", "pueden", "puedo", "tiene", "hay",
})


@dataclass(frozen=True)
class ExpansionRule:
    """Fires when every trigger substring is present in the query."""

    triggers: tuple[str, ...]
    variants: tuple[str, ...]

    def matches(self, query: str) -> bool:
        return all(t in query for t in self.triggers)


EXPANSION_RULES: tuple[ExpansionRule, ...] = (
    # Materiales prohibidos / permitidos
    ExpansionRule(("material no puedo usar",), (
        "materiales prohibidos",
        "materiales no permitidos",
        "materiales que no se pueden usar",
        "se prohíbe el uso de",
        "queda prohibido",
    )),
    ExpansionRule(("material prohibido",), (
        "materiales prohibidos",
        "materiales no permitidos",
        "se prohíbe",
        "queda prohibido el uso",
    )),
    ExpansionRule(("material permitido",), (
        "materiales permitidos",
        "materiales autorizados",
        "materiales aprobados",
    )),
    ExpansionRule(("material", "no puedo"), (
        "materiales prohibidos para construcción",
        "materiales no permitidos según el reglamento",
        "se prohíbe el uso de materiales",
    )),
    ExpansionRule(("material", "prohibido"), (
        "materiales prohibidos en fachadas techumbres pisos cancelaría",
        "queda prohibido el uso de",
    )),
    # Construcción
    ExpansionRule(("construir",), (
        "construcción",
        "edificación",
        "obra",
        "normas de construcción",
        "reglamento de construcción",
    )),
    ExpansionRule(("construcción",), (
        "construir",
        "edificar",
        "normas de diseño",
        "manual de normas de diseño y construcción",
    )),
    # Elementos constructivos
    ExpansionRule(("fachada",), (
        "fachadas",
        "muros exteriores",
        "acabados exteriores",
    )),
    ExpansionRule(("techumbre",), (
        "techumbres",
        "cubiertas",
        "techos",
        "azoteas",
    )),
    ExpansionRule(("piso",), (
        "pisos",
        "suelos",
        "pavimentos",
    )),
    ExpansionRule(("cancelaría",), (
        "ventanas",
        "puertas",
        "vidrios",
    )),
    # Comercial
    ExpansionRule(("precio",), (
        "lista de precios",
        "costo",
        "valor",
    )),
    ExpansionRule(("lote",), (
        "lotes",
        "terreno",
        "superficie",
    )),
    ExpansionRule(("amenidad",), (
        "amenidades",
        "áreas comunes",
        "club de playa",
    )),
    ExpansionRule(("inventario",), (
        "disponibilidad",
        "unidades disponibles",
    )),
    ExpansionRule(("enganche",), (
        "financiamiento",
        "esquema de pago",
        "mensualidades",
    )),
)


def expand(normalized: str) -> list[str]:
    """Return ordered variants of ``normalized``; the input is always first.

    For each matching rule, both the query with its trigger replaced by the
    variant and the bare variant are added (deduplicated, order preserved).
    """
    variants: list[str] = [normalized]
    seen = {normalized}

    def _add(candidate: str) -> None:
        if candidate and candidate not in seen:
            seen.add(candidate)
            variants.append(candidate)

    for rule in EXPANSION_RULES:
        if not rule.matches(normalized):
            continue
        primary = rule.triggers[0]
        for variant in rule.variants:
            _add(normalized.replace(primary, variant))
            _add(variant)
    return variants


def harvest_terms(normalized: str, variants: list[str]) -> list[str]:
    """Key terms from ``variants`` that do not already occur in ``normalized``."""
    present = set(normalized.split())
    terms: list[str] = []
    for variant in variants:
        for word in variant.lower().split():
            if len(word) < MIN_TERM_LENGTH or word in STOP_WORDS:
                continue
            if word in present or word in terms:
                continue
            terms.append(word)
    return terms


def augment(normalized: str) -> str:
    """Append up to five unseen key terms from the expansion variants."""
    variants = expand(normalized)
    if len(variants) == 1:
        return normalized
    terms = harvest_terms(normalized, variants[1:])[:MAX_AUGMENT_TERMS]
    if not terms:
        return normalized
    return f"{normalized} {' '.join(terms)}".strip()


def process_query(raw: str) -> str:
    """Normalize then augment: the processed query used for lookups/retrieval."""
    return augment(normalize(raw))


def learning_key(raw: str) -> str:
    """Key under which learned responses are stored and looked up.

    Shared by the live dispatcher and the reinforcement job so that a
    historical query and a live query with the same wording land on the
    same row.
    """
    return normalize(process_query(raw))


def generate_variants(query: str) -> list[str]:
    """Extra variants to retry retrieval with when the first search is thin."""
    corrected = normalize(correct_spelling(query))
    variants = expand(corrected)

    if "no puedo usar" in corrected or "no se puede usar" in corrected:
        for replacement in ("prohibido", "no permitido", "se prohíbe"):
            variants.append(
                corrected.replace("no puedo usar", replacement).replace(
                    "no se puede usar", replacement
                )
            )

    if "material" in corrected and "construcción" not in corrected and "construir" not in corrected:
        variants.append(f"{corrected} construcción")
        variants.append(f"{corrected} para construir")

    return list(dict.fromkeys(variants))
