"""
Synonym groups and stop words for cross-venue title matching.

Different venues phrase the same event differently ("Super Bowl" vs
"Pro Football Championship"). Each group lists interchangeable terms; the
first term is the canonical entity name.
"""

from __future__ import annotations

import re

STOP_WORDS = frozenset({
    "will", "the", "a", "an", "in", "on", "at", "to", "for", "of", "by", "be", "is", "are",
    "was", "were", "before", "after", "this", "that", "has", "have", "had", "do", "does",
    "did", "can", "could", "would", "should", "may", "might", "must", "during", "than",
})

SYNONYM_GROUPS: tuple[tuple[str, ...], ...] = (
    # Sports championships
    ("super bowl", "pro football championship", "nfl championship", "big game"),
    ("world series", "mlb championship", "baseball championship"),
    ("nba finals", "nba championship", "basketball championship"),
    ("stanley cup", "nhl championship", "hockey championship"),
    ("march madness", "ncaa tournament", "college basketball tournament"),

    # US politics
    ("president", "potus", "white house", "oval office"),
    ("trump", "donald trump", "trump administration"),
    ("biden", "joe biden", "biden administration"),
    ("fed", "federal reserve", "fomc", "fed chair", "jerome powell", "powell"),
    ("congress", "house of representatives", "senate", "capitol hill"),
    ("midterms", "midterm elections", "congressional elections"),

    # Economics
    ("rate cut", "interest rate cut", "fed cut", "rate reduction"),
    ("rate hike", "interest rate hike", "fed hike", "rate increase"),
    ("inflation", "cpi", "consumer price index", "price inflation"),
    ("gdp", "gross domestic product", "economic growth"),
    ("recession", "economic downturn", "negative gdp"),
    ("unemployment", "jobless", "jobs report", "labor market"),

    # Crypto (no short tickers: too many false positives)
    ("bitcoin", "bitcoin price"),
    ("ethereum", "ethereum price"),
    ("crypto", "cryptocurrency", "digital assets"),
    ("etf", "exchange traded fund", "spot etf"),

    # Tech
    ("ai", "artificial intelligence", "machine learning", "gpt", "llm"),
    ("agi", "artificial general intelligence"),
    ("openai", "open ai", "chatgpt", "chat gpt"),
    ("elon", "elon musk", "musk"),

    # Geopolitics
    ("ukraine", "russia ukraine", "ukraine war", "ukraine conflict"),
    ("china", "prc", "beijing"),
    ("taiwan", "roc", "taiwan strait"),
    ("middle east", "israel", "gaza", "hamas"),

    # Time expressions
    ("by end of year", "by december", "by dec 31", "eoy"),
    ("q1", "first quarter", "jan mar"),
    ("q2", "second quarter", "apr jun"),
    ("q3", "third quarter", "jul sep"),
    ("q4", "fourth quarter", "oct dec"),
)


def _build_synonym_map() -> dict[str, frozenset[str]]:
    """Term -> every term it is interchangeable with. Overlapping groups are merged."""
    mapping: dict[str, set[str]] = {}
    for group in SYNONYM_GROUPS:
        merged = set(group)
        for term in group:
            merged |= mapping.get(term, set())
        for term in merged:
            mapping[term] = merged
    return {term: frozenset(terms) for term, terms in mapping.items()}


_SYNONYMS = _build_synonym_map()

# Whole-word phrase matchers over normalized text, one tuple per group.
_GROUP_PATTERNS: tuple[tuple[str, tuple[re.Pattern, ...]], ...] = tuple(
    (group[0], tuple(re.compile(rf"\b{re.escape(term)}\b") for term in group))
    for group in SYNONYM_GROUPS
)


def are_synonyms(a: str, b: str) -> bool:
    if a == b:
        return True
    return b in _SYNONYMS.get(a, ())


def mentioned_groups(normalized_text: str) -> frozenset[str]:
    """Canonical names of every synonym group mentioned in already-normalized text."""
    found = set()
    for canonical, patterns in _GROUP_PATTERNS:
        if any(p.search(normalized_text) for p in patterns):
            found.add(canonical)
    return frozenset(found)
