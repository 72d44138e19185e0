"""
Text similarity between market titles. Pure functions, no state.

Five weighted signals:
- 20% order-preserving character overlap
- 30% keyword Jaccard (stop words removed)
- 20% synonym-aware keyword overlap
- 15% entity (synonym group) Jaccard
- 15% shared-phrase bonus

A strong entity or phrase match adds a flat boost, capped at 1.0. Titles
with no usable keywords fall back to character overlap alone.
"""

from __future__ import annotations

import re

from scanner.synonyms import STOP_WORDS, are_synonyms, mentioned_groups

W_SEQUENCE = 0.20
W_DIRECT = 0.30
W_SYNONYM = 0.20
W_ENTITY = 0.15
W_PHRASE = 0.15

PHRASE_BONUS = 0.5
ENTITY_BOOST_THRESHOLD = 0.5
MATCH_BOOST = 0.15

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, punctuation to spaces, collapsed whitespace."""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def extract_keywords(text: str) -> frozenset[str]:
    """Words longer than two characters that are not stop words."""
    return frozenset(
        w for w in normalize_text(text).split(" ")
        if len(w) > 2 and w not in STOP_WORDS
    )


def _greedy_overlap(a: str, b: str) -> int:
    matches = 0
    j = 0
    for ch in a:
        if j >= len(b):
            break
        if ch == b[j]:
            matches += 1
            j += 1
    return matches


def sequence_ratio(a: str, b: str) -> float:
    """
    Order-preserving character overlap: 2 * matches / (len(a) + len(b)).

    The greedy walk is direction-dependent, so both directions are tried and
    the better one kept.
    """
    total = len(a) + len(b)
    if total == 0:
        return 1.0
    matches = max(_greedy_overlap(a, b), _greedy_overlap(b, a))
    return 2.0 * matches / total


def _synonym_overlap(kw_a: frozenset[str], kw_b: frozenset[str]) -> float:
    hits_a = sum(1 for a in kw_a if any(are_synonyms(a, b) for b in kw_b))
    hits_b = sum(1 for b in kw_b if any(are_synonyms(b, a) for a in kw_a))
    return min(hits_a, hits_b) / min(len(kw_a), len(kw_b))


def entity_overlap(norm_a: str, norm_b: str) -> float:
    """Jaccard over the synonym groups each text mentions. 0 when either mentions none."""
    ents_a = mentioned_groups(norm_a)
    ents_b = mentioned_groups(norm_b)
    if not ents_a or not ents_b:
        return 0.0
    return len(ents_a & ents_b) / len(ents_a | ents_b)


def similarity(text_a: str, text_b: str) -> float:
    """Similarity of two free-text titles in [0, 1]. Symmetric; identical text scores 1."""
    norm_a = normalize_text(text_a)
    norm_b = normalize_text(text_b)
    if norm_a == norm_b:
        return 1.0

    seq = sequence_ratio(norm_a, norm_b)

    kw_a = extract_keywords(text_a)
    kw_b = extract_keywords(text_b)
    if not kw_a or not kw_b:
        return seq

    direct = len(kw_a & kw_b) / len(kw_a | kw_b)
    synonym = _synonym_overlap(kw_a, kw_b)
    entity = entity_overlap(norm_a, norm_b)
    phrase = PHRASE_BONUS if mentioned_groups(norm_a) & mentioned_groups(norm_b) else 0.0

    combined = (
        W_SEQUENCE * seq
        + W_DIRECT * direct
        + W_SYNONYM * synonym
        + W_ENTITY * entity
        + W_PHRASE * phrase
    )
    if entity > ENTITY_BOOST_THRESHOLD or phrase > 0:
        combined += MATCH_BOOST
    return max(0.0, min(1.0, combined))


def rank_by_query(titles: list[str], query: str) -> list[int]:
    """
    Indices of titles sharing at least one keyword with query, most shared
    keywords first. Used for client-side venue search.
    """
    wanted = extract_keywords(query)
    if not wanted:
        needle = normalize_text(query)
        return [i for i, t in enumerate(titles) if needle and needle in normalize_text(t)]
    hits = []
    for i, title in enumerate(titles):
        n = len(wanted & extract_keywords(title))
        if n:
            hits.append((n, i))
    hits.sort(key=lambda h: (-h[0], h[1]))
    return [i for _, i in hits]
