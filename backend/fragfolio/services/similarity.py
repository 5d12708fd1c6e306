"""
Fragfolio Backend — String Similarity
=======================================

What:  Scoring helpers used to rank suggestions and match AI output against
       master data.

    levenshtein_similarity: 1 - distance / max_len on lowercased strings.
        Drives adjusted_confidence for completions and the brand/fragrance
        master-data thresholds.
    match_score: tiered scorer, one fixed score per tier. Orders the
        fallback candidate lists.
    jaccard: set overlap of note names for similar-fragrance search.

Levenshtein distance comes from rapidfuzz, which counts Unicode code points,
so katakana input is measured per character rather than per UTF-8 byte.
"""

from typing import Iterable

from rapidfuzz.distance import Levenshtein

# match_score tiers
EXACT_SCORE = 1.0
CASE_INSENSITIVE_SCORE = 0.95
SUBSTRING_SCORE = 0.85
WORD_OVERLAP_BASE = 0.5
WORD_OVERLAP_WEIGHT = 0.3
LEVENSHTEIN_WEIGHT = 0.6


def levenshtein_similarity(a: str, b: str) -> float:
    """Normalized edit similarity in [0, 1]; 0.0 when either side is empty."""
    a = (a or "").strip().lower()
    b = (b or "").strip().lower()
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    max_len = max(len(a), len(b))
    return 1.0 - Levenshtein.distance(a, b) / max_len


def match_score(query: str, candidate: str) -> float:
    """
    Score how well candidate answers query.

    Tiers, first match wins:
        exact                   1.0
        case-insensitive equal  0.95
        substring containment   0.85
        shared words            0.5 + 0.3 * overlap ratio
        otherwise               0.6 * levenshtein_similarity
    """
    if not query or not candidate:
        return 0.0
    if query == candidate:
        return EXACT_SCORE

    q = query.strip().lower()
    c = candidate.strip().lower()
    if q == c:
        return CASE_INSENSITIVE_SCORE
    if q in c or c in q:
        return SUBSTRING_SCORE

    q_words = set(q.split())
    c_words = set(c.split())
    shared = q_words & c_words
    if shared:
        ratio = len(shared) / max(len(q_words), len(c_words))
        return WORD_OVERLAP_BASE + WORD_OVERLAP_WEIGHT * ratio

    return LEVENSHTEIN_WEIGHT * levenshtein_similarity(q, c)


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    set_a = set(a)
    set_b = set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)
