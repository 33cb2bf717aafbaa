"""
Edit-distance similarity between two answer strings.

score(a, b) = 1 / (1 + levenshtein(a, b)) over case-folded strings with
parenthetical annotations removed. Identical inputs score exactly 1.0.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from .text import comparison_form


def levenshtein(a: str, b: str) -> int:
    """Unit-cost edit distance (insert, delete, substitute)."""
    return Levenshtein.distance(a, b)


def score(a: str, b: str) -> float:
    """Similarity in (0, 1]; higher means closer."""
    return 1.0 / (1 + levenshtein(comparison_form(a), comparison_form(b)))


def similarity_scores(target: str, candidates: list[str]) -> list[tuple[str, float]]:
    """Score every candidate against ``target``, preserving candidate order."""
    normalized_target = comparison_form(target)
    return [
        (candidate, 1.0 / (1 + Levenshtein.distance(normalized_target, comparison_form(candidate))))
        for candidate in candidates
    ]
