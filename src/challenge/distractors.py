"""
Distractor selection for multiple-choice questions.

Wrong options are a mix of near-misses (the candidates closest to the correct
answer by edit distance, which make the question meaningfully hard) and
wildcards drawn at random from the rest of the pool (so the options are not
all near-synonyms and the question stays solvable).

Algorithm:
1. strip parenthetical annotations from the pool and the answer
2. drop spelled-out numerals
3. dedupe case-insensitively and drop the correct answer itself
4. rank by similarity (stable, ties keep pool order)
5. take the top ``near_miss`` candidates, fill the rest at random
6. shuffle
"""

from __future__ import annotations

import random
from collections.abc import Iterable

from loguru import logger

from .models import VocabularyCandidate
from .similarity import similarity_scores
from .text import comparison_form, is_numeral_word, strip_annotations

DEFAULT_NEAR_MISS = 2

PoolEntry = str | VocabularyCandidate


def _surface(entry: PoolEntry) -> str:
    if isinstance(entry, VocabularyCandidate):
        return entry.surface_form
    return entry


def eligible_candidates(correct_answer: str, pool: Iterable[PoolEntry]) -> list[str]:
    """Cleaned, deduplicated pool entries that may serve as wrong options."""
    answer_key = comparison_form(correct_answer)
    seen: set[str] = set()
    candidates: list[str] = []
    for entry in pool:
        cleaned = strip_annotations(_surface(entry))
        key = cleaned.casefold()
        if not cleaned or key == answer_key or key in seen:
            continue
        if is_numeral_word(cleaned):
            continue
        seen.add(key)
        candidates.append(cleaned)
    return candidates


def select_distractors(
    correct_answer: str,
    pool: Iterable[PoolEntry],
    count: int,
    *,
    near_miss: int = DEFAULT_NEAR_MISS,
    rng: random.Random | None = None,
) -> list[str]:
    """
    Pick ``count`` distinct wrong options for ``correct_answer`` from ``pool``.

    Returns fewer than ``count`` when the pool is too sparse; never raises.

    Args:
        correct_answer: The expected answer (annotations allowed).
        pool: Known vocabulary, as strings or VocabularyCandidate.
        count: Number of distractors wanted.
        near_miss: How many slots go to the most similar candidates.
        rng: Random source, for reproducible selection.

    Returns:
        Shuffled list of distractors, none equal to the answer.
    """
    if count <= 0:
        return []
    rng = rng or random.Random()

    candidates = eligible_candidates(correct_answer, pool)
    if len(candidates) < count:
        logger.debug(
            f"Only {len(candidates)} distractor candidates for '{correct_answer}' "
            f"(wanted {count})"
        )

    ranked = sorted(
        similarity_scores(strip_annotations(correct_answer), candidates),
        key=lambda pair: pair[1],
        reverse=True,
    )
    closest = [word for word, _ in ranked[: min(max(near_miss, 0), count)]]

    remaining = [word for word in candidates if word not in closest]
    wildcard_slots = min(count - len(closest), len(remaining))
    wildcards = rng.sample(remaining, wildcard_slots) if wildcard_slots > 0 else []

    chosen = closest + wildcards
    rng.shuffle(chosen)
    return chosen


class DistractorSelector:
    """Configured distractor source used when building session questions."""

    def __init__(
        self,
        count: int = 3,
        near_miss: int = DEFAULT_NEAR_MISS,
        rng: random.Random | None = None,
    ):
        self.count = count
        self.near_miss = near_miss
        self.rng = rng or random.Random()

    def select(self, correct_answer: str, pool: Iterable[PoolEntry]) -> list[str]:
        return select_distractors(
            correct_answer,
            pool,
            self.count,
            near_miss=self.near_miss,
            rng=self.rng,
        )
