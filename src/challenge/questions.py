"""
Prepares fetched questions for a session.

Multiple-choice options are rebuilt whenever a record is created: with a
vocabulary pool the wrong options come from DistractorSelector, otherwise the
server's options are kept and reshuffled. Either way the correct answer
appears exactly once.
"""

from __future__ import annotations

import random
from collections.abc import Sequence

from loguru import logger

from .distractors import DistractorSelector
from .models import QuestionItem, QuestionKind
from .text import comparison_form

TRUE_FALSE_OPTIONS = ["True", "False"]


class QuestionBuilder:
    """Builds the option list for each question in a fresh session."""

    def __init__(
        self,
        selector: DistractorSelector | None = None,
        rng: random.Random | None = None,
    ):
        self.rng = rng or random.Random()
        self.selector = selector or DistractorSelector(rng=self.rng)

    def build(
        self,
        questions: Sequence[QuestionItem],
        vocabulary: Sequence[str] | None = None,
    ) -> list[QuestionItem]:
        return [self.prepare(question, vocabulary) for question in questions]

    def prepare(
        self,
        question: QuestionItem,
        vocabulary: Sequence[str] | None = None,
    ) -> QuestionItem:
        if question.kind is QuestionKind.TRUE_FALSE:
            return question.model_copy(update={"options": list(TRUE_FALSE_OPTIONS)})
        if question.kind is not QuestionKind.MULTIPLE_CHOICE:
            return question

        if vocabulary:
            wrong = self.selector.select(question.correct_answer, vocabulary)
        else:
            wrong = self._server_distractors(question)

        if not wrong:
            logger.warning(f"Question {question.id} has no wrong options available")

        options = [*wrong, question.correct_answer]
        self.rng.shuffle(options)
        return question.model_copy(update={"options": options})

    @staticmethod
    def _server_distractors(question: QuestionItem) -> list[str]:
        answer_key = comparison_form(question.correct_answer)
        seen: set[str] = set()
        wrong: list[str] = []
        for option in question.options or []:
            key = comparison_form(option)
            if not key or key == answer_key or key in seen:
                continue
            seen.add(key)
            wrong.append(option)
        return wrong
