"""Read-only replay of a stored exam result."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import ExamResult, Question

__all__ = [
    "OptionMark",
    "ReviewItem",
    "build_review",
    "performance_label",
    "is_passing",
]

EXCELLENT_THRESHOLD = 0.8
PASSING_THRESHOLD = 0.6


class OptionMark(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class ReviewItem:
    number: int
    question: Question
    user_answer: Optional[str]
    is_correct: bool
    marks: tuple[tuple[str, OptionMark], ...]

    @property
    def timed_out(self) -> bool:
        return self.user_answer is None


def build_review(result: ExamResult) -> list[ReviewItem]:
    """Mark every option of every question using only the stored snapshot.

    The correct option is always ``CORRECT``; the user's choice is
    ``INCORRECT`` when it was wrong; everything else is ``NEUTRAL``.
    """

    items: list[ReviewItem] = []
    for number, (question, answer) in enumerate(
        zip(result.questions, result.user_answers), start=1
    ):
        correct = question.is_correct(answer)
        marks = []
        for option in question.options:
            if option == question.correct_option:
                mark = OptionMark.CORRECT
            elif option == answer and not correct:
                mark = OptionMark.INCORRECT
            else:
                mark = OptionMark.NEUTRAL
            marks.append((option, mark))
        items.append(
            ReviewItem(
                number=number,
                question=question,
                user_answer=answer,
                is_correct=correct,
                marks=tuple(marks),
            )
        )
    return items


def performance_label(score: int, total: int) -> str:
    if total and score / total >= EXCELLENT_THRESHOLD:
        return "Excellent Performance"
    return "Keep Practicing"


def is_passing(score: int, total: int) -> bool:
    return bool(total) and score / total >= PASSING_THRESHOLD
