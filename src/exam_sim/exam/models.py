"""Immutable records shared by the exam engine, history and providers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, MutableMapping, Optional, Sequence

__all__ = [
    "GRADE_LEVELS",
    "DEFAULT_GRADE",
    "DEFAULT_TOPIC",
    "OPTION_COUNT",
    "SetupError",
    "Question",
    "SessionConfig",
    "ExamResult",
]

GRADE_LEVELS: tuple[str, ...] = (
    "Class 1",
    "Class 2",
    "Class 3",
    "Class 4",
    "Class 5",
    "Class 6",
    "Class 7",
    "Class 8",
    "Class 9",
    "Class 10",
    "Class 11",
    "Class 12",
    "University / Higher Ed",
)
DEFAULT_GRADE = "Class 9"
DEFAULT_TOPIC = "Algebraic Equations"
OPTION_COUNT = 4


class SetupError(ValueError):
    """Raised when a topic/grade pair cannot start a session."""


@dataclass(frozen=True)
class Question:
    """A single four-option multiple-choice question."""

    text: str
    options: tuple[str, ...]
    correct_option: str
    explanation: str = ""

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("question text must be non-empty")
        if len(self.options) != OPTION_COUNT:
            raise ValueError(
                f"question needs exactly {OPTION_COUNT} options, "
                f"got {len(self.options)}"
            )
        if any(not option.strip() for option in self.options):
            raise ValueError("option text must be non-empty")
        if len(set(self.options)) != len(self.options):
            raise ValueError("duplicate options detected")
        if self.correct_option not in self.options:
            raise ValueError("correct option must match one of the options")

    def is_correct(self, answer: Optional[str]) -> bool:
        return answer is not None and answer == self.correct_option

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "question": self.text,
            "options": list(self.options),
            "correctAnswer": self.correct_option,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Question":
        options = payload.get("options")
        if not isinstance(options, list):
            raise ValueError("options must be a list")
        return cls(
            text=str(payload.get("question", "")),
            options=tuple(str(option) for option in options),
            correct_option=str(payload.get("correctAnswer", "")),
            explanation=str(payload.get("explanation") or ""),
        )


@dataclass(frozen=True)
class SessionConfig:
    """Topic and grade chosen before a session starts."""

    topic: str
    grade: str

    @classmethod
    def create(
        cls,
        topic: Optional[str],
        grade: Optional[str],
        *,
        grades: Sequence[str] = GRADE_LEVELS,
    ) -> "SessionConfig":
        cleaned = (topic or "").strip()
        if not cleaned:
            raise SetupError("Enter a topic before starting the exam.")
        if grade not in grades:
            raise SetupError(f"Unknown grade level: {grade!r}")
        return cls(topic=cleaned, grade=str(grade))


@dataclass(frozen=True)
class ExamResult:
    """Persisted, immutable record of one completed session."""

    id: str
    topic: str
    grade: str
    score: int
    total: int
    timestamp: str
    questions: tuple[Question, ...]
    user_answers: tuple[Optional[str], ...]

    @classmethod
    def build(
        cls,
        config: SessionConfig,
        questions: Sequence[Question],
        answers: Sequence[Optional[str]],
    ) -> "ExamResult":
        if len(answers) != len(questions):
            raise ValueError("every question needs a recorded answer")
        score = sum(
            1 for question, answer in zip(questions, answers)
            if question.is_correct(answer)
        )
        return cls(
            id=uuid.uuid4().hex,
            topic=config.topic,
            grade=config.grade,
            score=score,
            total=len(questions),
            timestamp=datetime.now(timezone.utc).isoformat(),
            questions=tuple(questions),
            user_answers=tuple(answers),
        )

    @property
    def accuracy(self) -> float:
        if self.total == 0:
            return 0.0
        return self.score / self.total

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "grade": self.grade,
            "score": self.score,
            "total": self.total,
            "timestamp": self.timestamp,
            "questions": [question.to_dict() for question in self.questions],
            "userAnswers": list(self.user_answers),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExamResult":
        """Rebuild a stored result, raising ``ValueError`` when malformed."""

        if not isinstance(payload, Mapping):
            raise ValueError("exam result must be a mapping")
        try:
            raw_questions = payload["questions"]
            raw_answers = payload["userAnswers"]
            result = cls(
                id=str(payload["id"]),
                topic=str(payload["topic"]),
                grade=str(payload["grade"]),
                score=int(payload["score"]),
                total=int(payload["total"]),
                timestamp=str(payload["timestamp"]),
                questions=tuple(
                    Question.from_dict(item) for item in raw_questions
                ),
                user_answers=tuple(
                    None if answer is None else str(answer)
                    for answer in raw_answers
                ),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"exam result missing field: {exc}") from exc
        if not (len(result.questions) == len(result.user_answers) == result.total):
            raise ValueError("exam result lengths disagree")
        expected = sum(
            1 for question, answer in zip(result.questions, result.user_answers)
            if question.is_correct(answer)
        )
        if result.score != expected:
            raise ValueError("stored score does not match stored answers")
        return result
