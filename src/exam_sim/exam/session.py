"""Timed exam state machine.

The engine moves one screen at a time through::

    SETUP -> GENERATING -> ACTIVE(i) <-> GRADING(i) -> COMPLETED -> SETUP
    SETUP <-> HISTORY <-> REVIEWING

All mutations arrive as discrete events (user input, clock ticks, provider
resolution, pacing timers) on a single thread. Provider responses are tagged
with a request token and pacing timers with ``(token, index)`` so late or
duplicate events are discarded instead of corrupting the session.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from .clock import Scheduler, SessionClock, TimerHandle
from .history import HistoryStore
from .models import GRADE_LEVELS, ExamResult, Question, SessionConfig
from .provider import MalformedResponse, QuestionProvider

__all__ = [
    "ExamPhase",
    "ExamSession",
    "EngineSettings",
    "ExamEngine",
    "SessionError",
    "TransitionError",
]

CompletionCallback = Callable[[int, str], None]
ChangeCallback = Callable[["ExamEngine"], None]


class SessionError(RuntimeError):
    """Raised when a session invariant would be violated."""


class TransitionError(SessionError):
    """Raised when an operation is requested from the wrong phase."""


class ExamPhase(str, Enum):
    SETUP = "setup"
    GENERATING = "generating"
    ACTIVE = "active"
    GRADING = "grading"
    COMPLETED = "completed"
    HISTORY = "history"
    REVIEWING = "reviewing"


@dataclass(frozen=True)
class EngineSettings:
    """Timing and scoring knobs; see ``exam.toml``."""

    seconds_per_question: int = 60
    tick_seconds: float = 1.0
    pacing_seconds: float = 1.5
    reward_per_correct: int = 40


@dataclass
class ExamSession:
    """In-memory state of one run through a question set."""

    config: SessionConfig
    questions: tuple[Question, ...]
    index: int = 0
    score: int = 0
    answers: list[Optional[str]] = field(default_factory=list)
    pending: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current(self) -> Question:
        return self.questions[self.index]

    @property
    def is_last(self) -> bool:
        return self.index + 1 >= self.total

    def is_answered(self, index: Optional[int] = None) -> bool:
        target = self.index if index is None else index
        return target < len(self.answers)

    def record(self, answer: Optional[str]) -> bool:
        """Log ``answer`` for the current question; returns correctness."""

        if self.is_answered():
            raise SessionError(f"question {self.index} is already answered")
        self.answers.append(answer)
        self.pending = None
        correct = self.current.is_correct(answer)
        if correct:
            self.score += 1
        return correct

    def advance(self) -> None:
        if not self.is_answered():
            raise SessionError("cannot advance past an unanswered question")
        if self.index >= self.total:
            raise SessionError("session already finished")
        self.index += 1


class ExamEngine:
    """Drive setup, timed answering, scoring, history and review."""

    def __init__(
        self,
        history: HistoryStore,
        scheduler: Scheduler,
        *,
        settings: EngineSettings = EngineSettings(),
        grades: Sequence[str] = GRADE_LEVELS,
        on_complete: Optional[CompletionCallback] = None,
        on_change: Optional[ChangeCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.history = history
        self.settings = settings
        self.grades = tuple(grades)
        self.on_complete = on_complete
        self.on_change = on_change
        self._scheduler = scheduler
        self._logger = logger or logging.getLogger(__name__)
        self._clock = SessionClock(
            scheduler,
            duration=settings.seconds_per_question,
            tick_seconds=settings.tick_seconds,
            on_expire=self._handle_expiry,
            on_tick=lambda _remaining: self._changed(),
        )
        self._phase = ExamPhase.SETUP
        self._token = 0
        self._pending_config: Optional[SessionConfig] = None
        self._session: Optional[ExamSession] = None
        self._pacing: Optional[TimerHandle] = None
        self._paused = False
        self._reviewing: Optional[ExamResult] = None
        self._last_result: Optional[ExamResult] = None
        self._last_reward = 0
        self.last_error: Optional[str] = None

    # -- read-only state ---------------------------------------------------

    @property
    def phase(self) -> ExamPhase:
        return self._phase

    @property
    def session(self) -> Optional[ExamSession]:
        return self._session

    @property
    def clock(self) -> SessionClock:
        return self._clock

    @property
    def time_left(self) -> int:
        return self._clock.remaining

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def token(self) -> int:
        return self._token

    @property
    def reviewing(self) -> Optional[ExamResult]:
        return self._reviewing

    @property
    def last_result(self) -> Optional[ExamResult]:
        return self._last_result

    @property
    def last_reward(self) -> int:
        return self._last_reward

    # -- setup / generation ------------------------------------------------

    def request_start(self, topic: Optional[str], grade: Optional[str]) -> int:
        """Validate the setup and enter GENERATING; returns the request token.

        Raises ``SetupError`` for a blank topic or unknown grade and
        ``TransitionError`` when not in SETUP (including while a request is
        already outstanding). Neither changes state.
        """

        if self._phase is not ExamPhase.SETUP:
            raise TransitionError(
                f"cannot start an exam while {self._phase.value}"
            )
        config = SessionConfig.create(topic, grade, grades=self.grades)
        self._token += 1
        self._pending_config = config
        self.last_error = None
        self._set_phase(ExamPhase.GENERATING)
        self._logger.info(
            "Requested exam questions",
            extra={
                "token": self._token,
                "topic": config.topic,
                "grade": config.grade,
            },
        )
        return self._token

    def resolve(self, token: int, questions: Sequence[Question]) -> bool:
        """Accept the provider's question set for request ``token``."""

        if not self._is_current_request(token):
            return False
        if not questions:
            self.fail(token, MalformedResponse("no questions returned"))
            return False
        config = self._pending_config
        if config is None:
            raise SessionError("no pending exam request to resolve")
        self._pending_config = None
        self._session = ExamSession(config=config, questions=tuple(questions))
        self._paused = False
        self._logger.info(
            "Exam session started",
            extra={"token": token, "total": len(questions)},
        )
        self._activate()
        return True

    def fail(self, token: int, error: BaseException | str) -> bool:
        """Record a provider failure for ``token`` and return to SETUP."""

        if not self._is_current_request(token):
            return False
        self._pending_config = None
        self.last_error = str(error) or type(error).__name__
        self._logger.warning(
            "Exam question fetch failed",
            extra={
                "token": token,
                "error": self.last_error,
                "error_type": type(error).__name__,
            },
        )
        self._set_phase(ExamPhase.SETUP)
        return True

    def cancel_start(self) -> bool:
        """Abandon an outstanding request; its late response is ignored."""

        if self._phase is not ExamPhase.GENERATING:
            return False
        self._pending_config = None
        self._token += 1
        self._set_phase(ExamPhase.SETUP)
        return True

    async def start(
        self,
        topic: Optional[str],
        grade: Optional[str],
        provider: QuestionProvider,
    ) -> bool:
        """Request, fetch in a worker thread, and resolve in one call."""

        token = self.request_start(topic, grade)
        return await self.fetch(token, provider)

    async def fetch(self, token: int, provider: QuestionProvider) -> bool:
        """Run the provider for request ``token`` off the event loop thread."""

        config = self._pending_config
        if config is None or not self._is_current_request(token):
            return False
        try:
            questions = await asyncio.to_thread(
                provider.fetch_questions, config.topic, config.grade
            )
        except Exception as exc:  # any provider rejection is a failure
            self.fail(token, exc)
            return False
        return self.resolve(token, questions)

    def _is_current_request(self, token: int) -> bool:
        if self._phase is ExamPhase.GENERATING and token == self._token:
            return True
        self._logger.debug(
            "Discarded stale provider response",
            extra={"token": token, "current_token": self._token},
        )
        return False

    # -- answering ---------------------------------------------------------

    def select(self, option: str) -> bool:
        """Set the pending choice for the current question without logging."""

        session = self._answerable()
        if session is None or option not in session.current.options:
            return False
        session.pending = option
        self._changed()
        return True

    def confirm(self) -> bool:
        session = self._answerable()
        if session is None or session.pending is None:
            return False
        return self._submit(session.pending, forced=False)

    def answer(self, option: str) -> bool:
        """Select and confirm in one step."""

        return self.select(option) and self.confirm()

    def set_paused(self, paused: bool) -> bool:
        """Freeze or resume the countdown; submissions are refused while paused."""

        if self._phase is not ExamPhase.ACTIVE or paused == self._paused:
            return False
        self._paused = paused
        if paused:
            self._clock.pause()
        else:
            self._clock.resume()
        self._changed()
        return True

    def _answerable(self) -> Optional[ExamSession]:
        session = self._session
        if (
            self._phase is not ExamPhase.ACTIVE
            or session is None
            or self._paused
            or session.is_answered()
        ):
            return None
        return session

    def _handle_expiry(self) -> None:
        if self._answerable() is None:
            self._logger.debug("Ignored clock expiry outside an open question")
            return
        self._submit(None, forced=True)

    def _submit(self, answer: Optional[str], *, forced: bool) -> bool:
        session = self._session
        if session is None:
            raise SessionError("no exam session to submit to")
        self._clock.stop()
        correct = session.record(answer)
        index = session.index
        self._logger.info(
            "Graded question",
            extra={
                "token": self._token,
                "index": index,
                "correct": correct,
                "forced": forced,
                "score": session.score,
            },
        )
        self._set_phase(ExamPhase.GRADING)
        token = self._token
        self._pacing = self._scheduler.after(
            self.settings.pacing_seconds,
            lambda: self._after_pacing(token, index),
        )
        return True

    def _after_pacing(self, token: int, index: int) -> None:
        session = self._session
        if (
            self._phase is not ExamPhase.GRADING
            or token != self._token
            or session is None
            or session.index != index
        ):
            self._logger.debug(
                "Discarded stale pacing timer",
                extra={"token": token, "index": index},
            )
            return
        self._pacing = None
        if session.is_last:
            self._complete(session)
            return
        session.advance()
        self._activate()

    def _activate(self) -> None:
        self._paused = False
        self._clock.start()
        self._set_phase(ExamPhase.ACTIVE)

    def _complete(self, session: ExamSession) -> None:
        session.advance()
        result = ExamResult.build(session.config, session.questions, session.answers)
        self.history.append(result)
        if self.history.write_error is not None:
            self.last_error = f"Result not saved: {self.history.write_error}"
        self._last_result = result
        self._last_reward = result.score * self.settings.reward_per_correct
        self._set_phase(ExamPhase.COMPLETED)
        self._logger.info(
            "Exam completed",
            extra={
                "result_id": result.id,
                "score": result.score,
                "total": result.total,
                "reward": self._last_reward,
            },
        )
        if self.on_complete is not None:
            self.on_complete(self._last_reward, result.topic)

    # -- leaving a session -------------------------------------------------

    def abandon(self) -> bool:
        """Drop the running session without persisting or rewarding it."""

        if self._phase not in (ExamPhase.ACTIVE, ExamPhase.GRADING):
            return False
        self._teardown()
        self._token += 1
        self._logger.info("Exam abandoned")
        self._set_phase(ExamPhase.SETUP)
        return True

    def new_session(self) -> bool:
        if self._phase is not ExamPhase.COMPLETED:
            return False
        self._teardown()
        self.last_error = None
        self._set_phase(ExamPhase.SETUP)
        return True

    def _teardown(self) -> None:
        self._clock.stop()
        if self._pacing is not None:
            self._pacing.cancel()
            self._pacing = None
        self._session = None
        self._paused = False

    # -- history / review --------------------------------------------------

    def open_history(self) -> bool:
        if self._phase is not ExamPhase.SETUP:
            return False
        # Unsaved results only live in memory.
        if self.history.write_error is None:
            self.history.load()
        self._set_phase(ExamPhase.HISTORY)
        return True

    def close_history(self) -> bool:
        if self._phase is not ExamPhase.HISTORY:
            return False
        self._set_phase(ExamPhase.SETUP)
        return True

    def open_review(self, result_id: str) -> bool:
        if self._phase is not ExamPhase.HISTORY:
            return False
        result = self.history.get(result_id)
        if result is None:
            return False
        self._reviewing = result
        self._set_phase(ExamPhase.REVIEWING)
        return True

    def close_review(self) -> bool:
        if self._phase is not ExamPhase.REVIEWING:
            return False
        self._reviewing = None
        self._set_phase(ExamPhase.HISTORY)
        return True

    # -- notifications -----------------------------------------------------

    def _set_phase(self, phase: ExamPhase) -> None:
        self._phase = phase
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
