from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, VerticalScroll
from textual.css.query import NoMatches
from textual.timer import Timer
from textual.widget import Widget
from textual.widgets import Button, Footer, Input, Select, Static

from ..history import HistoryStore
from ..models import GRADE_LEVELS, OPTION_COUNT, ExamResult
from ..provider import QuestionProvider
from ..session import (
    EngineSettings,
    ExamEngine,
    ExamPhase,
    ExamSession,
    SessionError,
)
from .render import (
    format_timestamp,
    question_renderable,
    result_renderable,
    review_renderable,
)

_KEY_ORDER = ("1234", "abcd")


class _TimerHandle:
    def __init__(self, timer: Timer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.stop()


class TextualScheduler:
    """Run engine timers on the app's event loop."""

    def __init__(self, app: App) -> None:
        self._app = app

    def every(self, interval: float, callback: Callable[[], None]) -> _TimerHandle:
        return _TimerHandle(self._app.set_interval(interval, callback))

    def after(self, delay: float, callback: Callable[[], None]) -> _TimerHandle:
        return _TimerHandle(self._app.set_timer(delay, callback))


# Pure helpers (testable without running the App)


def option_index(key: str) -> Optional[int]:
    """Map ``1``-``4`` or ``a``-``d`` to a zero-based option index."""

    k = str(key).strip().lower()
    if len(k) != 1:
        return None
    for keys in _KEY_ORDER:
        pos = keys.find(k)
        if 0 <= pos < OPTION_COUNT:
            return pos
    return None


def timer_text(seconds: int, *, paused: bool = False) -> str:
    text = f"⏱ {max(seconds, 0)}s"
    return f"{text} (paused)" if paused else text


def progress_text(session: ExamSession) -> str:
    number = min(session.index + 1, session.total)
    return f"Question {number} of {session.total} • Score {session.score}"


def history_label(position: int, result: ExamResult) -> str:
    return (
        f"{position}. {result.topic} ({result.grade}) "
        f"{result.score}/{result.total} • {format_timestamp(result.timestamp)}"
    )


def stage_key(engine: ExamEngine) -> tuple:
    """Identify the visible screen; ticks alone leave it unchanged."""

    session = engine.session
    if session is None:
        return (engine.phase, engine.token, len(engine.history))
    return (
        engine.phase,
        engine.token,
        session.index,
        session.pending,
        len(session.answers),
        engine.paused,
    )


class ExamApp(App):
    CSS_PATH = None
    CSS = """
#stage { padding: 1 2; }
#options Button { width: 100%; margin: 0 0 1 0; }
#options Button.selected { background: $accent; color: black; }
#options Button.correct { background: $success; }
#options Button.incorrect { background: $error; }
#timer.calm { color: $success; }
#timer.warning { color: $warning; }
#timer.critical { color: $error; text-style: bold; }
#error { color: $error; }
"""
    BINDINGS = [
        Binding("1", "pick(0)", "Option 1", show=False),
        Binding("2", "pick(1)", "Option 2", show=False),
        Binding("3", "pick(2)", "Option 3", show=False),
        Binding("4", "pick(3)", "Option 4", show=False),
        Binding("a", "pick(0)", "Option A", show=False),
        Binding("b", "pick(1)", "Option B", show=False),
        Binding("c", "pick(2)", "Option C", show=False),
        Binding("d", "pick(3)", "Option D", show=False),
        ("enter", "confirm", "Confirm"),
        ("p", "toggle_pause", "Pause"),
        ("escape", "back", "Back"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        provider: QuestionProvider,
        history: HistoryStore,
        *,
        settings: EngineSettings = EngineSettings(),
        topic: str = "",
        grade: str = GRADE_LEVELS[0],
        grades: Sequence[str] = GRADE_LEVELS,
        scheduler: object = None,
        on_complete: Optional[Callable[[int, str], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__()
        self._provider = provider
        self._topic = topic
        self._grade = grade
        self._on_complete = on_complete
        self.completed: List[ExamResult] = []
        self.engine = ExamEngine(
            history,
            scheduler or TextualScheduler(self),
            settings=settings,
            grades=grades,
            on_complete=self._handle_complete,
            on_change=self._handle_change,
            logger=logger,
        )
        self.notice: Optional[str] = None
        self._rendered: Optional[tuple] = None

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="stage"):
            yield from self._stage_widgets()
        yield Footer()

    def on_mount(self) -> None:
        self._rendered = stage_key(self.engine)

    # Actions shared by key bindings and buttons

    def start_exam(self, topic: str, grade: str) -> bool:
        self._topic, self._grade = topic, grade
        try:
            token = self.engine.request_start(topic, grade)
        except (ValueError, RuntimeError) as exc:
            self.notice = str(exc)
            self._refresh_stage(force=True)
            return False
        self.notice = None
        if self.is_running:
            self.run_worker(
                self.engine.fetch(token, self._provider),
                group="fetch",
                exclusive=True,
            )
        return True

    def pick(self, index: int) -> bool:
        session = self.engine.session
        if session is None or not 0 <= index < OPTION_COUNT:
            return False
        if self.engine.phase is not ExamPhase.ACTIVE or session.is_answered():
            return False
        return self.engine.select(session.current.options[index])

    def action_pick(self, index: int) -> None:
        self.pick(index)

    def action_confirm(self) -> None:
        self.engine.confirm()

    def action_toggle_pause(self) -> None:
        self.engine.set_paused(not self.engine.paused)

    def action_back(self) -> None:
        phase = self.engine.phase
        if phase is ExamPhase.REVIEWING:
            self.engine.close_review()
        elif phase is ExamPhase.HISTORY:
            self.engine.close_history()
        elif phase is ExamPhase.COMPLETED:
            self.engine.new_session()
        elif phase in (ExamPhase.ACTIVE, ExamPhase.GRADING):
            self.engine.abandon()
        elif phase is ExamPhase.GENERATING:
            self.engine.cancel_start()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = getattr(event.button, "id", "") or ""
        if bid == "start":
            self._start_from_form()
        elif bid.startswith("option-"):
            if self.pick(int(bid.rsplit("-", 1)[1])):
                self.engine.confirm()
        elif bid.startswith("review-"):
            self.engine.open_review(bid.split("-", 1)[1])
        elif bid == "history":
            self.engine.open_history()
        elif bid == "pause":
            self.action_toggle_pause()
        elif bid in {"back", "cancel", "new"}:
            self.action_back()
        elif bid == "quit":
            self.exit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "topic":
            self._start_from_form()

    def _start_from_form(self) -> None:
        topic = self.query_one("#topic", Input).value
        grade = self.query_one("#grade", Select).value
        self.start_exam(topic, str(grade))

    # Engine notifications

    def _handle_complete(self, reward: int, topic: str) -> None:
        result = self.engine.last_result
        if result is not None:
            self.completed.append(result)
        if self._on_complete is not None:
            self._on_complete(reward, topic)

    def _handle_change(self, engine: ExamEngine) -> None:
        self._refresh_stage()

    def _refresh_stage(self, *, force: bool = False) -> None:
        if not self.is_running:
            return
        key = stage_key(self.engine)
        if force or key != self._rendered:
            self._rendered = key
            self.call_after_refresh(self._rebuild_stage)
            return
        self._update_timer()

    async def _rebuild_stage(self) -> None:
        try:
            stage = self.query_one("#stage", VerticalScroll)
        except NoMatches:
            return
        await stage.remove_children()
        await stage.mount_all(self._stage_widgets())

    def _update_timer(self) -> None:
        try:
            timer = self.query_one("#timer", Static)
        except NoMatches:
            return
        timer.update(timer_text(self.engine.time_left, paused=self.engine.paused))
        timer.set_classes(self.engine.clock.urgency)

    # Screens

    def _stage_widgets(self) -> List[Widget]:
        phase = self.engine.phase
        if phase is ExamPhase.GENERATING:
            return [
                Static(
                    f"Generating a {self._grade} exam on {self._topic.strip()}…"
                ),
                Button("Cancel", id="cancel"),
            ]
        if phase in (ExamPhase.ACTIVE, ExamPhase.GRADING):
            return self._question_widgets()
        if phase is ExamPhase.COMPLETED:
            result = self.engine.last_result
            widgets: List[Widget] = []
            if result is not None:
                widgets.append(
                    Static(result_renderable(result, self.engine.last_reward))
                )
            if self.engine.last_error:
                widgets.append(Static(self.engine.last_error, id="error"))
            widgets.append(
                Horizontal(
                    Button("New exam", id="new", variant="primary"),
                    Button("Quit", id="quit"),
                )
            )
            return widgets
        if phase is ExamPhase.HISTORY:
            return self._history_widgets()
        if phase is ExamPhase.REVIEWING and self.engine.reviewing is not None:
            return [
                Static(review_renderable(self.engine.reviewing)),
                Button("Back to history", id="back"),
            ]
        return self._setup_widgets()

    def _setup_widgets(self) -> List[Widget]:
        grade = self._grade if self._grade in self.engine.grades else self.engine.grades[0]
        widgets: List[Widget] = [
            Static("[b]Exam Simulator[/b]"),
            Input(value=self._topic, placeholder="Topic", id="topic"),
            Select(
                [(g, g) for g in self.engine.grades],
                value=grade,
                allow_blank=False,
                id="grade",
            ),
            Horizontal(
                Button("Start exam", id="start", variant="primary"),
                Button("History", id="history"),
            ),
        ]
        error = self.notice or self.engine.last_error
        if error:
            widgets.append(Static(error, id="error"))
        return widgets

    def _question_widgets(self) -> List[Widget]:
        engine = self.engine
        session = engine.session
        if session is None:
            raise SessionError("no exam session to display")
        question = session.current
        answered = session.answers[session.index] if session.is_answered() else None
        grading = engine.phase is ExamPhase.GRADING
        timer = Static(
            timer_text(engine.time_left, paused=engine.paused), id="timer"
        )
        timer.set_classes(engine.clock.urgency)
        buttons = []
        for i, option in enumerate(question.options):
            btn = Button(f"{i + 1}) {option}", id=f"option-{i}")
            if grading:
                btn.disabled = True
                if option == question.correct_option:
                    btn.add_class("correct")
                elif option == answered:
                    btn.add_class("incorrect")
            elif option == session.pending:
                btn.add_class("selected")
            buttons.append(btn)
        widgets: List[Widget] = [
            Static(progress_text(session), id="progress"),
            timer,
            Static(question_renderable(question, session.index + 1, session.total)),
            Container(*buttons, id="options"),
        ]
        if grading:
            if answered is None:
                feedback = "Time expired."
            elif question.is_correct(answered):
                feedback = "Correct."
            else:
                feedback = f"Incorrect. The answer is {question.correct_option}."
            widgets.append(Static(feedback, id="feedback"))
        elif engine.paused:
            widgets.append(Static("Paused. Press p to resume.", id="feedback"))
        widgets.append(
            Horizontal(
                Button("Pause" if not engine.paused else "Resume", id="pause"),
                Button("Abandon", id="back"),
            )
        )
        return widgets

    def _history_widgets(self) -> List[Widget]:
        entries = self.engine.history.entries
        widgets: List[Widget] = [Static("[b]Exam History[/b]")]
        if not entries:
            widgets.append(Static("No previous sessions found."))
        for position, result in enumerate(entries, start=1):
            widgets.append(
                Horizontal(
                    Static(history_label(position, result)),
                    Button("Review", id=f"review-{result.id}"),
                )
            )
        widgets.append(Button("Back", id="back"))
        return widgets
