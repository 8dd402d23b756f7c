"""Rich renderables for results, history listings and reviews.

The ``*_renderable`` builders are shared by the CLI (printed to a console)
and the Textual app (mounted inside ``Static`` widgets).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from rich import box
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ..models import ExamResult, Question
from ..review import OptionMark, build_review, is_passing, performance_label

_MARK_STYLE = {
    OptionMark.CORRECT: "bold green",
    OptionMark.INCORRECT: "bold red",
    OptionMark.NEUTRAL: "dim",
}
_MARK_ICON = {
    OptionMark.CORRECT: "✓",
    OptionMark.INCORRECT: "✗",
    OptionMark.NEUTRAL: " ",
}


def format_timestamp(value: str) -> str:
    """Render an ISO timestamp in local time, or pass it through unchanged."""

    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return value
    return moment.astimezone().strftime("%Y-%m-%d %H:%M")


def result_renderable(result: ExamResult, reward: int) -> RenderableType:
    overview = Table(
        title="Session Concluded",
        show_header=False,
        box=box.MINIMAL_DOUBLE_HEAD,
    )
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Topic", result.topic)
    overview.add_row("Grade", result.grade)
    overview.add_row("Raw score", f"{result.score}/{result.total}")
    overview.add_row("Accuracy", f"{result.accuracy * 100:.1f}%")
    overview.add_row("Reward", Text(f"+{reward}", style="bold green"))
    return overview


def history_renderable(results: Sequence[ExamResult]) -> RenderableType:
    if not results:
        return Panel(
            "No previous sessions found.",
            title="Exam History",
            border_style="yellow",
        )
    table = Table(title="Exam History", box=box.SIMPLE, expand=True)
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Topic", overflow="fold")
    table.add_column("Grade")
    table.add_column("Taken")
    table.add_column("ID", style="dim")
    for position, result in enumerate(results, start=1):
        style = "green" if is_passing(result.score, result.total) else "dim"
        table.add_row(
            str(position),
            Text(f"{result.score}/{result.total}", style=style),
            result.topic,
            result.grade,
            format_timestamp(result.timestamp),
            result.id[:8],
        )
    return table


def question_renderable(question: Question, number: int, total: int) -> RenderableType:
    header = Text.assemble(
        (f"Question {number}", "bold cyan"), (f" / {total}", "dim")
    )
    return Group(Rule(header), Text(question.text, style="bold"))


def review_renderable(result: ExamResult) -> RenderableType:
    label = performance_label(result.score, result.total)
    label_style = "green" if label.startswith("Excellent") else "yellow"
    parts: list[RenderableType] = [
        Rule(
            Text.assemble(
                (result.topic, "bold cyan"),
                (f"  {result.grade} • Score {result.score}/{result.total}", "dim"),
            )
        ),
        Text(label, style=f"bold {label_style}", justify="right"),
    ]
    for item in build_review(result):
        header = Text(f"{item.number}. ", style="bold")
        header.append(item.question.text, style="bold")
        options = Table(show_header=False, box=None, expand=True, padding=(0, 1))
        options.add_column("Mark", width=2)
        options.add_column("Option")
        for option, mark in item.marks:
            options.add_row(
                Text(_MARK_ICON[mark], style=_MARK_STYLE[mark]),
                Text(option, style=_MARK_STYLE[mark]),
            )
        footer = Text()
        if item.timed_out:
            footer.append("No answer (time expired)", style="yellow")
        elif not item.is_correct:
            footer.append(f"Your answer: {item.user_answer}", style="red")
        else:
            footer.append("Correct", style="green")
        if item.question.explanation:
            footer.append("\n" + item.question.explanation, style="italic")
        parts.append(
            Panel(
                Group(header, options, footer),
                border_style="green" if item.is_correct else "red",
            )
        )
    return Group(*parts)


def render_result(console: Console, result: ExamResult, reward: int) -> None:
    console.print()
    console.print(result_renderable(result, reward))


def render_history(console: Console, results: Sequence[ExamResult]) -> None:
    console.print(history_renderable(results))


def render_review(console: Console, result: ExamResult) -> None:
    console.print()
    console.print(review_renderable(result))
