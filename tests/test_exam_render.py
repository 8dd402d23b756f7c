from __future__ import annotations

from rich.console import Console

from exam_sim.exam.models import ExamResult, SessionConfig
from exam_sim.exam.view.render import (
    format_timestamp,
    render_history,
    render_result,
    render_review,
)
from fixtures import make_questions


def _console() -> Console:
    return Console(record=True, width=100, color_system=None)


def _result(answers, topic="Optics") -> ExamResult:
    questions = make_questions(len(answers))
    return ExamResult.build(SessionConfig(topic, "Class 11"), questions, answers)


def test_render_result_shows_score_and_reward():
    console = _console()
    render_result(console, _result(["1-a", "2-b"]), reward=40)
    out = console.export_text()
    assert "Session Concluded" in out
    assert "1/2" in out
    assert "50.0%" in out
    assert "+40" in out


def test_render_history_empty_panel():
    console = _console()
    render_history(console, [])
    assert "No previous sessions found." in console.export_text()


def test_render_history_lists_entries():
    newest = _result(["1-a", "2-a"], topic="Optics")
    older = _result(["1-b", "2-b"], topic="Fractions")
    console = _console()
    render_history(console, [newest, older])
    out = console.export_text()
    assert out.index("Optics") < out.index("Fractions")
    assert "2/2" in out and "0/2" in out
    assert newest.id[:8] in out


def test_render_review_reports_each_question():
    console = _console()
    render_review(console, _result(["1-a", "2-c", None, "4-a", "5-a"]))
    out = console.export_text()
    assert "Excellent Performance" not in out
    assert "Keep Practicing" in out
    assert "Your answer: 2-c" in out
    assert "No answer (time expired)" in out
    assert "Because 1-a." in out
    assert "✓" in out and "✗" in out


def test_render_review_excellent_label():
    console = _console()
    render_review(console, _result(["1-a", "2-a", "3-a", "4-a", "5-b"]))
    assert "Excellent Performance" in console.export_text()


def test_format_timestamp_passthrough_for_garbage():
    assert format_timestamp("yesterday") == "yesterday"
    assert format_timestamp("2024-03-01T10:00:00+00:00").startswith("2024-0")
