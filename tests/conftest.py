from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
for extra in (TESTS_DIR, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from exam_sim.exam.history import HistoryStore, MemoryStore  # noqa: E402
from exam_sim.exam.session import EngineSettings, ExamEngine  # noqa: E402
from fixtures import (  # noqa: E402
    FakeQuestionProvider,
    FakeScheduler,
    make_questions,
)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def history(memory_store: MemoryStore) -> HistoryStore:
    return HistoryStore(memory_store)


@pytest.fixture
def questions():
    return make_questions(3)


@pytest.fixture
def provider(questions) -> FakeQuestionProvider:
    return FakeQuestionProvider(questions)


@pytest.fixture
def completions() -> list:
    """Collects ``(reward, topic)`` pairs passed to ``on_complete``."""

    return []


@pytest.fixture
def make_engine(
    history: HistoryStore, scheduler: FakeScheduler, completions: list
) -> Callable[..., ExamEngine]:
    def factory(**kwargs) -> ExamEngine:
        kwargs.setdefault("settings", EngineSettings())
        kwargs.setdefault(
            "on_complete", lambda reward, topic: completions.append((reward, topic))
        )
        return ExamEngine(history, scheduler, **kwargs)

    return factory


@pytest.fixture
def engine(make_engine) -> ExamEngine:
    return make_engine()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    """Point the workspace and config lookups at a temp directory."""

    home = tmp_path / "data"
    monkeypatch.setenv("EXAM_SIM_DATA_HOME", str(home))
    monkeypatch.delenv("EXAM_SIM_CONFIG", raising=False)
    yield home
