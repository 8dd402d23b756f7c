from __future__ import annotations

import json
import logging
from pathlib import Path

from rich.console import Console

from exam_sim.core import logging as core_logging


def _drop_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_configure_logger_writes_json(tmp_path):
    logger, log_path = core_logging.configure_logger(
        "exam_sim.test_json",
        log_dir=tmp_path / "logs",
        level="INFO",
    )

    logger.debug("hidden")
    logger.info("Graded question", extra={"index": 2, "correct": True})
    try:
        raise ValueError("boom")
    except ValueError:
        logger.exception(
            "with error",
            extra={"path": Path("/tmp/x"), "items": ("a", 1), "obj": object()},
        )
    for handler in logger.handlers:
        handler.flush()

    assert log_path == tmp_path / "logs" / "test_json.log"
    lines = log_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["message"] == "Graded question"
    assert first["level"] == "INFO"
    assert first["extra"] == {"index": 2, "correct": True}

    last = json.loads(lines[-1])
    assert "ValueError: boom" in last["exception"]
    assert last["extra"]["path"] == "/tmp/x"
    assert last["extra"]["items"] == ["a", 1]
    assert last["extra"]["obj"].startswith("<object")

    _drop_handlers(logger)


def test_configure_logger_is_idempotent(tmp_path):
    name = "exam_sim.test_idempotent"
    first, path = core_logging.configure_logger(name, log_dir=tmp_path)
    second, again = core_logging.configure_logger(name, log_dir=tmp_path / "other")

    assert first is second
    assert again == path
    assert len(first.handlers) == 1

    _drop_handlers(first)


def test_verbose_adds_and_removes_console_handler(tmp_path):
    name = "exam_sim.test_verbose"
    console = Console(record=True)
    logger, _ = core_logging.configure_logger(
        name, log_dir=tmp_path, verbose=True, console=console
    )

    markers = [
        handler
        for handler in logger.handlers
        if getattr(handler, "_exam_sim_console", False)
    ]
    assert len(markers) == 1
    logger.debug("Discarded stale pacing timer")
    assert "Discarded stale pacing timer" in console.export_text()

    core_logging.configure_logger(name, log_dir=tmp_path, verbose=False)
    assert not any(
        getattr(handler, "_exam_sim_console", False) for handler in logger.handlers
    )

    _drop_handlers(logger)


def test_configure_logger_falls_back_when_dir_blocked(tmp_path, monkeypatch):
    target = tmp_path / "blocked"
    original_mkdir = Path.mkdir

    def fake_mkdir(self, *args, **kwargs):  # noqa: ANN001
        if self == target:
            raise PermissionError("denied")
        return original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fake_mkdir)

    logger, log_path = core_logging.configure_logger(
        "exam_sim.test_blocked", log_dir=target
    )

    assert log_path.parent != target
    assert log_path.exists()

    _drop_handlers(logger)


def test_unknown_level_defaults_to_info(tmp_path):
    logger, log_path = core_logging.configure_logger(
        "exam_sim.test_level", log_dir=tmp_path, level="chatty"
    )
    logger.debug("nope")
    logger.info("yes")
    for handler in logger.handlers:
        handler.flush()

    messages = [
        json.loads(line)["message"]
        for line in log_path.read_text(encoding="utf-8").splitlines()
    ]
    assert messages == ["yes"]

    _drop_handlers(logger)
