import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console

from ..core import configure_logger, ensure_workspace, load_client
from ..core.workspace import WorkspaceError, WorkspaceLayout
from .config import (
    ConfigError,
    ExamConfig,
    load_config,
    resolve_config_path,
    write_template,
)
from .history import HistoryStore, JsonFileStore, KeyValueStore, MemoryStore
from .models import GRADE_LEVELS, ExamResult
from .provider import JsonlQuestionProvider, OpenAIQuestionProvider, QuestionProvider
from .session import EngineSettings
from .view.render import render_history, render_result, render_review

_LOGGER_NAME = "exam_sim.exam"


def _load(args: argparse.Namespace) -> ExamConfig:
    return load_config(explicit_path=args.config, workspace_path=args.workspace)


def _layout_for(args: argparse.Namespace, cfg: ExamConfig) -> WorkspaceLayout:
    return ensure_workspace(path=args.workspace or cfg.data_home)


def _logger_for(cfg: ExamConfig, layout: WorkspaceLayout) -> logging.Logger:
    logger, _ = configure_logger(
        _LOGGER_NAME,
        log_dir=layout.path_for("logs"),
        level=cfg.logging.level,
        verbose=cfg.logging.verbose,
    )
    return logger


def _history_for(
    cfg: ExamConfig,
    layout: WorkspaceLayout,
    logger: logging.Logger,
    *,
    ephemeral: bool = False,
) -> HistoryStore:
    store: KeyValueStore
    if ephemeral:
        store = MemoryStore()
    else:
        store = JsonFileStore(layout.history_file)
    return HistoryStore(
        store,
        key=cfg.history.key,
        capacity=cfg.history.max_entries,
        logger=logger,
    )


def build_provider(
    cfg: ExamConfig,
    *,
    questions: Optional[Path] = None,
    seed: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> QuestionProvider:
    """Pick the question source: ``--questions``, a jsonl bank, or OpenAI."""

    count = cfg.exam.question_count
    bank = questions
    if bank is None and cfg.provider.source == "jsonl":
        bank = cfg.provider.question_bank
    if bank is not None:
        return JsonlQuestionProvider(bank, count=count, seed=seed)
    openai_cfg = cfg.provider.openai
    return OpenAIQuestionProvider(
        count=count,
        model=openai_cfg.model,
        temperature=openai_cfg.temperature,
        max_tokens=openai_cfg.max_output_tokens,
        client_factory=lambda: load_client(
            api_base=openai_cfg.api_base,
            timeout=openai_cfg.request_timeout_seconds,
        ),
        logger=logger,
    )


def engine_settings(cfg: ExamConfig) -> EngineSettings:
    return EngineSettings(
        seconds_per_question=cfg.exam.seconds_per_question,
        tick_seconds=cfg.exam.tick_seconds,
        pacing_seconds=cfg.exam.pacing_seconds,
        reward_per_correct=cfg.rewards.per_correct,
    )


def find_result(
    entries: Sequence[ExamResult], ref: str
) -> Optional[ExamResult]:
    """Match ``ref`` as a 1-based position, a full id, or a unique id prefix."""

    ref = ref.strip()
    if not ref:
        return None
    if ref.isdigit() and len(ref) <= 3:
        position = int(ref)
        if 1 <= position <= len(entries):
            return entries[position - 1]
    for result in entries:
        if result.id == ref:
            return result
    matches = [result for result in entries if result.id.startswith(ref)]
    return matches[0] if len(matches) == 1 else None


def _cmd_start(args: argparse.Namespace, cfg: ExamConfig) -> int:
    from .view.app import ExamApp

    layout = _layout_for(args, cfg)
    logger = _logger_for(cfg, layout)
    history = _history_for(cfg, layout, logger, ephemeral=args.ephemeral)
    provider = build_provider(
        cfg, questions=args.questions, seed=args.seed, logger=logger
    )
    app = ExamApp(
        provider,
        history,
        settings=engine_settings(cfg),
        topic=args.topic or cfg.exam.default_topic,
        grade=args.grade or cfg.exam.default_grade,
        logger=logger,
    )
    logger.info(
        "Launching exam session",
        extra={"history": str(layout.history_file), "ephemeral": args.ephemeral},
    )
    app.run()
    console = Console()
    if not app.completed:
        console.print("No exam completed.")
        return 0
    reward = cfg.rewards.per_correct
    for result in app.completed:
        render_result(console, result, result.score * reward)
    return 0


def _cmd_grades(args: argparse.Namespace, cfg: ExamConfig) -> int:
    for grade in GRADE_LEVELS:
        marker = " (default)" if grade == cfg.exam.default_grade else ""
        print(f"- {grade}{marker}")
    return 0


def _cmd_history(args: argparse.Namespace, cfg: ExamConfig) -> int:
    layout = _layout_for(args, cfg)
    logger = _logger_for(cfg, layout)
    entries = _history_for(cfg, layout, logger).load()
    if args.limit is not None and args.limit > 0:
        entries = entries[: args.limit]
    render_history(Console(), entries)
    return 0


def _cmd_review(args: argparse.Namespace, cfg: ExamConfig) -> int:
    layout = _layout_for(args, cfg)
    logger = _logger_for(cfg, layout)
    entries = _history_for(cfg, layout, logger).load()
    result = find_result(entries, args.ref)
    if result is None:
        sys.stderr.write(f"No exam matches '{args.ref}'.\n")
        return 1
    render_review(Console(), result)
    return 0


def _cmd_config_init(args: argparse.Namespace) -> int:
    try:
        target = resolve_config_path(
            explicit_path=args.config, workspace_path=args.workspace
        )
        if args.config is None:
            ensure_workspace(path=args.workspace)
        write_template(target, overwrite=args.force)
    except (ConfigError, WorkspaceError) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2
    print(f"Wrote config template to {target}")
    return 0


def _cmd_config_path(args: argparse.Namespace) -> int:
    try:
        target = resolve_config_path(
            explicit_path=args.config, workspace_path=args.workspace
        )
    except WorkspaceError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2
    print(target)
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="exam-sim exam",
        description="Timed, grade-calibrated multiple-choice exams",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--config", type=Path, help="Path to exam.toml")
    p.add_argument(
        "--workspace",
        type=Path,
        help="Workspace root (defaults to EXAM_SIM_DATA_HOME or ~/.exam-sim-data)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    sp_start = sub.add_parser("start", help="Launch the exam TUI")
    sp_start.add_argument("--topic", help="Pre-filled exam topic")
    sp_start.add_argument(
        "--grade", choices=GRADE_LEVELS, help="Pre-selected grade level"
    )
    sp_start.add_argument(
        "--questions",
        type=Path,
        help="Serve questions from a JSONL bank instead of the configured source",
    )
    sp_start.add_argument(
        "--seed", type=int, help="Random seed for question bank sampling"
    )
    sp_start.add_argument(
        "--ephemeral",
        action="store_true",
        help="Keep history in memory only for this run",
    )

    sub.add_parser("grades", help="List supported grade levels")

    sp_hist = sub.add_parser("history", help="List past exams, newest first")
    sp_hist.add_argument("--limit", type=int)

    sp_rev = sub.add_parser("review", help="Review a past exam")
    sp_rev.add_argument("ref", help="Exam id, id prefix, or history position")

    sp_cfg = sub.add_parser("config", help="Manage exam.toml")
    cfg_sub = sp_cfg.add_subparsers(dest="action", required=True)
    sp_cfg_init = cfg_sub.add_parser("init", help="Write the config template")
    sp_cfg_init.add_argument("--force", action="store_true")
    cfg_sub.add_parser("path", help="Print the resolved config path")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if args.command == "config" and args.action == "init":
        return _cmd_config_init(args)
    if args.command == "config" and args.action == "path":
        return _cmd_config_path(args)

    try:
        cfg = _load(args)
    except (ConfigError, WorkspaceError) as exc:
        parser.error(str(exc))

    handlers = {
        "start": _cmd_start,
        "grades": _cmd_grades,
        "history": _cmd_history,
        "review": _cmd_review,
    }
    handler = handlers.get(args.command)
    if handler is None:  # pragma: no cover - argparse enforces choices
        parser.print_help()
        return 2
    try:
        return handler(args, cfg)
    except WorkspaceError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
