"""Configuration for the exam engine, loaded from ``exam.toml``.

The file groups timing, rewards, history and provider settings. Every key
has a default, so a missing file is equivalent to an empty one; unknown keys
and out-of-range values are rejected with :class:`ConfigError`.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError as exc:  # pragma: no cover - should never happen
    raise RuntimeError("Python 3.11+ required for tomllib support") from exc

from ..core.workspace import ensure_workspace
from .history import HISTORY_CAPACITY, HISTORY_KEY
from .models import DEFAULT_GRADE, DEFAULT_TOPIC, GRADE_LEVELS

CONFIG_PATH_ENV = "EXAM_SIM_CONFIG"
CONFIG_FILENAME = "exam.toml"
_TEMPLATE_RESOURCE = "template.toml"


class ConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class ExamSettings:
    question_count: int
    seconds_per_question: int
    tick_seconds: float
    pacing_seconds: float
    default_topic: str
    default_grade: str


@dataclass(frozen=True)
class RewardsConfig:
    per_correct: int


@dataclass(frozen=True)
class HistoryConfig:
    max_entries: int
    key: str


@dataclass(frozen=True)
class OpenAIConfig:
    model: str
    temperature: float
    max_output_tokens: int
    api_base: Optional[str]
    request_timeout_seconds: int


@dataclass(frozen=True)
class ProviderConfig:
    source: str
    question_bank: Optional[Path]
    openai: OpenAIConfig


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    verbose: bool


@dataclass(frozen=True)
class ExamConfig:
    data_home: Optional[Path]
    exam: ExamSettings
    rewards: RewardsConfig
    history: HistoryConfig
    provider: ProviderConfig
    logging: LoggingConfig


_DEFAULTS: Dict[str, Any] = {
    "paths": {
        "data_home": None,
    },
    "exam": {
        "question_count": 5,
        "seconds_per_question": 60,
        "tick_seconds": 1.0,
        "pacing_seconds": 1.5,
        "default_topic": DEFAULT_TOPIC,
        "default_grade": DEFAULT_GRADE,
    },
    "rewards": {
        "per_correct": 40,
    },
    "history": {
        "max_entries": HISTORY_CAPACITY,
        "key": HISTORY_KEY,
    },
    "provider": {
        "source": "openai",
        "question_bank": None,
        "openai": {
            "model": "gpt-4o-mini",
            "temperature": 0.4,
            "max_output_tokens": 2000,
            "api_base": None,
            "request_timeout_seconds": 60,
        },
    },
    "logging": {
        "level": "INFO",
        "verbose": False,
    },
}


def _merge_dict(
    base: MutableMapping[str, Any],
    override: Mapping[str, Any],
    *,
    path: str = "",
) -> None:
    for key, value in override.items():
        dotted = f"{path}{key}"
        if key not in base:
            raise ConfigError(f"Unknown configuration key '{dotted}'.")
        if isinstance(base[key], MutableMapping):
            if not isinstance(value, Mapping):
                raise ConfigError(
                    f"Expected table for '{dotted}', "
                    f"found {type(value).__name__}."
                )
            _merge_dict(base[key], value, path=f"{dotted}.")
        else:
            base[key] = value


def _positive_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{field}' must be a positive integer.")
    return value


def _non_negative_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"'{field}' must be a non-negative integer.")
    return value


def _number(
    value: Any,
    *,
    field: str,
    min_value: float,
    max_value: Optional[float] = None,
    exclusive_min: bool = False,
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    number = float(value)
    too_low = number <= min_value if exclusive_min else number < min_value
    if too_low or (max_value is not None and number > max_value):
        bound = f"above {min_value}" if exclusive_min else f">= {min_value}"
        if max_value is not None:
            bound += f" and <= {max_value}"
        raise ConfigError(f"'{field}' must be {bound}.")
    return number


def _string(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _optional_string(value: Any, *, field: str) -> Optional[str]:
    if value is None:
        return None
    return _string(value, field=field)


def _optional_path(value: Any, *, field: str) -> Optional[Path]:
    text = _optional_string(value, field=field)
    return Path(text).expanduser().resolve() if text else None


def _bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a boolean.")
    return value


def _build_exam(section: Mapping[str, Any]) -> ExamSettings:
    default_grade = _string(section["default_grade"], field="exam.default_grade")
    if default_grade not in GRADE_LEVELS:
        raise ConfigError(
            "exam.default_grade must be one of: " + ", ".join(GRADE_LEVELS)
        )
    return ExamSettings(
        question_count=_positive_int(
            section["question_count"], field="exam.question_count"
        ),
        seconds_per_question=_positive_int(
            section["seconds_per_question"], field="exam.seconds_per_question"
        ),
        tick_seconds=_number(
            section["tick_seconds"],
            field="exam.tick_seconds",
            min_value=0.0,
            exclusive_min=True,
        ),
        pacing_seconds=_number(
            section["pacing_seconds"], field="exam.pacing_seconds", min_value=0.0
        ),
        default_topic=_string(section["default_topic"], field="exam.default_topic"),
        default_grade=default_grade,
    )


def _build_provider(section: Mapping[str, Any]) -> ProviderConfig:
    source = _string(section["source"], field="provider.source").lower()
    if source not in {"openai", "jsonl"}:
        raise ConfigError("provider.source must be 'openai' or 'jsonl'.")
    question_bank = _optional_path(
        section["question_bank"], field="provider.question_bank"
    )
    if source == "jsonl" and question_bank is None:
        raise ConfigError(
            "provider.question_bank is required when provider.source is 'jsonl'."
        )
    openai_section = section["openai"]
    openai = OpenAIConfig(
        model=_string(openai_section["model"], field="provider.openai.model"),
        temperature=_number(
            openai_section["temperature"],
            field="provider.openai.temperature",
            min_value=0.0,
            max_value=2.0,
        ),
        max_output_tokens=_positive_int(
            openai_section["max_output_tokens"],
            field="provider.openai.max_output_tokens",
        ),
        api_base=_optional_string(
            openai_section["api_base"], field="provider.openai.api_base"
        ),
        request_timeout_seconds=_positive_int(
            openai_section["request_timeout_seconds"],
            field="provider.openai.request_timeout_seconds",
        ),
    )
    return ProviderConfig(
        source=source, question_bank=question_bank, openai=openai
    )


def _build_logging(section: Mapping[str, Any]) -> LoggingConfig:
    level = _string(section["level"], field="logging.level").upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigError(
            "logging.level must be one of "
            "DEBUG, INFO, WARNING, ERROR, CRITICAL."
        )
    return LoggingConfig(
        level=level, verbose=_bool(section["verbose"], field="logging.verbose")
    )


def _build_config(tree: Mapping[str, Any]) -> ExamConfig:
    history = tree["history"]
    return ExamConfig(
        data_home=_optional_path(
            tree["paths"]["data_home"], field="paths.data_home"
        ),
        exam=_build_exam(tree["exam"]),
        rewards=RewardsConfig(
            per_correct=_non_negative_int(
                tree["rewards"]["per_correct"], field="rewards.per_correct"
            )
        ),
        history=HistoryConfig(
            max_entries=_positive_int(
                history["max_entries"], field="history.max_entries"
            ),
            key=_string(history["key"], field="history.key"),
        ),
        provider=_build_provider(tree["provider"]),
        logging=_build_logging(tree["logging"]),
    )


def resolve_config_path(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    workspace_path: Optional[Path] = None,
) -> Path:
    env_map = os.environ if env is None else env
    if explicit_path is not None:
        return explicit_path.expanduser().resolve()
    env_override = env_map.get(CONFIG_PATH_ENV)
    if env_override:
        return Path(env_override).expanduser().resolve()
    layout = ensure_workspace(env=env_map, path=workspace_path, create=False)
    return layout.config_file


def load_config(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
    workspace_path: Optional[Path] = None,
) -> ExamConfig:
    """Load the TOML config, applying defaults and validation.

    Only an explicitly requested file has to exist; the workspace default
    falls back to built-in values.
    """

    path = resolve_config_path(
        explicit_path=explicit_path, env=env, workspace_path=workspace_path
    )
    tree = copy.deepcopy(_DEFAULTS)
    if explicit_path is not None or path.exists():
        _merge_dict(tree, _load_toml(path))
    return _build_config(tree)


def _load_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse config TOML: {exc}") from exc


def default_tree() -> Dict[str, Any]:
    """Return a copy of the default configuration tree."""

    return copy.deepcopy(_DEFAULTS)


def config_template() -> str:
    """Return the packaged ``exam.toml`` template."""

    resource = resources.files(__package__).joinpath(_TEMPLATE_RESOURCE)
    return resource.read_text(encoding="utf-8")


def write_template(
    path: Path, *, overwrite: bool = False, mode: int = 0o600
) -> Path:
    """Write the default template to ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists() and not overwrite:
        raise ConfigError(f"Config already exists: {path}")
    path.write_text(config_template(), encoding="utf-8")
    try:
        path.chmod(mode)
    except PermissionError:
        pass
    return path
