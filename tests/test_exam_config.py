from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from exam_sim.exam import config as config_mod
from exam_sim.exam.config import ConfigError, load_config


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file(clean_env):
    cfg = load_config()
    assert cfg.exam.question_count == 5
    assert cfg.exam.seconds_per_question == 60
    assert cfg.exam.pacing_seconds == 1.5
    assert cfg.exam.default_grade == "Class 9"
    assert cfg.exam.default_topic == "Algebraic Equations"
    assert cfg.rewards.per_correct == 40
    assert cfg.history.max_entries == 20
    assert cfg.history.key == "exam_history"
    assert cfg.provider.source == "openai"
    assert cfg.provider.openai.model == "gpt-4o-mini"
    assert cfg.logging.level == "INFO"
    assert cfg.data_home is None


def test_workspace_config_is_picked_up(clean_env):
    _write(
        clean_env / "config" / "exam.toml",
        "[exam]\nquestion_count = 10\n[rewards]\nper_correct = 25\n",
    )
    cfg = load_config()
    assert cfg.exam.question_count == 10
    assert cfg.rewards.per_correct == 25
    assert cfg.exam.seconds_per_question == 60


def test_env_path_overrides_workspace(clean_env, tmp_path, monkeypatch):
    _write(clean_env / "config" / "exam.toml", "[exam]\nquestion_count = 10\n")
    other = _write(tmp_path / "other.toml", "[exam]\nquestion_count = 3\n")
    monkeypatch.setenv(config_mod.CONFIG_PATH_ENV, str(other))
    assert load_config().exam.question_count == 3


def test_explicit_path_must_exist(clean_env, tmp_path):
    with pytest.raises(ConfigError):
        load_config(explicit_path=tmp_path / "missing.toml")


def test_unknown_key_rejected(clean_env, tmp_path):
    path = _write(tmp_path / "exam.toml", "[exam]\nquestions = 3\n")
    with pytest.raises(ConfigError) as exc:
        load_config(explicit_path=path)
    assert "exam.questions" in str(exc.value)


def test_invalid_toml_rejected(clean_env, tmp_path):
    path = _write(tmp_path / "exam.toml", "[exam\n")
    with pytest.raises(ConfigError):
        load_config(explicit_path=path)


@pytest.mark.parametrize(
    "snippet",
    [
        "[exam]\nquestion_count = 0\n",
        "[exam]\nseconds_per_question = true\n",
        "[exam]\ntick_seconds = 0\n",
        "[exam]\npacing_seconds = -1\n",
        "[exam]\ndefault_grade = \"Class 13\"\n",
        "[exam]\ndefault_topic = \"  \"\n",
        "[rewards]\nper_correct = -5\n",
        "[history]\nmax_entries = 0\n",
        "[provider]\nsource = \"carrier-pigeon\"\n",
        "[provider]\nsource = \"jsonl\"\n",
        "[provider.openai]\ntemperature = 3.5\n",
        "[logging]\nlevel = \"LOUD\"\n",
        "[logging]\nverbose = \"yes\"\n",
        "exam = 3\n",
    ],
)
def test_invalid_values_rejected(clean_env, tmp_path, snippet):
    path = _write(tmp_path / "exam.toml", snippet)
    with pytest.raises(ConfigError):
        load_config(explicit_path=path)


def test_jsonl_source_with_bank(clean_env, tmp_path):
    path = _write(
        tmp_path / "exam.toml",
        '[provider]\nsource = "JSONL"\nquestion_bank = "bank.jsonl"\n',
    )
    cfg = load_config(explicit_path=path)
    assert cfg.provider.source == "jsonl"
    assert cfg.provider.question_bank.name == "bank.jsonl"
    assert cfg.provider.question_bank.is_absolute()


def test_template_matches_defaults():
    parsed = tomllib.loads(config_mod.config_template())
    defaults = config_mod.default_tree()
    for section in ("exam", "rewards", "history", "logging"):
        assert parsed[section] == defaults[section]
    assert parsed["provider"]["source"] == defaults["provider"]["source"]
    openai_defaults = {
        key: value
        for key, value in defaults["provider"]["openai"].items()
        if value is not None
    }
    assert parsed["provider"]["openai"] == openai_defaults


def test_write_template(tmp_path):
    target = tmp_path / "config" / "exam.toml"
    config_mod.write_template(target)
    assert target.read_text(encoding="utf-8") == config_mod.config_template()
    with pytest.raises(ConfigError):
        config_mod.write_template(target)
    config_mod.write_template(target, overwrite=True)


def test_resolve_config_path_order(clean_env, tmp_path):
    explicit = tmp_path / "explicit.toml"
    assert config_mod.resolve_config_path(explicit_path=explicit) == explicit.resolve()
    env = {config_mod.CONFIG_PATH_ENV: str(tmp_path / "env.toml")}
    assert config_mod.resolve_config_path(env=env) == (tmp_path / "env.toml").resolve()
    assert config_mod.resolve_config_path() == clean_env / "config" / "exam.toml"
