from __future__ import annotations

import pytest

from exam_sim import cli


@pytest.fixture(autouse=True)
def reset_metadata(monkeypatch):
    def fake_version(name: str) -> str:
        assert name == "exam-sim"
        return "0.0-test"

    monkeypatch.setattr(cli.metadata, "version", fake_version)
    yield


def test_version_command(capsys):
    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == "0.0-test"


def test_version_command_handles_missing_package(monkeypatch, capsys):
    monkeypatch.setattr(
        cli.metadata,
        "version",
        lambda name: (_ for _ in ()).throw(cli.metadata.PackageNotFoundError()),
    )
    assert cli.main(["--version"]) == 0
    assert capsys.readouterr().out.strip() == "unknown"


def test_no_args_prints_usage_and_returns_error(capsys):
    assert cli.main([]) == 2
    out = capsys.readouterr().out
    assert "Usage: exam-sim" in out
    assert "Available commands:" in out


def test_help_flag_and_command(capsys):
    assert cli.main(["--help"]) == 0
    assert "Usage: exam-sim" in capsys.readouterr().out
    assert cli.main(["help"]) == 0
    assert "Usage: exam-sim" in capsys.readouterr().out


def test_help_for_command(capsys):
    assert cli.main(["help", "exam"]) == 0
    out = capsys.readouterr().out
    assert "exam: Take timed exams" in out
    assert "exam-sim exam --help" in out


def test_help_for_unknown_command(capsys):
    assert cli.main(["help", "bogus"]) == 2
    assert "Unknown command 'bogus'" in capsys.readouterr().err


def test_list_outputs_command_table(capsys):
    assert cli.main(["list"]) == 0
    out = capsys.readouterr().out
    assert "init" in out
    assert "exam" in out
    assert "(TUI)" in out


def test_unknown_command(capsys):
    assert cli.main(["nope"]) == 2
    assert "Unknown command 'nope'" in capsys.readouterr().err


def test_init_dispatches_to_workspace_cli(tmp_path, capsys):
    target = tmp_path / "ws"
    assert cli.main(["init", "--path", str(target), "--quiet"]) == 0
    assert (target / "history").is_dir()
    assert capsys.readouterr().out == ""


def test_exam_dispatch_returns_handler_code(clean_env, capsys):
    assert cli.main(["exam", "grades"]) == 0
    assert "Class 12" in capsys.readouterr().out


def test_exam_dispatch_normalizes_argparse_exit(clean_env, capsys):
    assert cli.main(["exam", "--help"]) == 0
    assert "usage: exam-sim exam" in capsys.readouterr().out
    assert cli.main(["exam", "unknown-subcommand"]) == 2


def test_invoke_main_handles_zero_arg_callables():
    assert cli._invoke_main(lambda: 3, "prog", ["x"]) == 3
    assert cli._invoke_main(lambda argv: None, "prog", []) == 0


def test_invoke_main_string_exit(capsys):
    def fails(argv):
        raise SystemExit("bad things")

    assert cli._invoke_main(fails, "prog", []) == 1
    assert "bad things" in capsys.readouterr().err
