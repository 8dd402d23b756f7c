from __future__ import annotations

from exam_sim.workspace import cli as workspace_cli


def test_init_reports_created_directories(tmp_path, capsys):
    target = tmp_path / "ws"

    assert workspace_cli.main(["--path", str(target)]) == 0

    out = capsys.readouterr().out
    assert f"Workspace ready at {target} (created)" in out
    for name in ("config", "logs", "history"):
        assert name in out
    assert "exam-sim exam config init" in out


def test_init_is_idempotent(tmp_path, capsys):
    target = tmp_path / "ws"
    workspace_cli.main(["--path", str(target)])
    capsys.readouterr()

    assert workspace_cli.main(["--path", str(target)]) == 0
    out = capsys.readouterr().out
    assert "(exists)" in out
    assert "(created)" not in out


def test_init_mentions_existing_config(tmp_path, capsys):
    target = tmp_path / "ws"
    (target / "config").mkdir(parents=True)
    (target / "config" / "exam.toml").write_text("", encoding="utf-8")

    assert workspace_cli.main(["--path", str(target)]) == 0
    assert f"Config: {target / 'config' / 'exam.toml'}" in capsys.readouterr().out


def test_init_quiet(tmp_path, capsys):
    assert workspace_cli.main(["--path", str(tmp_path / "ws"), "--quiet"]) == 0
    assert capsys.readouterr().out == ""


def test_init_reports_errors(tmp_path, capsys):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    assert workspace_cli.main(["--path", str(blocker)]) == 2
    assert "Error:" in capsys.readouterr().err
