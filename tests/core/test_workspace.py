from __future__ import annotations

import pytest

from exam_sim.core import workspace


def test_ensure_workspace_creates_directories(tmp_path, monkeypatch):
    root = tmp_path / "data"
    monkeypatch.setenv(workspace.WORKSPACE_ENV, str(root))

    layout = workspace.ensure_workspace()

    assert layout.home == root
    assert [name for name, _ in layout.items()] == ["config", "logs", "history"]
    for name, path in layout.items():
        assert path.is_dir()
        assert layout.created[name] is True
    assert layout.created["home"] is True
    assert layout.history_file == root / "history" / "history.json"
    assert layout.config_file == root / "config" / "exam.toml"


def test_ensure_workspace_is_idempotent(tmp_path):
    first = workspace.ensure_workspace(path=tmp_path / "existing")
    second = workspace.ensure_workspace(path=tmp_path / "existing")

    assert first.home == second.home
    assert all(not created for created in second.created.values())


def test_explicit_path_wins_over_env(tmp_path, monkeypatch):
    monkeypatch.setenv(workspace.WORKSPACE_ENV, str(tmp_path / "env"))
    layout = workspace.ensure_workspace(path=tmp_path / "custom")
    assert layout.home == tmp_path / "custom"


def test_ensure_workspace_without_create(tmp_path):
    root = tmp_path / "deferred"
    layout = workspace.ensure_workspace(env={workspace.WORKSPACE_ENV: str(root)}, create=False)

    assert layout.home == root
    assert not root.exists()
    assert all(not created for created in layout.created.values())


def test_default_location_without_env(monkeypatch, tmp_path):
    monkeypatch.setattr(workspace, "DEFAULT_WORKSPACE", tmp_path / "home-default")
    layout = workspace.ensure_workspace(env={})
    assert layout.home == tmp_path / "home-default"


def test_default_location_falls_back_to_tempdir(monkeypatch, tmp_path):
    blocked = tmp_path / "blocked"
    monkeypatch.setattr(workspace, "DEFAULT_WORKSPACE", blocked)
    monkeypatch.setattr(workspace.tempfile, "gettempdir", lambda: str(tmp_path / "tmp"))
    original = workspace._ensure_dir

    def fake_ensure(path):
        if path == blocked:
            raise PermissionError("denied")
        return original(path)

    monkeypatch.setattr(workspace, "_ensure_dir", fake_ensure)

    layout = workspace.ensure_workspace(env={})

    assert layout.home == tmp_path / "tmp" / "exam-sim-data"


def test_explicit_location_never_falls_back(monkeypatch, tmp_path):
    target = tmp_path / "explicit"
    monkeypatch.setattr(
        workspace, "_ensure_dir", lambda path: (_ for _ in ()).throw(PermissionError())
    )
    with pytest.raises(workspace.WorkspaceError):
        workspace.ensure_workspace(path=target)


def test_ensure_workspace_errors_when_path_is_file(tmp_path):
    root = tmp_path / "file"
    root.write_text("not a dir", encoding="utf-8")

    with pytest.raises(workspace.WorkspaceError):
        workspace.ensure_workspace(path=root)


def test_ensure_workspace_errors_when_subdir_is_file(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    (root / "logs").write_text("", encoding="utf-8")

    with pytest.raises(workspace.WorkspaceError):
        workspace.ensure_workspace(path=root)


def test_path_for_unknown_key_errors(tmp_path):
    layout = workspace.ensure_workspace(path=tmp_path, create=False)

    with pytest.raises(KeyError):
        layout.path_for("unknown")
