from pathlib import Path

import pytest

from codelens_engine import EngineSettings, ResourceError
from codelens_engine.execution.workspace import open_workspace, provision


def test_provision_returns_unique_directories(tmp_path: Path) -> None:
    settings = EngineSettings(workspace_root=str(tmp_path))
    paths = {provision(settings).path for _ in range(20)}

    assert len(paths) == 20
    for path in paths:
        assert path.is_dir()
        assert path.parent == tmp_path
        assert path.name.startswith("codelens-")


def test_provision_missing_root_raises_resource_error(tmp_path: Path) -> None:
    settings = EngineSettings(workspace_root=str(tmp_path / "missing" / "root"))

    with pytest.raises(ResourceError, match="Could not create workspace"):
        provision(settings)


def test_open_workspace_removes_directory(tmp_path: Path) -> None:
    settings = EngineSettings(workspace_root=str(tmp_path))
    with open_workspace(settings) as workspace:
        source = workspace.write("main.py", "print(1)")
        assert source.read_text(encoding="utf-8") == "print(1)"

    assert not workspace.path.exists()


def test_open_workspace_removes_directory_on_error(tmp_path: Path) -> None:
    settings = EngineSettings(workspace_root=str(tmp_path))
    with pytest.raises(RuntimeError):
        with open_workspace(settings) as workspace:
            raise RuntimeError("boom")

    assert not workspace.path.exists()


def test_keep_workspaces_leaves_artifacts(tmp_path: Path) -> None:
    settings = EngineSettings(workspace_root=str(tmp_path), keep_workspaces=True)
    with open_workspace(settings) as workspace:
        workspace.write("main.c", "int main(void) { return 0; }")

    assert (workspace.path / "main.c").exists()


def test_remove_is_idempotent(tmp_path: Path) -> None:
    workspace = provision(EngineSettings(workspace_root=str(tmp_path)))
    workspace.remove()
    workspace.remove()

    assert not workspace.path.exists()
