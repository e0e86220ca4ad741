import sys
from pathlib import Path

import pytest

from codelens_engine import EngineSettings, load_settings
from codelens_engine.settings import SETTINGS_ENV_VAR, _default_settings_path, _read_settings_toml


def test_defaults_come_from_bundled_file() -> None:
    settings = EngineSettings()

    assert settings.timeout_ms == 5000
    assert settings.trace_timeout_ms == 10000
    assert settings.max_trace_steps == 200
    assert settings.repr_limit == 80
    assert settings.workspace_prefix == "codelens-"
    assert settings.keep_workspaces is False
    assert settings.python_command == sys.executable


def test_from_file_reads_engine_table(tmp_path: Path) -> None:
    settings_file = tmp_path / "codelens.toml"
    settings_file.write_text(
        (
            "[engine]\n"
            "timeout_ms = 1500\n"
            "max_trace_steps = 50\n"
            "c_compiler = \"clang\"\n"
            "cors_origins = [\"http://localhost:5173\"]\n"
        ),
        encoding="utf-8",
    )

    settings = EngineSettings.from_file(str(settings_file))

    assert settings.timeout_ms == 1500
    assert settings.max_trace_steps == 50
    assert settings.c_compiler == "clang"
    assert settings.cpp_compiler == "g++"
    assert settings.cors_origins == ["http://localhost:5173"]
    assert settings.config_path == str(settings_file)


def test_from_file_accepts_top_level_keys(tmp_path: Path) -> None:
    settings_file = tmp_path / "codelens.toml"
    settings_file.write_text("keep_workspaces = true\npython = \"/usr/bin/python3\"\n", encoding="utf-8")

    settings = EngineSettings.from_file(str(settings_file))

    assert settings.keep_workspaces is True
    assert settings.python_command == "/usr/bin/python3"


def test_from_file_rejects_bad_values(tmp_path: Path) -> None:
    settings_file = tmp_path / "codelens.toml"
    settings_file.write_text("[engine]\ncors_origins = \"*\"\n", encoding="utf-8")

    with pytest.raises(ValueError, match="cors_origins"):
        EngineSettings.from_file(str(settings_file))


def test_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="not found"):
        EngineSettings.from_file(str(tmp_path / "nope.toml"))


def test_non_positive_limits_are_rejected() -> None:
    with pytest.raises(ValueError, match="timeout_ms"):
        EngineSettings(timeout_ms=0)
    with pytest.raises(ValueError, match="repr_limit"):
        EngineSettings(repr_limit=2)


def test_load_settings_uses_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings_file = tmp_path / "codelens.toml"
    settings_file.write_text("[engine]\ntrace_timeout_ms = 4000\n", encoding="utf-8")
    monkeypatch.setenv(SETTINGS_ENV_VAR, str(settings_file))

    assert load_settings().trace_timeout_ms == 4000


def test_load_settings_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(SETTINGS_ENV_VAR, raising=False)

    assert load_settings().config_path is None


def test_bundled_defaults_are_read_from_toml(tmp_path: Path) -> None:
    assert _default_settings_path().is_file()
    assert _read_settings_toml(_default_settings_path())["max_trace_steps"] == 200
    with pytest.raises(FileNotFoundError):
        _read_settings_toml(tmp_path / "missing.toml")
