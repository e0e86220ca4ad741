from __future__ import annotations

import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

SETTINGS_ENV_VAR = "CODELENS_SETTINGS"


def _default_settings_path() -> Path:
    """Return bundled default settings TOML path.

    Example:
        ```python
        path = _default_settings_path()
        ```
    """
    return Path(__file__).with_name("default_settings.toml")


def _read_settings_toml(path: Path) -> dict[str, Any]:
    """Read settings TOML and return the normalized engine table.

    Example:
        ```python
        raw = _read_settings_toml(Path("/tmp/codelens.toml"))
        ```
    """
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    engine_obj = raw.get("engine", raw)
    if not isinstance(engine_obj, dict):
        raise ValueError("Engine settings must be a TOML table")
    return engine_obj


def _list_of_str(value: Any, field_name: str) -> list[str]:
    """Validate and normalize a list-of-strings settings field.

    Example:
        ```python
        origins = _list_of_str(["http://localhost:5173"], "cors_origins")
        ```
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be a list of strings")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"'{field_name}' must contain only strings")
        out.append(item)
    return out


_DEFAULT_SETTINGS_RAW = _read_settings_toml(_default_settings_path())
DEFAULT_TIMEOUT_MS = int(_DEFAULT_SETTINGS_RAW.get("timeout_ms", 5000))
DEFAULT_TRACE_TIMEOUT_MS = int(_DEFAULT_SETTINGS_RAW.get("trace_timeout_ms", 10000))
DEFAULT_MAX_TRACE_STEPS = int(_DEFAULT_SETTINGS_RAW.get("max_trace_steps", 200))
DEFAULT_REPR_LIMIT = int(_DEFAULT_SETTINGS_RAW.get("repr_limit", 80))
DEFAULT_WORKSPACE_PREFIX = str(_DEFAULT_SETTINGS_RAW.get("workspace_prefix", "codelens-"))
DEFAULT_C_COMPILER = str(_DEFAULT_SETTINGS_RAW.get("c_compiler", "gcc"))
DEFAULT_CPP_COMPILER = str(_DEFAULT_SETTINGS_RAW.get("cpp_compiler", "g++"))
DEFAULT_CORS_ORIGINS = _list_of_str(_DEFAULT_SETTINGS_RAW.get("cors_origins", ["*"]), "cors_origins")


@dataclass(slots=True)
class EngineSettings:
    """Runtime settings shared by the dispatcher, sessions and the tracer.

    Empty strings for `workspace_root` and `python` mean "use the host default"
    (the system temp directory and the running interpreter).

    Example:
        ```python
        settings = EngineSettings(timeout_ms=2000, keep_workspaces=True)
        ```
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    trace_timeout_ms: int = DEFAULT_TRACE_TIMEOUT_MS
    max_trace_steps: int = DEFAULT_MAX_TRACE_STEPS
    repr_limit: int = DEFAULT_REPR_LIMIT
    workspace_root: str = ""
    workspace_prefix: str = DEFAULT_WORKSPACE_PREFIX
    keep_workspaces: bool = False
    python: str = ""
    c_compiler: str = DEFAULT_C_COMPILER
    cpp_compiler: str = DEFAULT_CPP_COMPILER
    cors_origins: list[str] = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.copy())
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate numeric limits after dataclass initialization.

        Example:
            ```python
            EngineSettings(timeout_ms=1000)
            ```
        """
        for name in ("timeout_ms", "trace_timeout_ms", "max_trace_steps", "repr_limit"):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"'{name}' must be a positive integer")
        if self.repr_limit < 4:
            raise ValueError("'repr_limit' must be at least 4 characters")

    @property
    def python_command(self) -> str:
        """Return the interpreter used for guest Python programs.

        Example:
            ```python
            cmd = EngineSettings().python_command
            ```
        """
        return self.python or sys.executable

    @classmethod
    def from_file(cls, config_path: str) -> "EngineSettings":
        """Create settings from a TOML file with an optional `[engine]` table.

        Example:
            ```python
            settings = EngineSettings.from_file("/etc/codelens/settings.toml")
            ```
        """
        path = Path(config_path)
        if not path.exists():
            raise ValueError(f"Settings file not found: {config_path}")
        raw = _read_settings_toml(path)
        return cls(
            timeout_ms=int(raw.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
            trace_timeout_ms=int(raw.get("trace_timeout_ms", DEFAULT_TRACE_TIMEOUT_MS)),
            max_trace_steps=int(raw.get("max_trace_steps", DEFAULT_MAX_TRACE_STEPS)),
            repr_limit=int(raw.get("repr_limit", DEFAULT_REPR_LIMIT)),
            workspace_root=str(raw.get("workspace_root", "")),
            workspace_prefix=str(raw.get("workspace_prefix", DEFAULT_WORKSPACE_PREFIX)),
            keep_workspaces=bool(raw.get("keep_workspaces", False)),
            python=str(raw.get("python", "")),
            c_compiler=str(raw.get("c_compiler", DEFAULT_C_COMPILER)),
            cpp_compiler=str(raw.get("cpp_compiler", DEFAULT_CPP_COMPILER)),
            cors_origins=_list_of_str(raw.get("cors_origins", DEFAULT_CORS_ORIGINS), "cors_origins"),
            config_path=config_path,
        )


def load_settings(config_path: str | None = None) -> EngineSettings:
    """Resolve settings from an explicit path, `CODELENS_SETTINGS`, or defaults.

    Example:
        ```python
        settings = load_settings()
        ```
    """
    path = config_path or os.environ.get(SETTINGS_ENV_VAR)
    if path:
        return EngineSettings.from_file(path)
    return EngineSettings()
