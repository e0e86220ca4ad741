from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """Immutable request handed to an execution engine.

    Example:
        ```python
        req = ExecutionRequest(language="python", source="print(1)", stdin="")
        ```
    """

    language: str
    source: str
    stdin: str = ""


@dataclass(frozen=True, slots=True)
class ProcessResult:
    """Normalized outcome of one subprocess (or of a compile step).

    `compile_error` is only set by the compile step of compiled languages.

    Example:
        ```python
        out = ProcessResult(stdout="hi\\n", stderr="", exit_code=0, timed_out=False)
        ```
    """

    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool = False
    compile_error: bool = False

    @property
    def ok(self) -> bool:
        """Return True when the process exited 0 without timing out.

        Example:
            ```python
            if result.ok: ...
            ```
        """
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True, slots=True)
class TraceStep:
    """One recorded instrumentation event of a traced program.

    Example:
        ```python
        step = TraceStep(line_number=1, event_kind="line", source_line_text="x = 1")
        ```
    """

    line_number: int
    event_kind: str
    source_line_text: str = ""
    variables: dict[str, str] = field(default_factory=dict)
    output_so_far: str = ""
    function_name: str | None = None
    return_value: str | None = None
    error_message: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "TraceStep":
        """Build a step from the harness JSON representation.

        Example:
            ```python
            step = TraceStep.from_dict({"line_number": 2, "event_kind": "line"})
            ```
        """
        variables = raw.get("variables") or {}
        if not isinstance(variables, dict):
            raise ValueError("'variables' must be an object")
        return cls(
            line_number=int(raw["line_number"]),
            event_kind=str(raw["event_kind"]),
            source_line_text=str(raw.get("source_line_text", "")),
            variables={str(k): str(v) for k, v in variables.items()},
            output_so_far=str(raw.get("output_so_far", "")),
            function_name=raw.get("function_name"),
            return_value=raw.get("return_value"),
            error_message=raw.get("error_message"),
        )


@dataclass(frozen=True, slots=True)
class TraceResult:
    """Ordered trace steps plus the program's final captured output.

    Example:
        ```python
        trace = TraceResult(steps=[], stdout="", degraded=True)
        ```
    """

    steps: list[TraceStep]
    stdout: str
    degraded: bool = False
    truncated: bool = False
    timed_out: bool = False
