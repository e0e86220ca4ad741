from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .errors import EngineError
from .execution.local_engine import LocalEngine
from .execution.languages import canonical_language
from .execution.process import child_env, run_process
from .execution.types import ExecutionRequest, ProcessResult, TraceResult, TraceStep
from .execution.workspace import open_workspace
from .harness import TRACE_SENTINEL

logger = logging.getLogger(__name__)

_BUDGET_HEADROOM_MS = 1500


def _harness_path() -> Path:
    """Return the absolute path to the tracing harness module file.

    Example:
        ```python
        path = _harness_path()
        ```
    """
    return Path(__file__).resolve().with_name("harness.py")


def harness_budget_ms(timeout_ms: int) -> int:
    """Return the self-imposed harness budget, kept below the outer timeout.

    Example:
        ```python
        assert harness_budget_ms(10000) == 8500
        ```
    """
    return max(timeout_ms - _BUDGET_HEADROOM_MS, timeout_ms // 2)


def degraded_trace(source: str, stdout: str, *, timed_out: bool = False) -> TraceResult:
    """Build the fallback trace: one line step per source line, no variables.

    Example:
        ```python
        trace = degraded_trace("int main() {}\\n", stdout="")
        ```
    """
    steps = [
        TraceStep(
            line_number=index,
            event_kind="line",
            source_line_text=line.strip(),
            variables={},
            output_so_far=stdout,
        )
        for index, line in enumerate(source.splitlines(), start=1)
    ]
    return TraceResult(steps=steps, stdout=stdout, degraded=True, timed_out=timed_out)


def parse_harness_output(stdout: str) -> dict[str, Any] | None:
    """Extract the harness JSON document that follows the last sentinel line.

    Returns None when the sentinel is missing or the payload is not valid JSON.

    Example:
        ```python
        payload = parse_harness_output(result.stdout)
        ```
    """
    marker = f"{TRACE_SENTINEL}\n"
    index = stdout.rfind(marker)
    if index < 0:
        return None
    try:
        payload = json.loads(stdout[index + len(marker):])
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("steps"), list):
        return None
    return payload


class Tracer:
    """Produce step-by-step traces of guest programs.

    Example:
        ```python
        tracer = Tracer(LocalEngine())
        trace = await tracer.trace("python", "x = 1\\nprint(x)")
        ```
    """

    def __init__(self, engine: LocalEngine) -> None:
        """Bind the tracer to an engine and reuse its settings.

        Example:
            ```python
            tracer = Tracer(LocalEngine(EngineSettings(trace_timeout_ms=3000)))
            ```
        """
        self.engine = engine
        self.settings = engine.settings

    async def trace(self, language: str, source: str, stdin: str = "") -> TraceResult:
        """Trace a program; non-Python languages get the degraded trace.

        Example:
            ```python
            trace = await tracer.trace("python", "for i in range(3):\\n    print(i)")
            ```
        """
        if canonical_language(language) != "python":
            outcome = await self.engine.execute(ExecutionRequest(language=language, source=source, stdin=stdin))
            return degraded_trace(source, outcome.stdout, timed_out=outcome.timed_out)
        try:
            outcome = await self._run_harness(source, stdin)
        except EngineError as exc:
            logger.warning("Trace request rejected: %s", exc)
            return degraded_trace(source, "")
        return self._build_result(source, outcome)

    async def _run_harness(self, source: str, stdin: str) -> ProcessResult:
        """Run the harness over the source in a fresh workspace.

        Example:
            ```python
            outcome = await tracer._run_harness("print(1)", "")
            ```
        """
        timeout_ms = self.settings.trace_timeout_ms
        with open_workspace(self.settings) as workspace:
            source_path = workspace.write("main.py", source)
            return await run_process(
                self.settings.python_command,
                [
                    "-u",
                    _harness_path(),
                    "--max-steps",
                    str(self.settings.max_trace_steps),
                    "--repr-limit",
                    str(self.settings.repr_limit),
                    "--budget-ms",
                    str(harness_budget_ms(timeout_ms)),
                    source_path,
                ],
                stdin=stdin,
                timeout_ms=timeout_ms,
                cwd=workspace.path,
                env=child_env(),
            )

    def _build_result(self, source: str, outcome: ProcessResult) -> TraceResult:
        """Convert harness output to a trace, degrading when it is unusable.

        Example:
            ```python
            trace = tracer._build_result(source, outcome)
            ```
        """
        payload = parse_harness_output(outcome.stdout)
        if payload is None:
            logger.warning("Tracer harness produced no usable output (exit %s)", outcome.exit_code)
            return degraded_trace(source, outcome.stdout, timed_out=outcome.timed_out)
        try:
            steps = [TraceStep.from_dict(raw) for raw in payload["steps"]]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Tracer harness produced malformed steps: %s", exc)
            return degraded_trace(source, outcome.stdout, timed_out=outcome.timed_out)
        return TraceResult(
            steps=steps,
            stdout=str(payload.get("stdout", "")),
            degraded=False,
            truncated=bool(payload.get("truncated", False)),
            timed_out=bool(payload.get("timed_out", False)),
        )
