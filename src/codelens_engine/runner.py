from __future__ import annotations

from dataclasses import dataclass

from .execution.engine import ExecutionEngine
from .execution.types import ExecutionRequest, ProcessResult


@dataclass(slots=True)
class RunnerResult:
    """Normalized batch result returned by `run_code`.

    Example:
        ```python
        result = RunnerResult(succeeded=True, stdout="5")
        ```
    """

    succeeded: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = 0
    timed_out: bool = False
    compile_error: bool = False
    message: str = ""


def _summarize(outcome: ProcessResult) -> str:
    """Return the one-line status message shown next to a batch result.

    Example:
        ```python
        message = _summarize(outcome)
        ```
    """
    if outcome.timed_out:
        return "Execution timed out."
    if outcome.compile_error:
        return "Compilation failed."
    if outcome.stderr.strip() or outcome.exit_code != 0:
        return "Execution failed."
    return "Execution success."


def to_runner_result(outcome: ProcessResult) -> RunnerResult:
    """Convert a raw process result into the trimmed batch result.

    Example:
        ```python
        result = to_runner_result(ProcessResult("5\\n", "", 0))
        ```
    """
    stdout = outcome.stdout.strip()
    stderr = outcome.stderr.strip()
    return RunnerResult(
        succeeded=outcome.exit_code == 0 and not stderr and not outcome.timed_out,
        stdout=stdout,
        stderr=stderr,
        exit_code=outcome.exit_code,
        timed_out=outcome.timed_out,
        compile_error=outcome.compile_error,
        message=_summarize(outcome),
    )


async def run_code(
    language: str,
    code: str,
    engine: ExecutionEngine,
    stdin: str = "",
) -> RunnerResult:
    """Execute guest code once and return captured output and status.

    Example:
        ```python
        from codelens_engine import LocalEngine, run_code
        result = await run_code("python", "print(2 + 3)", engine=LocalEngine())
        ```
    """
    outcome = await engine.execute(ExecutionRequest(language=language, source=code, stdin=stdin or ""))
    return to_runner_result(outcome)
