import asyncio
import shutil
from pathlib import Path

import pytest

from codelens_engine import EngineSettings, LocalEngine, Tracer, run_code

pytestmark = pytest.mark.skipif(
    shutil.which("gcc") is None or shutil.which("g++") is None,
    reason="gcc and g++ are required for compiled-language tests",
)

C_SUM = """
#include <stdio.h>
int main(void) {
    int a, b;
    if (scanf("%d %d", &a, &b) != 2) return 1;
    printf("%d\\n", a + b);
    return 0;
}
"""

CPP_HELLO = """
#include <iostream>
int main() {
    std::cout << "Hello World" << std::endl;
    return 0;
}
"""


def test_c_program_reads_stdin() -> None:
    result = asyncio.run(run_code("c", C_SUM, engine=LocalEngine(), stdin="2 3"))

    assert result.succeeded
    assert result.stdout == "5"
    assert result.compile_error is False


def test_cpp_program_runs() -> None:
    result = asyncio.run(run_code("c++", CPP_HELLO, engine=LocalEngine()))

    assert result.succeeded
    assert result.stdout == "Hello World"


def test_compile_error_skips_run(tmp_path: Path) -> None:
    """Verify a failed compile reports diagnostics and never produces a binary."""
    engine = LocalEngine(EngineSettings(workspace_root=str(tmp_path), keep_workspaces=True))
    result = asyncio.run(run_code("c", "int main( {", engine=engine))

    assert not result.succeeded
    assert result.compile_error is True
    assert result.exit_code != 0
    assert result.stdout == ""
    assert result.stderr
    assert result.message == "Compilation failed."
    workspaces = list(tmp_path.glob("codelens-*"))
    assert len(workspaces) == 1
    assert (workspaces[0] / "main.c").exists()
    assert not (workspaces[0] / "main").exists()


def test_missing_compiler_is_reported() -> None:
    engine = LocalEngine(EngineSettings(c_compiler="/nonexistent/cc"))
    result = asyncio.run(run_code("c", C_SUM, engine=engine))

    assert result.compile_error is True
    assert result.exit_code == 127
    assert "Failed to start" in result.stderr


def test_runtime_timeout_of_binary() -> None:
    engine = LocalEngine(EngineSettings(timeout_ms=1500))
    result = asyncio.run(run_code("c", "int main(void) { for (;;) {} }", engine=engine))

    assert result.timed_out is True
    assert result.compile_error is False


def test_trace_of_c_program_is_degraded() -> None:
    trace = asyncio.run(Tracer(LocalEngine()).trace("c", C_SUM, stdin="4 5"))

    assert trace.degraded is True
    assert trace.stdout == "9\n"
    assert [step.line_number for step in trace.steps] == list(range(1, len(C_SUM.splitlines()) + 1))
    assert all(step.event_kind == "line" and step.variables == {} for step in trace.steps)
