import asyncio
import os
import sys
import time

import pytest

from codelens_engine.execution.process import (
    SPAWN_FAILURE_EXIT_CODE,
    TIMEOUT_MESSAGE,
    child_env,
    normalize_stdin,
    run_process,
)


def _python(code: str, **kwargs):
    return asyncio.run(run_process(sys.executable, ["-c", code], **kwargs))


def test_captures_stdout_and_exit_code() -> None:
    result = _python("print('hello')")

    assert result.exit_code == 0
    assert result.stdout == "hello\n"
    assert result.stderr == ""
    assert result.timed_out is False
    assert result.ok


def test_captures_stderr_and_nonzero_exit() -> None:
    result = _python("import sys\nsys.stderr.write('boom')\nsys.exit(3)")

    assert result.exit_code == 3
    assert result.stderr == "boom"
    assert not result.ok


def test_stdin_gets_trailing_newline_and_eof() -> None:
    code = "import sys\ndata = sys.stdin.read()\nprint(repr(data))"
    result = _python(code, stdin="2 3")

    assert result.stdout.strip() == repr("2 3\n")


def test_empty_stdin_closes_input() -> None:
    result = _python("import sys\nprint(len(sys.stdin.read()))")

    assert result.stdout.strip() == "0"


def test_large_output_on_both_streams_does_not_block() -> None:
    code = "import sys\nfor _ in range(20000):\n    sys.stdout.write('o' * 10)\n    sys.stderr.write('e' * 10)"
    result = _python(code, timeout_ms=10000)

    assert result.exit_code == 0
    assert len(result.stdout) == 200000
    assert len(result.stderr) == 200000


def test_timeout_kills_process() -> None:
    code = "import os, time\nprint(os.getpid(), flush=True)\nwhile True:\n    time.sleep(0.05)"
    started = time.monotonic()
    result = _python(code, timeout_ms=1000)
    elapsed = time.monotonic() - started

    assert result.timed_out is True
    assert result.exit_code == 1
    assert result.stderr == TIMEOUT_MESSAGE
    assert elapsed < 1.0 + 2.0

    pid = int(result.stdout.split()[0])
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_timeout_keeps_existing_stderr() -> None:
    code = "import sys, time\nsys.stderr.write('partial')\nsys.stderr.flush()\ntime.sleep(30)"
    result = _python(code, timeout_ms=1000)

    assert result.timed_out is True
    assert result.stderr == "partial"


def test_spawn_failure_is_reported_not_raised() -> None:
    result = asyncio.run(run_process("/nonexistent/codelens-binary", timeout_ms=1000))

    assert result.exit_code == SPAWN_FAILURE_EXIT_CODE
    assert "Failed to start" in result.stderr
    assert result.timed_out is False


def test_arguments_are_not_shell_interpreted() -> None:
    result = asyncio.run(
        run_process(sys.executable, ["-c", "import sys\nprint(sys.argv[1])", "$HOME; echo hacked"])
    )

    assert result.stdout.strip() == "$HOME; echo hacked"


def test_caller_environment_is_not_inherited(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODELENS_SECRET", "leaked")

    assert "CODELENS_SECRET" not in child_env()
    result = _python("import os\nprint(os.environ.get('CODELENS_SECRET'))")
    assert result.stdout.strip() == "None"


def test_normalize_stdin() -> None:
    assert normalize_stdin("") == b""
    assert normalize_stdin(None) == b""
    assert normalize_stdin("5") == b"5\n"
    assert normalize_stdin("5\n") == b"5\n"
