"""Instrumentation harness executed inside the guest Python interpreter.

Usage: python -u harness.py --max-steps 200 --repr-limit 80 --budget-ms 8500 main.py

The user program runs with stdout captured in memory. After it finishes the
harness prints TRACE_SENTINEL on its own line followed by one JSON document
to the real stdout. Only the standard library may be imported here.
"""

from __future__ import annotations

import argparse
import builtins
import contextlib
import io
import json
import os
import signal
import sys
import types
from typing import Any

TRACE_SENTINEL = "__CODELENS_TRACE__"
PLACEHOLDER = "<unrepresentable>"
_HIDDEN_TYPES = (types.ModuleType, types.FunctionType, types.BuiltinFunctionType, type)


class BudgetExhausted(BaseException):
    """Raised into the user program when the harness time budget expires."""


def safe_repr(value: Any, limit: int) -> str:
    try:
        text = repr(value)
    except Exception:
        text = PLACEHOLDER
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text


class Recorder:
    """sys.settrace callback that records steps of a single source file."""

    def __init__(
        self,
        filename: str,
        lines: list[str],
        output: io.StringIO,
        max_steps: int,
        repr_limit: int,
    ) -> None:
        self.filename = filename
        self.lines = lines
        self.output = output
        self.max_steps = max_steps
        self.repr_limit = repr_limit
        self.steps: list[dict[str, Any]] = []
        self.truncated = False

    def __call__(self, frame: types.FrameType, event: str, arg: Any) -> Any:
        if frame.f_code.co_filename != self.filename:
            return None
        if event not in ("call", "line", "return"):
            return self
        if len(self.steps) >= self.max_steps:
            # Stop recording, keep running.
            self.truncated = True
            sys.settrace(None)
            return None
        if event == "line" or frame.f_code.co_name != "<module>":
            self.record(frame, event, arg)
        return self

    def line_text(self, lineno: int) -> str:
        if 1 <= lineno <= len(self.lines):
            return self.lines[lineno - 1].strip()
        return ""

    def snapshot(self, bindings: dict[str, Any]) -> dict[str, str]:
        variables: dict[str, str] = {}
        for name, value in bindings.items():
            if name.startswith("__") and name.endswith("__"):
                continue
            if isinstance(value, _HIDDEN_TYPES):
                continue
            variables[name] = safe_repr(value, self.repr_limit)
        return variables

    def record(self, frame: types.FrameType, event: str, arg: Any) -> None:
        lineno = frame.f_lineno
        step: dict[str, Any] = {
            "line_number": lineno,
            "event_kind": event,
            "source_line_text": self.line_text(lineno),
            "variables": self.snapshot(dict(frame.f_locals)),
            "output_so_far": self.output.getvalue(),
        }
        if event in ("call", "return"):
            step["function_name"] = frame.f_code.co_name
        if event == "return":
            step["return_value"] = safe_repr(arg, self.repr_limit)
        self.steps.append(step)

    def record_error(self, exc: BaseException) -> None:
        lineno = 0
        bindings: dict[str, Any] = {}
        if isinstance(exc, SyntaxError) and exc.filename == self.filename:
            lineno = exc.lineno or 0
        tb = exc.__traceback__
        while tb is not None:
            if tb.tb_frame.f_code.co_filename == self.filename:
                lineno = tb.tb_lineno
                bindings = dict(tb.tb_frame.f_locals)
            tb = tb.tb_next
        step = {
            "line_number": lineno,
            "event_kind": "error",
            "source_line_text": self.line_text(lineno),
            "variables": self.snapshot(bindings),
            "output_so_far": self.output.getvalue(),
            "error_message": f"{type(exc).__name__}: {exc}",
        }
        # The error step takes the last slot once the cap is reached.
        if self.max_steps and len(self.steps) >= self.max_steps:
            self.steps[-1] = step
        else:
            self.steps.append(step)


def _expire(signum: int, frame: Any) -> None:
    raise BudgetExhausted()


def _arm_budget(budget_ms: int) -> None:
    if budget_ms <= 0 or not hasattr(signal, "setitimer"):
        return
    signal.signal(signal.SIGALRM, _expire)
    signal.setitimer(signal.ITIMER_REAL, budget_ms / 1000)


def _disarm_budget() -> None:
    if hasattr(signal, "setitimer"):
        signal.setitimer(signal.ITIMER_REAL, 0)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trace a Python program step by step.")
    parser.add_argument("source", help="Path of the program to trace.")
    parser.add_argument("--max-steps", type=int, default=200)
    parser.add_argument("--repr-limit", type=int, default=80)
    parser.add_argument("--budget-ms", type=int, default=0)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    path = os.path.abspath(args.source)
    with open(path, encoding="utf-8") as handle:
        source = handle.read()

    # Imports in the user program resolve next to it, not next to the harness.
    sys.path[0] = os.path.dirname(path)

    output = io.StringIO()
    recorder = Recorder(path, source.splitlines(), output, args.max_steps, args.repr_limit)
    real_stdout = sys.stdout
    timed_out = False

    try:
        byte_code = compile(source, path, "exec", dont_inherit=True)
    except (SyntaxError, ValueError) as exc:
        recorder.record_error(exc)
    else:
        exec_globals: dict[str, Any] = {
            "__name__": "__main__",
            "__file__": path,
            "__builtins__": builtins,
        }
        try:
            with contextlib.redirect_stdout(output):
                _arm_budget(args.budget_ms)
                sys.settrace(recorder)
                try:
                    exec(byte_code, exec_globals, exec_globals)
                finally:
                    sys.settrace(None)
                    _disarm_budget()
        except BudgetExhausted:
            timed_out = True
        except SystemExit:
            # sys.exit() ends the program normally.
            pass
        except Exception as exc:
            recorder.record_error(exc)

    result = {
        "steps": recorder.steps,
        "stdout": output.getvalue(),
        "truncated": recorder.truncated,
        "timed_out": timed_out,
    }
    real_stdout.write(f"\n{TRACE_SENTINEL}\n")
    real_stdout.write(json.dumps(result, default=str))
    real_stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
