from __future__ import annotations

import argparse
import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter

from codelens_engine import EngineSettings, LocalEngine, Tracer, load_settings, run_code
from codelens_engine.api import create_app
from codelens_engine.execution.languages import language_for_filename, supported_languages, toolchain_for

_CONSOLE = Console(no_color=False)
_LOG_LEVELS = ["debug", "info", "warning", "error"]


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="python -m cle")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for codelens-engine.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m cle",
        description=(
            "codelens-engine CLI\n"
            "Run, trace and serve guest programs (Python, C, C++).\n"
            "Every run gets its own temporary workspace and a wall-clock timeout."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m cle run hello.py\n"
            "  python -m cle run sum.c --stdin \"2 3\"\n"
            "  python -m cle trace loop.py\n"
            "  python -m cle languages\n"
            "  python -m cle serve --port 5050\n\n"
            "Settings Examples:\n"
            "  python -m cle --settings ./codelens.toml serve\n"
            "  CODELENS_SETTINGS=./codelens.toml python -m cle run main.cpp"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--settings",
        help=(
            "Path to a settings TOML file.\n"
            "Defaults to $CODELENS_SETTINGS, then the bundled defaults."
        ),
    )
    parser.add_argument(
        "--log-level",
        choices=_LOG_LEVELS,
        default="warning",
        help="Logging verbosity (default: warning).",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Run a source file once and print its output.",
        description=(
            "Compile (C/C++) and run a source file once.\n"
            "Exit status is 0 when the program succeeded, 1 otherwise."
        ),
        epilog=(
            "Examples:\n"
            "  python -m cle run hello.py\n"
            "  python -m cle run sum.cpp --stdin \"2 3\"\n"
            "  python -m cle run snippet.txt --language python"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("file", help="Source file to run.")
    run_cmd.add_argument(
        "--language",
        help="Guest language (python, c, cpp). Inferred from the extension when omitted.",
    )
    run_cmd.add_argument("--stdin", default="", help="Text fed to the program's standard input.")

    trace_cmd = sub.add_parser(
        "trace",
        help="Trace a Python source file step by step.",
        description=(
            "Record line, call and return events of a Python program.\n"
            "Other languages produce one step per source line."
        ),
        epilog=(
            "Examples:\n"
            "  python -m cle trace loop.py\n"
            "  python -m cle trace read_two.py --stdin \"2 3\""
        ),
        formatter_class=_HELP_FORMATTER,
    )
    trace_cmd.add_argument("file", help="Source file to trace.")
    trace_cmd.add_argument("--language", help="Guest language. Inferred from the extension when omitted.")
    trace_cmd.add_argument("--stdin", default="", help="Text fed to the program's standard input.")

    sub.add_parser(
        "languages",
        help="List supported guest languages and their toolchains.",
        description="Show each guest language with its compiler or interpreter.",
        formatter_class=_HELP_FORMATTER,
    )

    serve_cmd = sub.add_parser(
        "serve",
        help="Serve the HTTP and WebSocket API.",
        description=(
            "Start the API server.\n"
            "Batch runs, traces, level checks and interactive sessions (/ws/session)."
        ),
        epilog=(
            "Example:\n"
            "  python -m cle serve --host 0.0.0.0 --port 5050"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    serve_cmd.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1).")
    serve_cmd.add_argument("--port", type=int, default=5050, help="Bind port (default: 5050).")

    return parser


def configure_logging(level: str) -> None:
    """Route stdlib logging through Rich at the requested level.

    Example:
        ```python
        configure_logging("info")
        ```
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def build_settings(args: argparse.Namespace) -> EngineSettings:
    """Resolve settings from CLI flags and environment.

    Example:
        ```python
        settings = build_settings(args)
        ```
    """
    return load_settings(args.settings)


def _resolve_language(args: argparse.Namespace, parser: argparse.ArgumentParser) -> str:
    """Return the explicit language or the one implied by the file extension.

    Example:
        ```python
        language = _resolve_language(args, parser)
        ```
    """
    language = args.language or language_for_filename(args.file)
    if language is None:
        parser.error(f"Cannot infer the language of '{args.file}'; pass --language")
    return language


def _read_source(path: str, parser: argparse.ArgumentParser) -> str:
    """Read a source file or fail with a parser error.

    Example:
        ```python
        code = _read_source("hello.py", parser)
        ```
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        parser.error(f"Cannot read '{path}': {exc.strerror or exc}")


def _print_run(result: Any) -> None:
    """Render a batch result as Rich panels.

    Example:
        ```python
        _print_run(result)
        ```
    """
    style = "green" if result.succeeded else "red"
    _CONSOLE.print(Panel.fit(result.stdout or "(no output)", title="stdout", border_style="cyan"))
    if result.stderr:
        _CONSOLE.print(Panel.fit(result.stderr, title="stderr", border_style="red"))
    _CONSOLE.print(
        Panel.fit(
            f"{result.message} (exit code {result.exit_code})",
            style=f"bold {style}",
        )
    )


def _print_trace(trace: Any) -> None:
    """Render trace steps in a Rich table.

    Example:
        ```python
        _print_trace(trace)
        ```
    """
    title = "Trace (degraded)" if trace.degraded else "Trace"
    table = Table(title=title)
    table.add_column("#", style="cyan")
    table.add_column("Line", style="magenta")
    table.add_column("Event")
    table.add_column("Source")
    table.add_column("Variables")
    for index, step in enumerate(trace.steps, start=1):
        detail = ", ".join(f"{name}={value}" for name, value in step.variables.items())
        if step.event_kind == "return" and step.return_value is not None:
            detail = f"{step.function_name} -> {step.return_value}"
        if step.event_kind == "error" and step.error_message:
            detail = step.error_message
        table.add_row(str(index), str(step.line_number), step.event_kind, step.source_line_text, detail)
    _CONSOLE.print(table)
    if trace.truncated:
        _CONSOLE.print(Panel.fit("Step limit reached; later steps were not recorded.", style="bold yellow"))
    if trace.timed_out:
        _CONSOLE.print(Panel.fit("Program was stopped after its time budget.", style="bold yellow"))
    _CONSOLE.print(Panel.fit(trace.stdout or "(no output)", title="stdout", border_style="cyan"))


def _print_languages(settings: EngineSettings) -> None:
    """Render supported languages and their toolchains.

    Example:
        ```python
        _print_languages(EngineSettings())
        ```
    """
    table = Table(title="Guest Languages")
    table.add_column("Language", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Command")
    for language in supported_languages():
        chain = toolchain_for(language, settings)
        kind = "compiled" if chain.compiled else "interpreted"
        table.add_row(language, kind, chain.compiler or chain.interpreter or "")
    _CONSOLE.print(table)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `cle` CLI command handler.

    Example:
        ```python
        code = main(["run", "hello.py"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.log_level)
    settings = build_settings(args)

    if args.command == "run":
        language = _resolve_language(args, parser)
        code = _read_source(args.file, parser)
        result = asyncio.run(run_code(language, code, engine=LocalEngine(settings), stdin=args.stdin))
        _print_run(result)
        return 0 if result.succeeded else 1
    if args.command == "trace":
        language = _resolve_language(args, parser)
        code = _read_source(args.file, parser)
        trace = asyncio.run(Tracer(LocalEngine(settings)).trace(language, code, stdin=args.stdin))
        _print_trace(trace)
        return 0
    if args.command == "languages":
        _print_languages(settings)
        return 0
    if args.command == "serve":
        uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=args.log_level)
        return 0

    parser.error("Unhandled command")
