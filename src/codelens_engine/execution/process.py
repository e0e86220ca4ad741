from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path
from typing import Mapping, Sequence

from ..settings import DEFAULT_TIMEOUT_MS
from .types import ProcessResult

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Process timed out."
SPAWN_FAILURE_EXIT_CODE = 127
CHUNK_SIZE = 4096
_DRAIN_GRACE_SECONDS = 1.0
_PASSTHROUGH_ENV = ("SYSTEMROOT", "TMPDIR", "TEMP", "TMP")


def child_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Build the minimal environment handed to guest processes.

    Only the search path, locale and temp-dir variables survive; the caller's
    environment is otherwise not inherited.

    Example:
        ```python
        env = child_env({"PYTHONUNBUFFERED": "1"})
        ```
    """
    env = {
        "PATH": os.environ.get("PATH", os.defpath),
        "LANG": "C.UTF-8",
        "PYTHONIOENCODING": "utf-8",
    }
    for key in _PASSTHROUGH_ENV:
        if key in os.environ:
            env[key] = os.environ[key]
    if extra:
        env.update(extra)
    return env


def normalize_stdin(text: str | None) -> bytes:
    """Encode stdin text, appending a trailing newline when missing.

    Example:
        ```python
        assert normalize_stdin("2 3") == b"2 3\\n"
        ```
    """
    if not text:
        return b""
    if not text.endswith("\n"):
        text = f"{text}\n"
    return text.encode("utf-8")


async def spawn(
    argv: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> asyncio.subprocess.Process:
    """Start one subprocess from an argument vector with all three pipes attached.

    Example:
        ```python
        process = await spawn(["python3", "-c", "print(1)"])
        ```
    """
    logger.debug("Spawning %s", list(argv))
    return await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env) if env is not None else child_env(),
    )


async def terminate(process: asyncio.subprocess.Process) -> int | None:
    """Force-kill a process if it is still alive and reap it.

    Example:
        ```python
        code = await terminate(process)
        ```
    """
    if process.returncode is None:
        # The child may exit between the check and the signal.
        with contextlib.suppress(ProcessLookupError):
            process.kill()
    return await process.wait()


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    """Append every chunk of a stream to `sink` until EOF.

    Example:
        ```python
        await _drain(process.stdout, buffer)
        ```
    """
    if stream is None:
        return
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            return
        sink.extend(chunk)


async def _feed(process: asyncio.subprocess.Process, data: bytes) -> None:
    """Write stdin bytes and close the pipe so the child sees EOF.

    Example:
        ```python
        await _feed(process, b"2 3\\n")
        ```
    """
    if process.stdin is None:
        return
    try:
        if data:
            process.stdin.write(data)
            await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        logger.debug("Child closed stdin before all input was written")
    finally:
        process.stdin.close()


async def _communicate(process: asyncio.subprocess.Process, data: bytes) -> int:
    """Feed stdin and wait for the child to exit.

    Example:
        ```python
        code = await _communicate(process, b"")
        ```
    """
    await _feed(process, data)
    return await process.wait()


async def settle_readers(readers: list[asyncio.Task[None]]) -> None:
    """Give stream readers a short grace period to hit EOF, then cancel them.

    Grandchildren that inherited the pipes can keep them open after the child
    itself is gone.

    Example:
        ```python
        await settle_readers([stdout_task, stderr_task])
        ```
    """
    _, pending = await asyncio.wait(readers, timeout=_DRAIN_GRACE_SECONDS)
    for task in pending:
        task.cancel()
    for outcome in await asyncio.gather(*readers, return_exceptions=True):
        if isinstance(outcome, Exception):
            logger.warning("Stream reader failed: %s", outcome)


def _decode(raw: bytearray) -> str:
    """Decode collected bytes as UTF-8, replacing invalid sequences.

    Example:
        ```python
        text = _decode(bytearray(b"hi"))
        ```
    """
    return bytes(raw).decode("utf-8", errors="replace")


async def run_process(
    command: str | Path,
    args: Sequence[str | Path] = (),
    *,
    stdin: str | None = "",
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> ProcessResult:
    """Run one subprocess to completion or timeout and normalize its outcome.

    Exactly one of {natural exit, timeout} decides the result. The child is
    killed and reaped on every path out of this coroutine, cancellation
    included.

    Example:
        ```python
        result = await run_process("python3", ["main.py"], stdin="2 3", timeout_ms=5000)
        ```
    """
    argv = [str(command), *(str(arg) for arg in args)]
    try:
        process = await spawn(argv, cwd=cwd, env=env)
    except OSError as exc:
        logger.warning("Failed to start %s: %s", argv[0], exc)
        return ProcessResult(
            stdout="",
            stderr=f"Failed to start '{argv[0]}': {exc.strerror or exc}",
            exit_code=SPAWN_FAILURE_EXIT_CODE,
        )

    stdout_buffer = bytearray()
    stderr_buffer = bytearray()
    readers = [
        asyncio.create_task(_drain(process.stdout, stdout_buffer)),
        asyncio.create_task(_drain(process.stderr, stderr_buffer)),
    ]
    timed_out = False
    try:
        try:
            await asyncio.wait_for(_communicate(process, normalize_stdin(stdin)), timeout_ms / 1000)
        except TimeoutError:
            timed_out = True
            logger.warning("Process %s (pid %s) timed out after %sms", argv[0], process.pid, timeout_ms)
    finally:
        await terminate(process)
        await settle_readers(readers)

    stdout = _decode(stdout_buffer)
    stderr = _decode(stderr_buffer)
    if timed_out:
        return ProcessResult(
            stdout=stdout,
            stderr=stderr or TIMEOUT_MESSAGE,
            exit_code=1,
            timed_out=True,
        )
    logger.debug("Process %s exited with %s", argv[0], process.returncode)
    return ProcessResult(stdout=stdout, stderr=stderr, exit_code=process.returncode)
