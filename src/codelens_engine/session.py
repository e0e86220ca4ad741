from __future__ import annotations

import asyncio
import codecs
import enum
import logging
import shutil
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError

from .errors import EngineError, ProtocolError
from .execution.languages import BINARY_NAME, Toolchain
from .execution.local_engine import LocalEngine
from .execution.process import (
    CHUNK_SIZE,
    SPAWN_FAILURE_EXIT_CODE,
    TIMEOUT_MESSAGE,
    child_env,
    settle_readers,
    spawn,
    terminate,
)
from .execution.workspace import Workspace, provision, release
from .schemas import SESSION_EVENT_ADAPTER, InitEvent, InputEvent, SessionEvent

logger = logging.getLogger(__name__)

Emit = Callable[[dict[str, Any]], Awaitable[None]]

_INPUT_DRAIN_SECONDS = 1.0


class SessionState(str, enum.Enum):
    IDLE = "idle"
    COMPILING = "compiling"
    RUNNING = "running"
    CLOSED = "closed"


@dataclass(slots=True)
class _Child:
    """Live program owned by a session together with its workspace.

    Example:
        ```python
        child = _Child(process=process, workspace=workspace)
        ```
    """

    process: asyncio.subprocess.Process
    workspace: Workspace
    watcher: asyncio.Task[None] | None = None
    killed: bool = False


def to_terminal(text: str) -> str:
    """Translate line endings for terminal rendering.

    Example:
        ```python
        assert to_terminal("a\\nb\\r\\n") == "a\\r\\nb\\r\\n"
        ```
    """
    return text.replace("\r\n", "\n").replace("\n", "\r\n")


def output_event(data: str) -> dict[str, Any]:
    """Build a server-to-client output event.

    Example:
        ```python
        event = output_event("hello\\r\\n")
        ```
    """
    return {"type": "output", "data": data}


def exit_event(code: int | None) -> dict[str, Any]:
    """Build the terminal event of one init cycle.

    Example:
        ```python
        event = exit_event(0)
        ```
    """
    return {"type": "exit", "code": code}


def parse_event(raw: str | bytes | Mapping[str, Any]) -> SessionEvent:
    """Validate one client event, raising ProtocolError when it is malformed.

    Example:
        ```python
        event = parse_event('{"type": "input", "text": "5\\\\n"}')
        ```
    """
    try:
        if isinstance(raw, (str, bytes)):
            return SESSION_EVENT_ADAPTER.validate_json(raw)
        return SESSION_EVENT_ADAPTER.validate_python(dict(raw))
    except (ValidationError, TypeError, ValueError) as exc:
        raise ProtocolError(f"Malformed session event: {exc}") from exc


class InteractiveSession:
    """Per-connection state machine streaming one live program at a time.

    States move idle -> compiling -> running -> idle; closed is terminal. All
    events are applied under a per-session lock, in arrival order.

    Example:
        ```python
        session = InteractiveSession(websocket.send_json, LocalEngine())
        await session.handle({"type": "init", "language": "python", "code": "print(input())"})
        await session.handle({"type": "input", "text": "5\\n"})
        await session.close()
        ```
    """

    def __init__(self, emit: Emit, engine: LocalEngine, session_id: str | None = None) -> None:
        """Create an idle session that sends events through `emit`.

        Example:
            ```python
            session = InteractiveSession(send, LocalEngine(), session_id="abc")
            ```
        """
        self.id = session_id or uuid.uuid4().hex
        self.state = SessionState.IDLE
        self._send = emit
        self._engine = engine
        self._settings = engine.settings
        self._child: _Child | None = None
        self._lock = asyncio.Lock()

    @property
    def has_child(self) -> bool:
        """Return True while a program process is owned by the session.

        Example:
            ```python
            assert not session.has_child
            ```
        """
        return self._child is not None

    async def handle(self, raw: str | bytes | Mapping[str, Any]) -> None:
        """Parse and apply one client event.

        Example:
            ```python
            await session.handle('{"type": "kill"}')
            ```
        """
        event = parse_event(raw)
        if isinstance(event, InitEvent):
            await self.start(event.language, event.code)
        elif isinstance(event, InputEvent):
            await self.send_input(event.text)
        else:
            await self.kill()

    async def start(self, language: str, source: str) -> None:
        """Tear down any running program, then build and launch a new one.

        Example:
            ```python
            await session.start("cpp", source)
            ```
        """
        async with self._lock:
            if self.state is SessionState.CLOSED:
                return
            if self._child is not None:
                await self._reap(self._child)
            await self._start(language, source)

    async def send_input(self, text: str) -> None:
        """Forward text verbatim to the running program's stdin.

        Example:
            ```python
            await session.send_input("5\\n")
            ```
        """
        async with self._lock:
            child = self._child
            if child is None or child.process.stdin is None:
                return
            try:
                child.process.stdin.write(text.encode("utf-8"))
                await asyncio.wait_for(child.process.stdin.drain(), _INPUT_DRAIN_SECONDS)
            except TimeoutError:
                logger.debug("Session %s: program is not reading stdin; input stays buffered", self.id)
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Session %s: program closed stdin", self.id)

    async def kill(self) -> None:
        """Force-kill the running program, if any, and wait for its exit event.

        Example:
            ```python
            await session.kill()
            ```
        """
        async with self._lock:
            if self._child is not None:
                logger.info("Session %s: killing pid %s", self.id, self._child.process.pid)
                await self._reap(self._child)

    async def close(self) -> None:
        """Release the session; a live program is always killed.

        Example:
            ```python
            await session.close()
            ```
        """
        async with self._lock:
            if self.state is SessionState.CLOSED:
                return
            self.state = SessionState.CLOSED
            if self._child is not None:
                logger.info("Session %s closed with pid %s alive; killing", self.id, self._child.process.pid)
                await self._reap(self._child)
        logger.debug("Session %s closed", self.id)

    async def _emit(self, event: dict[str, Any]) -> None:
        """Send an event unless the session is already closed.

        Example:
            ```python
            await session._emit(exit_event(0))
            ```
        """
        if self.state is SessionState.CLOSED:
            return
        await self._send(event)

    async def _start(self, language: str, source: str) -> None:
        """Provision, optionally compile, and spawn the program of a new cycle.

        Example:
            ```python
            await session._start("python", "print(1)")
            ```
        """
        try:
            toolchain = self._engine.toolchain(language)
            workspace = provision(self._settings)
        except EngineError as exc:
            logger.warning("Session %s: init rejected: %s", self.id, exc)
            await self._emit(output_event(to_terminal(f"{exc}\n")))
            await self._emit(exit_event(1))
            return

        launched = False
        try:
            launched = await self._launch(toolchain, workspace, source)
        finally:
            if not launched:
                release(workspace, self._settings)
                if self.state is not SessionState.CLOSED:
                    self.state = SessionState.IDLE

    async def _launch(self, toolchain: Toolchain, workspace: Workspace, source: str) -> bool:
        """Write the source, compile when needed, and spawn the program.

        Returns False when the cycle already ended with an exit event.

        Example:
            ```python
            launched = await session._launch(chain, workspace, "print(1)")
            ```
        """
        try:
            source_path = workspace.write(toolchain.source_name, source)
        except EngineError as exc:
            await self._emit(output_event(to_terminal(f"{exc}\n")))
            await self._emit(exit_event(1))
            return False

        if toolchain.interpreter is not None:
            argv = [toolchain.interpreter, "-u", str(source_path)]
        else:
            code = await self._compile(toolchain, workspace)
            if code != 0:
                await self._emit(exit_event(code))
                return False
            argv = self._binary_argv(workspace)

        try:
            process = await spawn(argv, cwd=workspace.path, env=child_env({"PYTHONUNBUFFERED": "1"}))
        except OSError as exc:
            logger.warning("Session %s: failed to start %s: %s", self.id, argv[0], exc)
            await self._emit(output_event(to_terminal(f"Failed to start '{argv[0]}': {exc.strerror or exc}\n")))
            await self._emit(exit_event(SPAWN_FAILURE_EXIT_CODE))
            return False

        child = _Child(process=process, workspace=workspace)
        self._child = child
        self.state = SessionState.RUNNING
        child.watcher = asyncio.create_task(self._watch(child))
        child.watcher.add_done_callback(self._watch_done)
        logger.debug("Session %s: running %s as pid %s", self.id, toolchain.language, process.pid)
        return True

    async def _compile(self, toolchain: Toolchain, workspace: Workspace) -> int | None:
        """Run the compiler, streaming its output, and return its exit status.

        Example:
            ```python
            code = await session._compile(chain, workspace)
            ```
        """
        if toolchain.compiler is None:
            raise ValueError(f"{toolchain.language} is not a compiled language")
        self.state = SessionState.COMPILING
        argv = [
            toolchain.compiler,
            str(workspace.file(toolchain.source_name)),
            "-o",
            str(workspace.file(BINARY_NAME)),
        ]
        try:
            process = await spawn(argv, cwd=workspace.path, env=child_env())
        except OSError as exc:
            logger.warning("Session %s: failed to start compiler %s: %s", self.id, argv[0], exc)
            await self._emit(output_event(to_terminal(f"Failed to start '{argv[0]}': {exc.strerror or exc}\n")))
            return SPAWN_FAILURE_EXIT_CODE

        if process.stdin is not None:
            process.stdin.close()
        pumps = [
            asyncio.create_task(self._pump(process.stdout)),
            asyncio.create_task(self._pump(process.stderr)),
        ]
        try:
            code = await asyncio.wait_for(process.wait(), self._settings.timeout_ms / 1000)
        except TimeoutError:
            logger.warning("Session %s: compiler timed out", self.id)
            await self._emit(output_event(to_terminal(f"{TIMEOUT_MESSAGE}\n")))
            code = 1
        finally:
            await terminate(process)
            await settle_readers(pumps)
        return code

    def _binary_argv(self, workspace: Workspace) -> list[str]:
        """Return the argv running the compiled binary with unbuffered stdio.

        Example:
            ```python
            argv = session._binary_argv(workspace)
            ```
        """
        binary = str(workspace.file(BINARY_NAME))
        stdbuf = shutil.which("stdbuf")
        if stdbuf is None:
            return [binary]
        return [stdbuf, "-o0", "-e0", binary]

    async def _pump(self, stream: asyncio.StreamReader | None, child: _Child | None = None) -> None:
        """Forward every chunk of a stream as an output event, in arrival order.

        Chunks read after the child was killed are drained but not forwarded.

        Example:
            ```python
            await session._pump(process.stdout, child)
            ```
        """
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            text = decoder.decode(chunk, final=not chunk)
            if text and not (child is not None and child.killed):
                await self._emit(output_event(to_terminal(text)))
            if not chunk:
                return

    async def _watch(self, child: _Child) -> None:
        """Stream a child's output, then emit its exit event and clean up.

        Example:
            ```python
            child.watcher = asyncio.create_task(session._watch(child))
            ```
        """
        pumps = [
            asyncio.create_task(self._pump(child.process.stdout, child)),
            asyncio.create_task(self._pump(child.process.stderr, child)),
        ]
        try:
            code = await child.process.wait()
            await settle_readers(pumps)
        finally:
            if self._child is child:
                self._child = None
                if self.state is not SessionState.CLOSED:
                    self.state = SessionState.IDLE
            release(child.workspace, self._settings)
        logger.debug("Session %s: pid %s exited with %s", self.id, child.process.pid, code)
        await self._emit(exit_event(code))

    def _watch_done(self, task: asyncio.Task[None]) -> None:
        """Log a watcher that ended with an error instead of its exit event.

        Example:
            ```python
            watcher.add_done_callback(session._watch_done)
            ```
        """
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Session %s: watcher failed: %s", self.id, exc)

    async def _reap(self, child: _Child) -> None:
        """Kill a child and wait until its watcher has finished.

        Example:
            ```python
            await session._reap(child)
            ```
        """
        child.killed = True
        await terminate(child.process)
        if child.watcher is not None:
            await asyncio.wait([child.watcher])

