from __future__ import annotations

import logging

from ..errors import EngineError
from ..settings import EngineSettings
from .languages import BINARY_NAME, Toolchain, toolchain_for
from .process import run_process
from .types import ExecutionRequest, ProcessResult
from .workspace import Workspace, open_workspace

logger = logging.getLogger(__name__)


class LocalEngine:
    """Dispatch guest programs to local interpreters and compilers.

    Example:
        ```python
        engine = LocalEngine(EngineSettings(timeout_ms=2000))
        result = await engine.execute(ExecutionRequest(language="c", source=code))
        ```
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        """Bind the engine to its settings.

        Example:
            ```python
            engine = LocalEngine()
            ```
        """
        self.settings = settings or EngineSettings()

    def toolchain(self, language: str) -> Toolchain:
        """Resolve the toolchain of a guest language with this engine's settings.

        Example:
            ```python
            chain = engine.toolchain("cpp")
            ```
        """
        return toolchain_for(language, self.settings)

    async def execute(self, request: ExecutionRequest) -> ProcessResult:
        """Run one request through its language pipeline.

        Unsupported languages and workspace failures come back as results with
        exit code 1; they are never raised.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(language="python", source="print(2 + 3)"))
            ```
        """
        try:
            toolchain = self.toolchain(request.language)
            with open_workspace(self.settings) as workspace:
                workspace.write(toolchain.source_name, request.source)
                return await self._run_pipeline(toolchain, workspace, request.stdin)
        except EngineError as exc:
            logger.warning("Execution request rejected: %s", exc)
            return ProcessResult(stdout="", stderr=str(exc), exit_code=1)

    async def compile(self, toolchain: Toolchain, workspace: Workspace) -> ProcessResult:
        """Compile the workspace source into the fixed binary path.

        Example:
            ```python
            compiled = await engine.compile(engine.toolchain("c"), workspace)
            ```
        """
        if toolchain.compiler is None:
            raise ValueError(f"{toolchain.language} is not a compiled language")
        result = await run_process(
            toolchain.compiler,
            [workspace.file(toolchain.source_name), "-o", workspace.file(BINARY_NAME)],
            timeout_ms=self.settings.timeout_ms,
            cwd=workspace.path,
        )
        if result.exit_code != 0:
            logger.debug("Compilation of %s failed with %s", toolchain.language, result.exit_code)
            return ProcessResult(
                stdout="",
                stderr=result.stderr,
                exit_code=result.exit_code,
                timed_out=result.timed_out,
                compile_error=True,
            )
        return result

    async def _run_pipeline(self, toolchain: Toolchain, workspace: Workspace, stdin: str) -> ProcessResult:
        """Run either compile-then-run or run-only for a prepared workspace.

        Example:
            ```python
            result = await engine._run_pipeline(chain, workspace, "2 3")
            ```
        """
        if toolchain.interpreter is not None:
            return await run_process(
                toolchain.interpreter,
                [workspace.file(toolchain.source_name)],
                stdin=stdin,
                timeout_ms=self.settings.timeout_ms,
                cwd=workspace.path,
            )
        compiled = await self.compile(toolchain, workspace)
        if compiled.compile_error:
            return compiled
        return await run_process(
            workspace.file(BINARY_NAME),
            stdin=stdin,
            timeout_ms=self.settings.timeout_ms,
            cwd=workspace.path,
        )
