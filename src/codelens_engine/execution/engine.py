from __future__ import annotations

from typing import Protocol

from .types import ExecutionRequest, ProcessResult


class ExecutionEngine(Protocol):
    async def execute(self, request: ExecutionRequest) -> ProcessResult:
        """Execute one request and return its normalized process result.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(language="python", source="print(1)"))
            ```
        """
        ...
