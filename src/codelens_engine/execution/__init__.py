from .engine import ExecutionEngine
from .local_engine import LocalEngine
from .types import ExecutionRequest, ProcessResult, TraceResult, TraceStep
from .workspace import Workspace, provision

__all__ = [
    "ExecutionEngine",
    "ExecutionRequest",
    "LocalEngine",
    "ProcessResult",
    "TraceResult",
    "TraceStep",
    "Workspace",
    "provision",
]
