from .errors import EngineError, ProtocolError, ResourceError, UnsupportedLanguageError
from .execution.local_engine import LocalEngine
from .execution.types import ExecutionRequest, ProcessResult, TraceResult, TraceStep
from .levels import LevelResult, check_level
from .runner import RunnerResult, run_code
from .session import InteractiveSession
from .settings import EngineSettings, load_settings
from .tracer import Tracer

__all__ = [
    "EngineError",
    "EngineSettings",
    "ExecutionRequest",
    "InteractiveSession",
    "LevelResult",
    "LocalEngine",
    "ProcessResult",
    "ProtocolError",
    "ResourceError",
    "RunnerResult",
    "TraceResult",
    "TraceStep",
    "Tracer",
    "UnsupportedLanguageError",
    "check_level",
    "load_settings",
    "run_code",
]
