from __future__ import annotations

import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .errors import ProtocolError
from .execution.languages import supported_languages
from .execution.local_engine import LocalEngine
from .insights import Advisor, PassthroughAdvisor
from .levels import check_level
from .runner import run_code
from .schemas import (
    DiagnoseRequest,
    DiagnoseResponse,
    LanguagesResponse,
    LevelResponse,
    LevelSubmitRequest,
    RunRequest,
    RunResponse,
    TraceRequest,
    TraceResponse,
    TraceStepModel,
)
from .session import InteractiveSession
from .settings import EngineSettings, load_settings
from .tracer import Tracer

logger = logging.getLogger(__name__)


def create_app(settings: EngineSettings | None = None, advisor: Advisor | None = None) -> FastAPI:
    """Build the HTTP and WebSocket application around one local engine.

    Example:
        ```python
        app = create_app(EngineSettings(timeout_ms=3000))
        ```
    """
    engine = LocalEngine(settings or load_settings())
    tracer = Tracer(engine)
    helper: Advisor = advisor or PassthroughAdvisor()

    app = FastAPI(title="codelens-engine")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=engine.settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.engine = engine

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Report liveness.

        Example:
            ```python
            client.get("/health")
            ```
        """
        return {"status": "ok"}

    @app.get("/api/languages", response_model=LanguagesResponse)
    async def languages() -> LanguagesResponse:
        """List supported guest languages.

        Example:
            ```python
            client.get("/api/languages")
            ```
        """
        return LanguagesResponse(languages=supported_languages())

    @app.post("/api/run", response_model=RunResponse)
    async def run(request: RunRequest) -> RunResponse:
        """Run code once and attach advisor output.

        Example:
            ```python
            client.post("/api/run", json={"language": "python", "code": "print(1)"})
            ```
        """
        result = await run_code(request.language, request.code, engine=engine, stdin=request.stdin)
        view = helper.visualize(request.language, request.code)
        return RunResponse(
            success=result.succeeded,
            stdout=result.stdout,
            stderr=result.stderr,
            message=result.message,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            compile_error=result.compile_error,
            generated_code="" if result.succeeded else helper.suggest_code(request.language, request.intent),
            flowchart=view.flowchart,
            steps=view.steps,
            algorithm_steps=view.algorithm_steps,
        )

    @app.post("/api/diagnose", response_model=DiagnoseResponse)
    async def diagnose(request: DiagnoseRequest) -> DiagnoseResponse:
        """Run code and explain its stderr.

        Example:
            ```python
            client.post("/api/diagnose", json={"language": "c", "code": "int main( {"})
            ```
        """
        result = await run_code(request.language, request.code, engine=engine)
        diagnosis = helper.diagnose(request.language, result.stderr)
        return DiagnoseResponse(
            success=result.exit_code != 0,
            summary=diagnosis.summary,
            steps=diagnosis.steps,
            fixed_code=helper.suggest_code(request.language, "Fix the errors") if result.stderr else "",
        )

    @app.post("/api/trace", response_model=TraceResponse)
    async def trace(request: TraceRequest) -> TraceResponse:
        """Trace code step by step.

        Example:
            ```python
            client.post("/api/trace", json={"language": "python", "code": "x = 1"})
            ```
        """
        result = await tracer.trace(request.language, request.code, stdin=request.stdin)
        return TraceResponse(
            trace_steps=[
                TraceStepModel(
                    line_number=step.line_number,
                    event_kind=step.event_kind,
                    source_line_text=step.source_line_text,
                    variables=step.variables,
                    output_so_far=step.output_so_far,
                    function_name=step.function_name,
                    return_value=step.return_value,
                    error_message=step.error_message,
                )
                for step in result.steps
            ],
            final_stdout=result.stdout,
            degraded=result.degraded,
            truncated=result.truncated,
            timed_out=result.timed_out,
        )

    @app.post("/api/levels/submit", response_model=LevelResponse)
    async def submit_level(request: LevelSubmitRequest) -> LevelResponse:
        """Check a submission against a practice level.

        Example:
            ```python
            client.post("/api/levels/submit", json={"levelId": 1, "language": "python", "code": "print('Hello World')"})
            ```
        """
        verdict = await check_level(request.level_id, request.language, request.code, engine=engine)
        return LevelResponse(passed=verdict.passed, message=verdict.message, hint=verdict.hint)

    @app.websocket("/ws/session")
    async def session_endpoint(websocket: WebSocket) -> None:
        """Drive one interactive session over a WebSocket.

        Example:
            ```python
            with client.websocket_connect("/ws/session") as ws:
                ws.send_json({"type": "init", "language": "python", "code": "print(1)"})
            ```
        """
        await websocket.accept()
        session = InteractiveSession(websocket.send_json, engine)
        logger.info("Session %s opened", session.id)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    await session.handle(raw)
                except ProtocolError as exc:
                    logger.warning("Session %s: %s", session.id, exc)
        except WebSocketDisconnect:
            logger.info("Session %s disconnected", session.id)
        finally:
            await session.close()

    return app
