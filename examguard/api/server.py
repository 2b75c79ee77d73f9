from __future__ import annotations
"""
FastAPI Server for Examguard

HTTP control surface for exam attempts: create a session, walk it through
consent and setup, deliver proctor interventions, report client
environment signals and end it.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from examguard.cfg import ProctoringConfig, Settings, get_settings
from examguard.data.sinks import InMemoryEventRecorder, InMemorySessionStore
from examguard.engine.errors import InvalidTransitionError, SetupError
from examguard.models import load_models
from examguard.pipeline.environment import EnvironmentSignal
from examguard.service.runtime import SessionRuntime, create_livekit_runtime
from examguard.utils import get_logger

logger = get_logger(__name__)


class CreateSessionRequest(BaseModel):
    """Request to open a proctoring session for one attempt."""
    student_id: str
    exam_id: Optional[str] = None
    quiz_id: Optional[str] = None
    college_id: Optional[str] = None
    room_name: Optional[str] = None
    participant_identity: Optional[str] = None
    config: dict[str, Any] = {}


class CreateSessionResponse(BaseModel):
    key: str
    phase: str


class SetupRequest(BaseModel):
    device_info: Optional[dict[str, Any]] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class EnvironmentRequest(BaseModel):
    signal: EnvironmentSignal


RuntimeFactory = Callable[[FastAPI, CreateSessionRequest, ProctoringConfig], Awaitable[SessionRuntime]]


async def livekit_runtime_factory(app: FastAPI, request: CreateSessionRequest, config: ProctoringConfig) -> SessionRuntime:
    """Default factory: join the candidate's LiveKit room."""
    if not request.room_name:
        raise HTTPException(status_code=422, detail="room_name is required")

    return await create_livekit_runtime(
        settings=app.state.settings,
        config=config,
        store=app.state.store,
        recorder=app.state.recorder,
        models=app.state.models,
        student_id=request.student_id,
        room_name=request.room_name,
        participant_identity=request.participant_identity or request.student_id,
        exam_id=request.exam_id,
        quiz_id=request.quiz_id,
        college_id=request.college_id,
    )


def create_app(
    settings: Optional[Settings] = None,
    runtime_factory: Optional[RuntimeFactory] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Service settings; cached environment settings when omitted
        runtime_factory: Builds a SessionRuntime per created session
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        logger.info("🚀 Examguard API starting...")
        app.state.models = load_models(settings)
        yield
        # Cleanup on shutdown
        logger.info("👋 Shutting down, ending all sessions...")
        for key, runtime in list(app.state.sessions.items()):
            try:
                await runtime.close()
            except Exception as e:
                logger.error(f"Error closing session {key}: {e}")
        app.state.sessions.clear()

    app = FastAPI(
        title="Examguard",
        description="Proctored exam session orchestration",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.sessions = {}
    app.state.store = InMemorySessionStore()
    app.state.recorder = InMemoryEventRecorder()
    app.state.runtime_factory = runtime_factory or livekit_runtime_factory

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI):

    @app.exception_handler(SetupError)
    async def setup_error_handler(request: Request, exc: SetupError):
        return JSONResponse(
            status_code=409,
            content={"error": "setup_failed", "kind": exc.kind, "capture": exc.capture, "message": exc.message},
        )

    @app.exception_handler(InvalidTransitionError)
    async def transition_error_handler(request: Request, exc: InvalidTransitionError):
        return JSONResponse(
            status_code=409,
            content={"error": "invalid_transition", "action": exc.action, "phase": exc.phase, "message": str(exc)},
        )


def _runtime(request: Request, key: str) -> SessionRuntime:
    runtime = request.app.state.sessions.get(key)
    if runtime is None:
        raise HTTPException(status_code=404, detail=f"Unknown session {key}")
    return runtime


def _register_routes(app: FastAPI):

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {"status": "healthy", "active_sessions": len(request.app.state.sessions)}

    @app.post("/sessions", response_model=CreateSessionResponse, status_code=201)
    async def create_session(body: CreateSessionRequest, request: Request):
        """Open a session in the consent phase."""
        settings: Settings = request.app.state.settings
        try:
            config = settings.to_proctoring_config(**body.config)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

        if bool(body.exam_id) == bool(body.quiz_id):
            raise HTTPException(status_code=422, detail="Exactly one of exam_id or quiz_id is required")

        runtime = await request.app.state.runtime_factory(request.app, body, config)
        key = uuid.uuid4().hex
        request.app.state.sessions[key] = runtime

        logger.info(f"✅ Session {key[:8]} opened for student {body.student_id}")
        return CreateSessionResponse(key=key, phase=runtime.session.phase.value)

    @app.get("/sessions")
    async def list_sessions(request: Request):
        return {key: runtime.session.status() for key, runtime in request.app.state.sessions.items()}

    @app.get("/sessions/{key}")
    async def get_session(key: str, request: Request):
        return _runtime(request, key).session.status()

    @app.post("/sessions/{key}/consent")
    async def grant_consent(key: str, request: Request):
        session = _runtime(request, key).session
        await session.grant_consent()
        return {"phase": session.phase.value}

    @app.post("/sessions/{key}/back")
    async def back_to_consent(key: str, request: Request):
        session = _runtime(request, key).session
        await session.back_to_consent()
        return {"phase": session.phase.value}

    @app.get("/sessions/{key}/devices")
    async def test_devices(key: str, request: Request):
        """Device check shown on the setup screen."""
        capture = _runtime(request, key).session.capture
        devices = await capture.list_devices()
        return {
            "video": devices.video,
            "audio": devices.audio,
            "test": await capture.test_devices(),
        }

    @app.post("/sessions/{key}/setup")
    async def complete_setup(key: str, body: SetupRequest, request: Request):
        session = _runtime(request, key).session
        record = await session.complete_setup(body.device_info)
        return {"phase": session.phase.value, "session": record.to_dict()}

    @app.post("/sessions/{key}/pause")
    async def pause(key: str, body: ReasonRequest, request: Request):
        session = _runtime(request, key).session
        changed = await session.pause(body.reason)
        return {"phase": session.phase.value, "changed": changed}

    @app.post("/sessions/{key}/resume")
    async def resume(key: str, request: Request):
        session = _runtime(request, key).session
        await session.resume()
        return {"phase": session.phase.value}

    @app.post("/sessions/{key}/complete")
    async def complete(key: str, request: Request):
        session = _runtime(request, key).session
        session_id = await session.complete()
        return {"phase": session.phase.value, "session_id": session_id}

    @app.post("/sessions/{key}/terminate")
    async def terminate(key: str, body: ReasonRequest, request: Request):
        session = _runtime(request, key).session
        changed = await session.terminate(body.reason)
        return {"phase": session.phase.value, "changed": changed}

    @app.post("/sessions/{key}/interventions")
    async def deliver_intervention(key: str, payload: dict[str, Any], request: Request):
        """Proctor command. Dropped interventions are not an error."""
        session = _runtime(request, key).session
        applied = await session.interventions.deliver_raw(payload)
        return {"applied": applied, "phase": session.phase.value}

    @app.post("/sessions/{key}/environment")
    async def report_environment(key: str, body: EnvironmentRequest, request: Request):
        runtime = _runtime(request, key)
        runtime.environment.emit(body.signal)
        return {"phase": runtime.session.phase.value, "indicators": runtime.session.indicators.to_dict()}

    @app.get("/sessions/{key}/warnings")
    async def get_warnings(key: str, request: Request):
        session = _runtime(request, key).session
        return [w.to_dict() for w in session.warnings]

    @app.delete("/sessions/{key}/warnings/{warning_id}")
    async def dismiss_warning(key: str, warning_id: str, request: Request):
        session = _runtime(request, key).session
        if not session.aggregator.dismiss(warning_id):
            raise HTTPException(status_code=404, detail=f"Unknown warning {warning_id}")
        return {"dismissed": warning_id}

    @app.get("/sessions/{key}/events")
    async def get_events(key: str, request: Request):
        """Events recorded for the session (in-memory recorder only)."""
        session = _runtime(request, key).session
        if session.session_id is None:
            return []
        recorder = request.app.state.recorder
        return [e.to_dict() for e in recorder.events_for(session.session_id)]

    @app.delete("/sessions/{key}")
    async def close_session(key: str, request: Request):
        """End the session if still live and forget it. Ended sessions have already released their room."""
        runtime = _runtime(request, key)
        await runtime.close()
        del request.app.state.sessions[key]
        return {"closed": key, "phase": runtime.session.phase.value}


app = create_app()


def start_server(host: str = "0.0.0.0", port: Optional[int] = None):
    """Start the FastAPI server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "examguard.api.server:app",
        host=host,
        port=port or settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    start_server()
