"""
FastAPI backend for the project defence / mock interview coach.
Generates question sets, relays the browser voice widget over a WebSocket
and turns finished calls into rubric-scored feedback.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from defence_coach.call import (
    CallEnded,
    CallFailed,
    CallSession,
    CallStarted,
    SpeechEnded,
    SpeechStarted,
    StartRequested,
    StopRequested,
    TranscriptMessage,
)
from defence_coach.config import Settings
from defence_coach.db import Database
from defence_coach.feedback import FeedbackGenerationError, FeedbackGenerator
from defence_coach.llm import LLMClient
from defence_coach.mock import mock_feedback, mock_session
from defence_coach.models import InterviewRecord
from defence_coach.questions import QuestionGenerator
from defence_coach.schemas import (
    PROJECT_DEFENCE,
    CreateFeedbackParams,
    ProjectDetails,
    ProjectFile,
    TranscriptEntry,
    feedback_view,
    parse_generation_request,
    session_view,
)
from defence_coach.store import NotFoundError, SessionStore, UnauthorizedError

LOG = logging.getLogger("defence_coach")

GENERATE_PATH = "/api/vapi/generate"


@dataclass
class Services:
    settings: Settings
    database: Database
    store: SessionStore
    questions: QuestionGenerator
    feedback: FeedbackGenerator


router = APIRouter()


def _services(request: Request) -> Services:
    return request.app.state.services


def _fail(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def _dump(model: Any) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _store_failure(services: Services, exc: Exception, action: str) -> Optional[JSONResponse]:
    """Return the error response for a store failure, or None when mocks should be served."""
    if services.settings.dev_mock_fallback:
        LOG.warning("Store unavailable while %s; serving mock data: %s", action, exc)
        return None
    LOG.error("Store failure while %s: %s", action, exc)
    return _fail(500, "Internal server error")


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.get(GENERATE_PATH)
async def generate_health() -> Dict[str, bool]:
    return {"success": True}


@router.post(GENERATE_PATH)
async def generate(request: Request) -> Any:
    services = _services(request)
    body = await _json_body(request)
    if body is None:
        return _fail(400, "Request body must be a JSON object")
    try:
        params = parse_generation_request(body)
    except ValidationError as exc:
        LOG.info("Generation request rejected: %s", exc.errors(include_url=False))
        return _fail(400, "Missing required fields")
    try:
        record = await services.questions.create_session(params)
    except SQLAlchemyError:
        LOG.exception("Failed to store generated session")
        return _fail(500, "Internal server error")
    return {"success": True, "interviewId": record.id}


@router.get("/interviews")
async def list_interviews(request: Request, user_id: str = Query(..., alias="userId")) -> Any:
    services = _services(request)
    try:
        rows = await services.store.list_interviews_by_user(user_id)
    except SQLAlchemyError as exc:
        response = _store_failure(services, exc, "listing interviews")
        if response is not None:
            return response
        return {"items": [_dump(mock_session("mock-interview", user_id))]}
    return {"items": [_dump(session_view(row)) for row in rows]}


@router.get("/interviews/latest")
async def latest_interviews(
    request: Request, user_id: str = Query(..., alias="userId"), limit: int = 20
) -> Any:
    services = _services(request)
    limit = max(1, min(int(limit), 100))
    try:
        rows = await services.store.list_latest_interviews(user_id, limit)
    except SQLAlchemyError as exc:
        response = _store_failure(services, exc, "listing latest interviews")
        if response is not None:
            return response
        return {"items": [_dump(mock_session("mock-interview"))]}
    return {"items": [_dump(session_view(row)) for row in rows]}


@router.get("/interviews/{interview_id}")
async def get_interview(request: Request, interview_id: str) -> Any:
    services = _services(request)
    try:
        record = await services.store.get_interview(interview_id)
    except NotFoundError:
        return _fail(404, "not_found")
    except SQLAlchemyError as exc:
        response = _store_failure(services, exc, "reading interview")
        if response is not None:
            return response
        return {"success": True, "interview": _dump(mock_session(interview_id))}
    return {"success": True, "interview": _dump(session_view(record))}


@router.delete("/interviews/{interview_id}")
async def delete_interview(request: Request, interview_id: str, user_id: str = Query(..., alias="userId")) -> Any:
    services = _services(request)
    try:
        removed = await services.store.delete_interview(interview_id, user_id)
    except NotFoundError:
        return _fail(404, "not_found")
    except UnauthorizedError:
        LOG.warning("Unauthorized delete of interview %s by %s", interview_id, user_id)
        return _fail(403, "unauthorized")
    except SQLAlchemyError:
        LOG.exception("Failed to delete interview %s", interview_id)
        return _fail(500, "Internal server error")
    return {"success": True, "feedbackRemoved": removed}


@router.get("/interviews/{interview_id}/feedback")
async def get_interview_feedback(
    request: Request, interview_id: str, user_id: str = Query(..., alias="userId")
) -> Any:
    services = _services(request)
    try:
        record = await services.store.get_feedback_by_interview(interview_id, user_id)
    except SQLAlchemyError as exc:
        response = _store_failure(services, exc, "reading feedback")
        if response is not None:
            return response
        return {"success": True, "feedback": _dump(mock_feedback(interview_id, user_id))}
    return {"success": True, "feedback": _dump(feedback_view(record)) if record else None}


@router.post("/feedback")
async def create_feedback(request: Request) -> Any:
    services = _services(request)
    body = await _json_body(request)
    if body is None:
        return _fail(400, "Request body must be a JSON object")
    try:
        params = CreateFeedbackParams.model_validate(body)
    except ValidationError as exc:
        LOG.info("Feedback request rejected: %s", exc.errors(include_url=False))
        return _fail(400, "Missing required fields")
    try:
        if not params.feedback_id:
            existing = await services.store.get_feedback_by_interview(params.interview_id, params.user_id)
            if existing is not None:
                return {"success": True, "feedbackId": existing.id, "existing": True}
        record = await services.feedback.create(params)
    except FeedbackGenerationError as exc:
        LOG.warning("Feedback generation failed for interview %s: %s", params.interview_id, exc)
        return _fail(500, "feedback_generation_failed")
    except UnauthorizedError:
        return _fail(403, "unauthorized")
    except SQLAlchemyError:
        LOG.exception("Failed to store feedback for interview %s", params.interview_id)
        return _fail(500, "Internal server error")
    return {"success": True, "feedbackId": record.id}


@router.get("/feedback/{feedback_id}")
async def get_feedback(request: Request, feedback_id: str) -> Any:
    services = _services(request)
    try:
        record = await services.store.get_feedback(feedback_id)
    except NotFoundError:
        return _fail(404, "not_found")
    except SQLAlchemyError as exc:
        response = _store_failure(services, exc, "reading feedback")
        if response is not None:
            return response
        return {"success": True, "feedback": _dump(mock_feedback("mock-interview", feedback_id=feedback_id))}
    return {"success": True, "feedback": _dump(feedback_view(record))}


@router.delete("/feedback/{feedback_id}")
async def delete_feedback(request: Request, feedback_id: str, user_id: str = Query(..., alias="userId")) -> Any:
    services = _services(request)
    try:
        await services.store.delete_feedback(feedback_id, user_id)
    except NotFoundError:
        return _fail(404, "not_found")
    except UnauthorizedError:
        LOG.warning("Unauthorized delete of feedback %s by %s", feedback_id, user_id)
        return _fail(403, "unauthorized")
    except SQLAlchemyError:
        LOG.exception("Failed to delete feedback %s", feedback_id)
        return _fail(500, "Internal server error")
    return {"success": True}


# --- voice call relay ----------------------------------------------------


class WebSocketVoiceClient:
    """Asks the browser-side voice widget to start or stop the vendor call."""

    def __init__(self, ws: WebSocket, token: str) -> None:
        self.ws = ws
        self.token = token

    async def start(self, workflow_id: str, variable_values: Dict[str, str]) -> None:
        await self.ws.send_json(
            {
                "type": "start_call",
                "workflowId": workflow_id,
                "token": self.token,
                "variableValues": variable_values,
            }
        )

    async def stop(self) -> None:
        await self.ws.send_json({"type": "stop_call"})


def _project_details(record: InterviewRecord) -> Optional[ProjectDetails]:
    if record.kind != PROJECT_DEFENCE:
        return None
    return ProjectDetails(
        project_title=record.project_title,
        academic_level=record.academic_level,
        technologies_used=", ".join(record.technologies or []),
        project_file=ProjectFile(**record.project_file) if record.project_file else None,
    )


def _event_from_payload(payload: Dict[str, Any]) -> Any:
    msg_type = payload.get("type")
    if msg_type == "start":
        return StartRequested()
    if msg_type == "stop":
        return StopRequested()
    if msg_type == "call-start":
        return CallStarted()
    if msg_type == "call-end":
        return CallEnded()
    if msg_type == "speech-start":
        return SpeechStarted()
    if msg_type == "speech-end":
        return SpeechEnded()
    if msg_type == "error":
        return CallFailed(message=str(payload.get("message") or "Unknown error"))
    if msg_type == "message":
        message = payload.get("message") or {}
        if not isinstance(message, dict) or message.get("type") != "transcript":
            return None
        return TranscriptMessage(
            role=str(message.get("role") or ""),
            transcript=str(message.get("transcript") or ""),
            transcript_type=str(message.get("transcriptType") or ""),
        )
    return None


@router.websocket("/ws/call/{interview_id}")
async def call_socket(ws: WebSocket, interview_id: str, user_id: str = Query(..., alias="userId")) -> None:
    await ws.accept()
    services: Services = ws.app.state.services
    settings = services.settings
    try:
        record = await services.store.get_interview(interview_id)
    except NotFoundError:
        await ws.send_json({"type": "error", "message": "Interview not found"})
        await ws.close(code=4404)
        return
    except SQLAlchemyError:
        LOG.exception("Failed to load interview %s for call", interview_id)
        await ws.send_json({"type": "error", "message": "Internal server error"})
        await ws.close(code=1011)
        return

    async def send(payload: Dict[str, Any]) -> None:
        try:
            await ws.send_json(payload)
        except Exception:
            # Best-effort: client may already be gone.
            return

    async def on_finished(transcript: List[TranscriptEntry]) -> Optional[str]:
        try:
            existing = await services.store.get_feedback_by_interview(interview_id, user_id)
            params = CreateFeedbackParams(
                interview_id=interview_id,
                user_id=user_id,
                transcript=transcript,
                feedback_id=existing.id if existing else None,
                project_details=_project_details(record),
            )
            feedback = await services.feedback.create(params)
        except (FeedbackGenerationError, UnauthorizedError, SQLAlchemyError) as exc:
            LOG.warning("Feedback after call failed (interview=%s): %s", interview_id, exc)
            await send({"type": "feedback", "success": False, "interviewId": interview_id})
            return None
        await send({"type": "feedback", "success": True, "interviewId": interview_id, "feedbackId": feedback.id})
        return feedback.id

    voice = WebSocketVoiceClient(ws, settings.vapi_web_token) if settings.vapi_web_token else None
    call = CallSession(
        voice,
        settings.vapi_workflow_id,
        on_finished,
        questions=list(record.questions or []),
        project_details=_project_details(record),
        emit=send,
    )
    runner = asyncio.create_task(call.run())
    await send({"type": "session_ready", "interviewId": interview_id, "status": call.status.value})

    try:
        while True:
            raw = await ws.receive_text()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                await send({"type": "error", "message": "Payload must be JSON"})
                continue
            if not isinstance(payload, dict):
                await send({"type": "error", "message": "Payload must be a JSON object"})
                continue

            msg_type = payload.get("type")
            event = _event_from_payload(payload)
            if event is not None:
                call.post(event)
            elif msg_type != "message":
                # Vendor messages other than transcripts are dropped silently.
                await send({"type": "error", "message": f"Unrecognized message type: {msg_type}"})
    except WebSocketDisconnect:
        LOG.info("Call socket closed (interview=%s status=%s)", interview_id, call.status.value)
    finally:
        call.close()
        # Let a pending feedback generation finish even if the browser left.
        await runner


def create_app(
    settings: Optional[Settings] = None,
    llm: Optional[LLMClient] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    database = database or Database(settings.database_url)
    llm = llm or LLMClient(settings.llm_api_key, settings.llm_model, settings.llm_url, settings.llm_timeout)
    store = SessionStore(database)
    services = Services(
        settings=settings,
        database=database,
        store=store,
        questions=QuestionGenerator(llm, store),
        feedback=FeedbackGenerator(llm, store),
    )

    app = FastAPI(title="AI Project Defence Coach", version="0.1.0")
    app.state.services = services

    @app.on_event("startup")
    async def on_startup() -> None:
        await database.init()
        if not settings.vapi_web_token or not settings.vapi_workflow_id:
            LOG.warning("Voice configuration incomplete; calls cannot be started")
        if not settings.llm_api_key:
            LOG.warning("LLM_API_KEY missing; questions fall back to defaults and feedback will fail")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await database.dispose()

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        start = time.time()
        try:
            return await call_next(request)
        finally:
            dur_ms = int((time.time() - start) * 1000)
            LOG.info("%s %s -> %d ms", request.method, request.url.path, dur_ms)

    # CORS for local dev; adjust allowed origins for prod if needed.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
