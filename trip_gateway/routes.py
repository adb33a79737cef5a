"""
Turn, ingestion, token and audio routes.

Every error body has the same shape: {"success": false, "error": <message>}.
Internal exception text is logged, never returned.
"""
from __future__ import annotations

import json
import time
from pathlib import Path

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse, JSONResponse
from starlette.datastructures import UploadFile

from logging_setup import get_logger, Component
from observability.events import Component as ObsComponent, EventEmitter, Severity
from trip_pipeline.orchestrator import TurnInput
from trip_pipeline.runtime import PipelineServices
from trip_pipeline.signaling import room_name_for

router = APIRouter()
logger = get_logger(Component.GATEWAY)
emitter = EventEmitter(ObsComponent.GATEWAY)


def get_services(request: Request) -> PipelineServices:
    return request.app.state.services


def error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _new_correlation_id() -> str:
    return f"cmd_{int(time.time() * 1000)}"


@router.post("/transcribe")
async def transcribe(request: Request, services: PipelineServices = Depends(get_services)):
    """
    Process one voice turn.

    multipart/form-data: file (audio), name, phone, id
    -> {"success": true, "tripState": {...}}
    """
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type:
        return error_response("Expected multipart/form-data", 400)

    form = await request.form()
    upload = form.get("file")
    phone = str(form.get("phone") or "").strip()
    name = str(form.get("name") or "").strip() or "User"
    caller_id = str(form.get("id") or "").strip()

    if not isinstance(upload, UploadFile):
        return error_response("Audio file is required", 400)
    if not phone:
        return error_response("Phone required", 400)

    audio = await upload.read()
    if not audio:
        return error_response("Audio file is required", 400)

    turn = TurnInput(
        audio=audio,
        phone=phone,
        caller_name=name,
        caller_id=caller_id,
        mime_type=upload.content_type or "application/octet-stream",
        filename=upload.filename or "audio.webm",
    )

    try:
        result = await services.orchestrator.process_turn(turn)
    except Exception as e:
        logger.error("Turn processing exception", error=str(e), exception_type=type(e).__name__)
        return error_response("Internal error", 500)

    if not result.success:
        return error_response(result.error or "Turn failed", result.http_status)

    return {"success": True, "tripState": result.state.to_dict()}


@router.post("/ingest")
async def ingest(request: Request, services: PipelineServices = Depends(get_services)):
    """Add or replace a knowledge document: {"id": ..., "text": ...}."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return error_response("Invalid JSON", 400)

    if not isinstance(body, dict) or not body.get("id") or not body.get("text"):
        return error_response("Missing id or text", 400)

    doc_id = str(body["id"])
    correlation_id = _new_correlation_id()
    emitter.emit(
        "ingest.received",
        session_id=f"doc:{doc_id}",
        correlation_id=correlation_id,
        text_length=len(str(body["text"])),
    )

    try:
        await services.knowledge.upsert(doc_id, str(body["text"]))
    except Exception as e:
        emitter.emit(
            "ingest.applied",
            session_id=f"doc:{doc_id}",
            severity=Severity.ERROR,
            correlation_id=correlation_id,
            result="error",
            error_class=type(e).__name__,
        )
        logger.error("Ingest failed", doc_id=doc_id, error=str(e), error_type=type(e).__name__)
        return error_response("ingest_failed", 502)

    emitter.emit(
        "ingest.applied",
        session_id=f"doc:{doc_id}",
        correlation_id=correlation_id,
        result="ok",
    )
    return {"success": True}


@router.get("/token")
async def token(
    phone: str = Query(None),
    name: str = Query("User"),
    services: PipelineServices = Depends(get_services),
):
    """LiveKit access token for the caller's signaling room."""
    if not phone:
        return error_response("Phone required", 400)
    jwt = services.signaler.issue_token(phone=phone, name=name or "User")
    return {"token": jwt, "roomName": room_name_for(phone)}


@router.get("/audio/{filename}")
async def audio(filename: str, services: PipelineServices = Depends(get_services)):
    audio_dir = Path(services.config.audio_dir).resolve()
    if Path(filename).name != filename or filename.startswith("."):
        return error_response("Audio not found", 404)
    path = (audio_dir / filename).resolve()
    if path.parent != audio_dir or not path.is_file():
        return error_response("Audio not found", 404)
    return FileResponse(path, media_type="audio/mpeg")
