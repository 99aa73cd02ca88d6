"""
segscribe/api/routes.py
========================
HTTP API - SegScribe

Responsibility:
    - POST /api/whisper/upload            accept a recording, start a session
    - GET  /api/whisper/status/{id}       progress of a session
    - GET  /api/whisper/assemble/{id}     merged transcript so far
    - GET  /api/whisper/segments/{id}     timed phrases so far
    - Map SegScribe errors onto HTTP status codes

Blocking work (decoding, slicing, publishing, disk reads) runs in a thread
via ``asyncio.to_thread`` so the event loop keeps serving polls.

This module does NOT:
    - Run workers (main.py starts them in memory-broker mode)
    - Read configuration (the service carries its Settings)
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable

from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from segscribe.errors import (
    DispatchError,
    InvalidConfigurationError,
    PersistenceError,
    SessionNotFoundError,
)
from segscribe.service import TranscriptionService

logger = logging.getLogger("segscribe.api")

router = APIRouter(prefix="/api/whisper")


def _service(request: Request) -> TranscriptionService:
    return request.app.state.service


def _not_found(exc: SessionNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"sessionId": exc.session_id, "message": exc.message},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/upload")
async def upload_audio(
    request: Request,
    file: UploadFile = File(...),
    language: str = Form("auto"),
):
    """
    Store the uploaded recording, cut it into overlapping segments and queue
    one transcription job per segment.

    Returns:
        {"sessionId", "status", "sectionsTotal"}
    """
    service = _service(request)
    logger.info("Audio file received: %s", file.filename)

    limit = service.settings.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {service.settings.max_upload_mb} MB limit.",
        )

    try:
        audio_bytes = await file.read()
    except OSError:
        raise HTTPException(status_code=400, detail="Failed to read uploaded file.")

    if not audio_bytes:
        raise HTTPException(status_code=400, detail="File is missing or empty.")
    if len(audio_bytes) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {service.settings.max_upload_mb} MB limit.",
        )

    try:
        session_id, windows = await asyncio.to_thread(
            service.submit_upload, audio_bytes, file.filename or "", language
        )
    except InvalidConfigurationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except (DispatchError, PersistenceError) as exc:
        logger.error("Upload dispatch failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))
    except Exception as exc:
        logger.error("Upload unexpected error: %s", exc, exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {exc}")

    return {
        "sessionId": session_id,
        "status": "Audio uploaded and segmented",
        "sectionsTotal": len(windows),
    }


@router.get("/status/{session_id}")
async def get_status(session_id: str, request: Request):
    try:
        status = await asyncio.to_thread(_service(request).get_status, session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc)

    return {
        "sessionId": status.session_id,
        "status": status.state,
        "progress": {
            "ready": status.ready,
            "total": status.total,
            "percentage": status.percentage,
        },
        "updatedAt": status.updated_at,
    }


@router.get("/assemble/{session_id}")
async def assemble_transcript(session_id: str, request: Request):
    """Merged transcript of every segment finished so far."""
    try:
        result = await asyncio.to_thread(_service(request).get_assembled, session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc)
    except Exception as exc:
        logger.error("[%s] Assembly failed: %s", session_id, exc, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error while assembling text.")

    return {
        "sessionId": result.session_id,
        "isComplete": result.is_complete,
        "count": result.ready_count,
        "total": result.total_count,
        "fullText": result.merged_text,
    }


@router.get("/segments/{session_id}")
async def get_segments(session_id: str, request: Request):
    try:
        phrases = await asyncio.to_thread(_service(request).get_segments, session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc)

    return {
        "sessionId": session_id,
        "segments": [p.to_dict() for p in phrases],
    }


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(
    service: TranscriptionService,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[Any]] | None = None,
) -> FastAPI:
    app = FastAPI(
        title="SegScribe",
        description="Segmented, queue-distributed audio transcription.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
