"""Session endpoints: upload, run, cancel, dismiss, downloads and SSE."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from cortefacil.core import InvalidInputError, MediaBlob, MediaDecodeError

from ..events import stream_events
from ..sessions import SessionBusyError, SessionManager
from ..state import get_session_manager

router = APIRouter(prefix="/api", tags=["sessions"])


class RunRequest(BaseModel):
    sensitivity: Optional[int] = None
    base_segment_duration: Optional[int] = None


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc.args[0] if exc.args else exc))


def _blob_response(blob: MediaBlob, file_name: str) -> StreamingResponse:
    headers = {
        "Content-Disposition": f'attachment; filename="{file_name}"',
        "Content-Length": str(blob.size),
    }
    return StreamingResponse(blob.iter_chunks(), media_type=blob.mime_type, headers=headers)


@router.post("/sessions")
def create_session(
    file: UploadFile = File(...),
    manager: SessionManager = Depends(get_session_manager),
) -> Dict[str, Any]:
    """Store an uploaded video and probe its duration."""

    try:
        session = manager.create_session(
            file.file,
            filename=file.filename or "video",
            content_type=file.content_type,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except MediaDecodeError as exc:
        raise HTTPException(status_code=415, detail=str(exc)) from exc
    finally:
        file.file.close()
    return session.to_dict()


@router.get("/sessions/{session_id}")
def session_status(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, Any]:
    try:
        return manager.snapshot(session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc


@router.post("/sessions/{session_id}/run")
async def start_run(
    session_id: str,
    request: RunRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> Dict[str, Any]:
    """Start processing; progress is delivered over /api/events."""

    try:
        context = await manager.start(
            session_id,
            sensitivity=request.sensitivity,
            base_segment_duration=request.base_segment_duration,
        )
    except LookupError as exc:
        raise _not_found(exc) from exc
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SessionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"session_id": session_id, "run_id": context.run_id, "status": context.status.value}


@router.post("/sessions/{session_id}/cancel")
async def cancel_run(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, Any]:
    try:
        cancelled = await manager.cancel(session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return {"session_id": session_id, "cancelled": cancelled}


@router.post("/sessions/{session_id}/dismiss")
async def dismiss_result(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, Any]:
    try:
        released = manager.dismiss(session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return {"session_id": session_id, "released": released}


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> Dict[str, Any]:
    try:
        await manager.close(session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return {"session_id": session_id, "closed": True}


@router.get("/sessions/{session_id}/clip")
def download_clip(session_id: str, manager: SessionManager = Depends(get_session_manager)) -> StreamingResponse:
    try:
        clip = manager.final_clip(session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return _blob_response(clip.blob, clip.file_name)


@router.get("/sessions/{session_id}/segments/{index}")
def preview_segment(
    session_id: str,
    index: int,
    manager: SessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    try:
        segment = manager.segment(session_id, index)
        source = manager.get(session_id).source
    except LookupError as exc:
        raise _not_found(exc) from exc
    suffix = source.path.suffix or ""
    return _blob_response(segment.blob, f"segment_{segment.index:02d}{suffix}")


@router.get("/events")
async def events(
    request: Request,
    session_id: Optional[str] = None,
    manager: SessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    """SSE channel for run progress, optionally limited to one session."""

    try:
        snapshot = manager.snapshot(session_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    initial_messages = [{"type": "snapshot", "session_id": session_id, "payload": snapshot}]
    accept = None if session_id is None else (lambda message: message.get("session_id") == session_id)
    generator = stream_events(request, manager.broadcaster, initial_messages=initial_messages, accept=accept)
    return StreamingResponse(generator, media_type="text/event-stream")
