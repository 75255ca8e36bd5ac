"""Per-upload sessions: one source video, at most one active run."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional

from cortefacil.core import (
    CancelledByUser,
    ExtractedSegment,
    FinalClip,
    HighlightError,
    PipelineConfig,
    SourceVideo,
    get_logger,
    load_config,
    resolve_settings,
)
from cortefacil.core.logging_utils import attach_sse_handler
from cortefacil.extract import load_source
from cortefacil.pipeline import HighlightPipeline, PipelineContext

from .events import EventBroadcaster
from .workspace import UPLOADS_DIR, ensure_workspace_layout

logger = get_logger(__name__)

_GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}


class SessionBusyError(RuntimeError):
    """A run is already in progress for the session."""


@dataclass
class Session:
    session_id: str
    source: SourceVideo
    created_at: str
    context: Optional[PipelineContext] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at,
            "source": self.source.to_dict(),
            "running": self.running,
            "run": self.context.to_dict() if self.context else None,
        }


class SessionManager:
    """Holds uploaded sources and drives the pipeline on the server event loop."""

    def __init__(
        self,
        broadcaster: EventBroadcaster,
        *,
        config: Optional[PipelineConfig] = None,
        pipeline: Optional[HighlightPipeline] = None,
        uploads_dir: Path = UPLOADS_DIR,
    ) -> None:
        self.broadcaster = broadcaster
        self.config = config or load_config()
        self.pipeline = pipeline or HighlightPipeline(self.config)
        self.uploads_dir = uploads_dir
        self._sessions: Dict[str, Session] = {}

    def create_session(self, upload: BinaryIO, *, filename: str, content_type: Optional[str]) -> Session:
        ensure_workspace_layout(self.uploads_dir)
        session_id = uuid.uuid4().hex
        destination = self.uploads_dir / f"{session_id}{Path(filename).suffix.lower()}"
        with destination.open("wb") as handle:
            shutil.copyfileobj(upload, handle)
        mime_type = None if (content_type or "") in _GENERIC_CONTENT_TYPES else content_type
        try:
            source = load_source(destination, mime_type, name=filename, config=self.config.extract)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        session = Session(session_id=session_id, source=source, created_at=_now())
        self._sessions[session_id] = session
        logger.info("session %s created for %s", session_id, filename)
        return session

    def get(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise LookupError(f"unknown session {session_id}") from None

    def snapshot(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        if session_id is not None:
            return self.get(session_id).to_dict()
        return {"sessions": [session.to_dict() for session in self._sessions.values()]}

    async def start(
        self,
        session_id: str,
        *,
        sensitivity: Optional[int] = None,
        base_segment_duration: Optional[int] = None,
    ) -> PipelineContext:
        session = self.get(session_id)
        if session.running:
            raise SessionBusyError(f"session {session_id} is already processing")
        settings = resolve_settings(
            self.config,
            sensitivity=sensitivity,
            base_segment_duration=base_segment_duration,
        )
        if not self.broadcaster.has_loop:
            self.broadcaster.set_loop(asyncio.get_running_loop())
        if session.context is not None:
            # a new run supersedes the previous result
            self.pipeline.dismiss(session.context)
        context = self.pipeline.new_context(session.source, settings)
        session.context = context
        session.task = asyncio.create_task(self._drive(session, context))
        return context

    async def cancel(self, session_id: str) -> bool:
        session = self.get(session_id)
        if not session.running or session.context is None:
            return False
        session.context.cancel()
        assert session.task is not None
        with contextlib.suppress(asyncio.CancelledError):
            await session.task
        return True

    def dismiss(self, session_id: str) -> int:
        session = self.get(session_id)
        if session.context is None:
            return 0
        released = self.pipeline.dismiss(session.context)
        session.context = None
        return released

    async def close(self, session_id: str) -> None:
        await self.cancel(session_id)
        self.dismiss(session_id)
        session = self._sessions.pop(session_id)
        session.source.path.unlink(missing_ok=True)
        logger.info("session %s closed", session_id)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    def final_clip(self, session_id: str) -> FinalClip:
        context = self.get(session_id).context
        if context is None or context.result is None:
            raise LookupError(f"session {session_id} has no finished clip")
        return context.result

    def segment(self, session_id: str, index: int) -> ExtractedSegment:
        context = self.get(session_id).context
        if context is None:
            raise LookupError(f"session {session_id} has no run")
        for segment in context.segments:
            if segment.index == index:
                return segment
        raise LookupError(f"segment {index} not found")

    async def _drive(self, session: Session, context: PipelineContext) -> None:
        def forward_log(message: str, record: logging.LogRecord) -> None:
            self._publish(session, "log", {"level": record.levelname, "message": message})

        handler = attach_sse_handler(get_logger(), forward_log, run_id=context.run_id)
        try:
            async for event in self.pipeline.run(context):
                self._publish(session, "progress", event.to_dict())
        except CancelledByUser:
            pass
        except HighlightError as exc:
            logger.warning("session %s run failed: %s", session.session_id, exc)
        except Exception:
            logger.exception("session %s run crashed", session.session_id)
        finally:
            get_logger().removeHandler(handler)
            self._publish(session, "status", context.to_dict())

    def _publish(self, session: Session, kind: str, payload: Dict[str, Any]) -> None:
        self.broadcaster.publish({"type": kind, "session_id": session.session_id, "payload": payload})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
