"""Shared runtime state for the server."""

from __future__ import annotations

from .events import EventBroadcaster
from .sessions import SessionManager

broadcaster = EventBroadcaster()
session_manager = SessionManager(broadcaster)


def get_session_manager() -> SessionManager:
    return session_manager
