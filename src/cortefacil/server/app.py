"""FastAPI application factory."""

from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cortefacil.core import setup_logging

from .routers.sessions import router as sessions_router
from .state import broadcaster, session_manager
from .workspace import ensure_workspace_layout


def create_app() -> FastAPI:
    """Create the FastAPI app instance."""

    setup_logging()
    ensure_workspace_layout()
    app = FastAPI(title="CorteFácil Server", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    app.include_router(sessions_router)

    @app.on_event("startup")
    async def _capture_loop() -> None:
        broadcaster.set_loop(asyncio.get_running_loop())

    @app.on_event("shutdown")
    async def _release_sessions() -> None:
        await session_manager.close_all()

    return app


app = create_app()
