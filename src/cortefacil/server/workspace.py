"""Workspace paths and initialization helpers."""

from __future__ import annotations

import os
from pathlib import Path

WORKSPACE_ENV_KEY = "CORTEFACIL_WORKSPACE_ROOT"


def _resolve_workspace_root() -> Path:
    env_value = os.getenv(WORKSPACE_ENV_KEY)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return Path(__file__).resolve().parents[3] / "workspace"


WORKSPACE_ROOT = _resolve_workspace_root()
UPLOADS_DIR = WORKSPACE_ROOT / "uploads"


def ensure_workspace_layout(uploads_dir: Path = UPLOADS_DIR) -> None:
    """Ensure workspace directories exist."""

    uploads_dir.mkdir(parents=True, exist_ok=True)
