"""Uvicorn server runner for the repo-radar API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uvicorn

from repo_radar.api.app import create_app

if TYPE_CHECKING:
    from repo_radar.config import Settings


def run_server(settings: Settings) -> None:
    """Run uvicorn with settings-backed host/port values."""
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.logging.level.lower(),
    )
