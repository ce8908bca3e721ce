from typing import Callable, Optional

import click
from fastapi import FastAPI

from envsetup.config import get_settings
from envsetup.routers import dialog, links
from envsetup.services.interactive.registry import SessionRegistry


def create_app(
    registry: Optional[SessionRegistry] = None,
    link_opener: Optional[Callable[[str], object]] = None,
) -> FastAPI:
    """
    Build the dialog app.

    Args:
        registry: Session registry shared with the orchestrator (a fresh
            one when omitted)
        link_opener: Callable used by /api/open-url (click.launch by default)
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Environment selection dialog",
        version="0.1.0",
    )
    app.state.registry = registry or SessionRegistry()
    app.state.link_opener = link_opener or click.launch

    app.include_router(dialog.router)
    app.include_router(links.router)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "app": settings.app_name,
            "sessions": len(app.state.registry.session_ids),
        }

    return app
