"""
Markdown Live Preview - Main Application.

FastAPI application serving:
- GET / : initial preview page (HTML shell + current render)
- WebSocket / : push channel carrying full re-rendered HTML
- /__/... : bundled browser client and stylesheet
- /api/v1 : markdown submission and session control
- any other path : files under the configured static root
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .api import router
from .config import PreviewConfig
from .core.renderer import Renderer
from .service import PreviewService

logger = logging.getLogger(__name__)


def create_app(config: Optional[PreviewConfig] = None, renderer: Optional[Renderer] = None) -> FastAPI:
    """
    Build the preview application.

    Args:
        config: Service settings (default: environment / .env)
        renderer: Renderer override (default: chosen from ``config``)
    """
    config = config or PreviewConfig()
    service = PreviewService(config, renderer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
        - Render the initial markdown

        Shutdown:
        - Close the browser session
        - End the update stream
        """
        logger.info("Starting Preview Service...")
        await service.start()
        logger.info("Preview Service started successfully")

        yield

        logger.info("Shutting down Preview Service...")
        await service.close()
        logger.info("Preview Service shut down")

    app = FastAPI(
        title="Markdown Live Preview",
        description="Live markdown preview pushed to the browser over a WebSocket",
        version=__version__,
        lifespan=lifespan
    )
    app.state.preview = service

    # Include REST API router
    app.include_router(router)

    @app.get("/", response_class=HTMLResponse)
    async def initial_page():
        """Initial page with the current render and the push-channel address."""
        return HTMLResponse(service.connections.serve_initial_page())

    @app.websocket("/")
    async def preview_socket(websocket: WebSocket):
        """
        Push channel for preview updates.

        Message Protocol:
            Server → Client:
            - text frame: full rendered HTML fragment
            - close 1001: preview closed, do not reconnect
            - close 4001: superseded by a newer tab
        """
        await service.connections.handle(websocket)

    app.mount("/__", StaticFiles(packages=[("preview_service", "static")]), name="assets")

    if config.static_root:
        logger.info(f"Serving static files from {config.static_root}")
        app.mount("/", StaticFiles(directory=config.static_root), name="static")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "preview_service.main:create_app",
        factory=True,
        host="127.0.0.1",
        port=8080,
        log_level="info"
    )
