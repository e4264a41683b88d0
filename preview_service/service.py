"""
Preview Service - Wiring and Embeddable Server.

PreviewService composes the render-and-broadcast pipeline:

    submit(markdown) → PreviewState → Renderer
                         ↓ publish
                     UpdateChannel → ConnectionManager → browser

PreviewServer runs the ASGI application on a uvicorn server inside the
caller's event loop, so editors and tests can bind to any address (port 0
included) and push markdown in-process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Tuple

import uvicorn

from .browser import open_browser
from .config import PreviewConfig
from .core.connection_manager import ConnectionManager
from .core.page import PageConfig
from .core.preview_state import PreviewState, RenderedPage
from .core.renderer import CommandRenderer, MarkdownRenderer, Renderer, RenderError
from .core.update_channel import UpdateChannel

logger = logging.getLogger(__name__)

__all__ = ["PreviewService", "PreviewServer", "build_renderer"]


def build_renderer(config: PreviewConfig) -> Renderer:
    """Pick the renderer described by ``config``."""
    if config.external_renderer:
        return CommandRenderer(config.external_renderer)
    return MarkdownRenderer()


class PreviewService:
    """
    Owns one preview: state, channel and live connection.

    Attributes:
        config: Service settings
        page_config: Configuration embedded in the initial page
        state: Single-writer preview state
        channel: Latest-value update channel
        connections: Connection manager for the browser session
    """

    def __init__(self, config: Optional[PreviewConfig] = None, renderer: Optional[Renderer] = None):
        self.config = config or PreviewConfig()
        self.renderer = renderer or build_renderer(self.config)
        self.page_config = PageConfig.from_settings(self.config)

        self.channel = UpdateChannel()
        self.state = PreviewState(self.renderer, self.channel)
        self.connections = ConnectionManager(self.channel, self.page_config)

    async def start(self):
        """Render the configured initial markdown, if any."""
        if self.config.initial_markdown is None:
            return

        try:
            await self.state.submit(self.config.initial_markdown)
        except RenderError as e:
            logger.error(f"Initial markdown could not be rendered: {e}")

    async def submit(self, markdown: str) -> RenderedPage:
        """
        Render new markdown and push it to the browser.

        Raises:
            RenderError: The previous page remains current
        """
        return await self.state.submit(markdown)

    async def shutdown(self) -> bool:
        """Close the live browser session. Returns True if one was open."""
        return await self.connections.shutdown()

    async def close(self):
        """Close the session and end the update stream."""
        await self.connections.shutdown()
        self.channel.close()

    def get_status(self) -> dict:
        stats = self.connections.get_stats()
        return {
            "state": stats["state"],
            "connected": self.connections.is_connected,
            "sequence": self.state.current.sequence,
            "session_id": stats["session_id"],
            "messages_sent": stats["messages_sent"],
            "last_error": str(self.state.last_error) if self.state.last_error else None,
        }


class _UvicornServer(uvicorn.Server):
    """uvicorn server that closes the preview before dropping connections."""

    def __init__(self, config: uvicorn.Config, service: PreviewService):
        super().__init__(config)
        self.preview = service

    async def shutdown(self, *args, **kwargs):
        await self.preview.shutdown()
        await super().shutdown(*args, **kwargs)


class PreviewServer:
    """
    Live preview server running in the current event loop.

    Example:
        async with PreviewServer(PreviewConfig(port=0)) as server:
            server.open_browser()
            await server.send("# Hello, world!")
    """

    def __init__(self, config: Optional[PreviewConfig] = None, renderer: Optional[Renderer] = None):
        from .main import create_app

        self.config = config or PreviewConfig()
        self.app = create_app(self.config, renderer)
        self.service: PreviewService = self.app.state.preview

        self._server: Optional[_UvicornServer] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self, timeout: float = 5.0):
        """
        Bind and start serving.

        Raises:
            TimeoutError: Server did not start within ``timeout`` seconds
        """
        uv_config = uvicorn.Config(
            app=self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="warning",
            access_log=False,
        )
        self._server = _UvicornServer(uv_config, self.service)
        self._task = asyncio.create_task(self._server.serve(), name="preview_server")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while not self._server.started:
            if self._task.done():
                self._task.result()
                raise RuntimeError("Preview server exited during startup")
            if loop.time() > deadline:
                raise TimeoutError(f"Preview server did not start within {timeout}s")
            await asyncio.sleep(0.01)

        logger.info(f"Preview server listening on {self.url}")

    @property
    def addr(self) -> Tuple[str, int]:
        """Host and port the server is bound to."""
        if self._server is None or not self._server.started:
            raise RuntimeError("Preview server is not running")
        sockname = self._server.servers[0].sockets[0].getsockname()
        return sockname[0], sockname[1]

    @property
    def url(self) -> str:
        host, port = self.addr
        return f"http://{host}:{port}/"

    @property
    def websocket_url(self) -> str:
        host, port = self.addr
        return f"ws://{host}:{port}/"

    async def send(self, markdown: str) -> RenderedPage:
        """Publish new markdown to the connected browser."""
        return await self.service.submit(markdown)

    def open_browser(self, command: Optional[Sequence[str]] = None):
        """Open the preview in the default browser, or with ``command``."""
        return open_browser(self.url, command)

    async def stop(self):
        """Close the preview session and stop serving. Idempotent."""
        if self._server is None:
            return

        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._server = None
            self._task = None

    async def wait(self):
        """Serve until the server is asked to exit."""
        if self._task is not None:
            await self._task

    async def __aenter__(self) -> PreviewServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()
