"""
Test configuration and fixtures.

Fixes import paths and provides shared test fixtures.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add repository root to path for imports
repo_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(repo_dir))

from preview_service.config import PreviewConfig
from preview_service.core.renderer import Renderer, RenderError


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that bind real sockets")


class FailingRenderer(Renderer):
    """Renders like a toy markdown engine but rejects input containing 'BROKEN'."""

    def __init__(self):
        self.calls = 0

    def render(self, markdown: str) -> str:
        self.calls += 1
        if "BROKEN" in markdown:
            raise RenderError("input rejected")
        return f"<p>{markdown}</p>"


class FakeWebSocket:
    """In-memory stand-in for a FastAPI WebSocket."""

    def __init__(self):
        self.accepted = False
        self.sent = []
        self.closed_with = None
        self.broken = False
        self._incoming = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.broken or self.closed_with is not None:
            raise RuntimeError("WebSocket is not connected")
        self.sent.append(text)

    async def receive(self):
        return await self._incoming.get()

    async def close(self, code: int = 1000, reason=None):
        if self.closed_with is not None:
            raise RuntimeError("WebSocket already closed")
        self.closed_with = (code, reason)

    def client_disconnect(self, code: int = 1000):
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": code})


async def wait_until(predicate, timeout: float = 2.0):
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def failing_renderer():
    return FailingRenderer()


@pytest.fixture
def config():
    """Settings isolated from the developer's environment."""
    return PreviewConfig(
        _env_file=None,
        host="127.0.0.1",
        port=0,
        title="Test Preview",
        css=[],
        js=[],
        initial_markdown=None,
        external_renderer=None,
        static_root=None,
    )


@pytest.fixture
def make_websocket():
    """Factory for in-memory WebSockets bound to the running loop."""
    return FakeWebSocket


@pytest.fixture
def eventually():
    """Poll a predicate until it holds."""
    return wait_until
