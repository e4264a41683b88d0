"""
Markdown Live Preview Service.

Local preview server that renders markdown and pushes every re-render to
the browser over a WebSocket:
- Single-writer render pipeline with monotonic page sequence
- Latest-value update channel (stale renders are coalesced, never reordered)
- One live browser session; newer tabs supersede older ones
- Browser client with bounded reconnection and a final close on shutdown
- Prometheus metrics
"""

__version__ = "0.7.5"

from .config import PreviewConfig
from .core import (
    Renderer,
    MarkdownRenderer,
    CommandRenderer,
    RenderError,
    RenderedPage,
    PageConfig,
)
from .service import PreviewService, PreviewServer

__all__ = [
    "PreviewConfig",
    "Renderer",
    "MarkdownRenderer",
    "CommandRenderer",
    "RenderError",
    "RenderedPage",
    "PageConfig",
    "PreviewService",
    "PreviewServer",
]
