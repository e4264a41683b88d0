"""
Preview State - Single-Writer Owner of the Markdown Source and Its Render.

Responsibilities:
- Take ownership of submitted markdown and render it
- Number renders with a monotonic sequence
- Keep the last-known-good page when a render fails
- Publish each successful render to the update channel

Concurrency:
submit() calls are serialized by an asyncio.Lock. Rendering itself runs in a
worker thread so a slow renderer never stalls the event loop, and the page is
published before the lock is released, so publication order always equals
sequence order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from .renderer import Renderer, RenderError
from .update_channel import UpdateChannel
from ..observability import record_render, record_render_error

logger = logging.getLogger(__name__)

__all__ = ["PreviewState", "RenderedPage"]


@dataclass(frozen=True)
class RenderedPage:
    """Immutable snapshot of rendered HTML and the render that produced it."""
    html: str
    sequence: int


EMPTY_PAGE = RenderedPage(html="", sequence=0)


class PreviewState:
    """
    Holds the current markdown source and its most recent render.

    Attributes:
        current: Last successfully rendered page
        source: Markdown that produced ``current``
        last_error: Most recent render failure, cleared on success
    """

    __slots__ = ('renderer', 'channel', 'current', 'source', 'last_error', '_lock')

    def __init__(self, renderer: Renderer, channel: UpdateChannel):
        """
        Initialize preview state.

        Args:
            renderer: Converts markdown to HTML
            channel: Receives every successful render
        """
        self.renderer = renderer
        self.channel = channel
        self.current: RenderedPage = EMPTY_PAGE
        self.source: Optional[str] = None
        self.last_error: Optional[RenderError] = None
        self._lock = asyncio.Lock()

    async def submit(self, markdown: str) -> RenderedPage:
        """
        Render new markdown and make it the current page.

        Args:
            markdown: Complete replacement source text

        Returns:
            The newly rendered page

        Raises:
            RenderError: Renderer rejected the input; state is unchanged
        """
        async with self._lock:
            start_time = time.perf_counter()

            try:
                html = await asyncio.to_thread(self.renderer.render, markdown)
            except RenderError as e:
                self._record_failure(e)
                raise
            except Exception as e:
                error = RenderError(f"Unexpected renderer failure: {e}")
                self._record_failure(error)
                raise error from e

            page = RenderedPage(html=html, sequence=self.current.sequence + 1)
            self.current = page
            self.source = markdown
            self.last_error = None

            duration = time.perf_counter() - start_time
            record_render(duration)
            logger.debug(
                f"Rendered page #{page.sequence} ({len(markdown)} chars -> "
                f"{len(html)} chars) in {duration * 1000:.1f}ms"
            )

            self.channel.publish(page)
            return page

    def _record_failure(self, error: RenderError):
        self.last_error = error
        record_render_error()
        logger.warning(
            f"Render failed, keeping page #{self.current.sequence}: {error}"
        )
