"""
Update Channel - Latest-Value Handoff Between Renders and the Live Session.

The channel conveys "latest known state", not history:
- publish() replaces whatever value is held, delivered or not
- A receiver always wakes up to the newest value it has not seen yet
- A receiver created after a publish still observes the held value
- close() signals end-of-stream to every waiting receiver, once each has
  drained the value it had not seen yet

Ordering:
Values are published in sequence order, and a receiver only ever moves
forward through versions, so a slow consumer skips intermediate pages but
never sees stale-then-newer delivery.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .preview_state import RenderedPage

__all__ = ["UpdateChannel", "ChannelReceiver", "ChannelClosed"]


class ChannelClosed(Exception):
    """Raised by a receiver once the channel has signalled end-of-stream."""
    pass


class UpdateChannel:
    """
    Single-slot channel holding the most recent RenderedPage.

    Concurrency Model:
    - Runs on one asyncio event loop; publish() is synchronous and never
      blocks the producer
    - Each version has its own Event; publishing sets the current one and
      installs a fresh Event for the next version
    """

    __slots__ = ('_value', '_version', '_closed', '_changed')

    def __init__(self):
        self._value: Optional[RenderedPage] = None
        self._version = 0
        self._closed = False
        self._changed = asyncio.Event()

    @property
    def latest(self) -> Optional[RenderedPage]:
        """The held value, or None if nothing has been published."""
        return self._value

    @property
    def version(self) -> int:
        return self._version

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, page: RenderedPage) -> None:
        """
        Replace the held value and wake receivers.

        Raises:
            ChannelClosed: If the channel was already closed
        """
        if self._closed:
            raise ChannelClosed("Cannot publish to a closed channel")

        self._value = page
        self._version += 1
        self._wake()

    def close(self) -> None:
        """Signal end-of-stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._wake()

    def subscribe(self) -> ChannelReceiver:
        """Create a receiver that has not yet seen any value."""
        return ChannelReceiver(self)

    def _wake(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()


class ChannelReceiver:
    """Consumer handle tracking the last version it observed."""

    __slots__ = ('_channel', '_seen')

    def __init__(self, channel: UpdateChannel):
        self._channel = channel
        self._seen = 0

    def has_changed(self) -> bool:
        """True if a value newer than the last one observed is held."""
        channel = self._channel
        return channel.latest is not None and channel.version > self._seen

    async def next(self) -> RenderedPage:
        """
        Wait for and return the newest unseen value.

        A value published before close() is still returned; the call after
        it reports end-of-stream.

        Raises:
            ChannelClosed: Once the channel is closed and drained
        """
        channel = self._channel

        while not channel.closed and not self.has_changed():
            await channel._changed.wait()

        if not self.has_changed():
            raise ChannelClosed("Update channel closed")

        self._seen = channel.version
        return channel.latest

    def __aiter__(self):
        return self

    async def __anext__(self) -> RenderedPage:
        try:
            return await self.next()
        except ChannelClosed:
            raise StopAsyncIteration
