"""
Connection Manager - Single Live Push-Channel Session.

State Machine:
    AWAITING_CONNECTION → CONNECTED      (browser connects)
    CONNECTED → CONNECTED                (newer browser connection supersedes)
    CONNECTED → AWAITING_CONNECTION      (connection lost)
    CONNECTED → CLOSING → AWAITING_CONNECTION  (shutdown)

Session Lifecycle:
Each accepted WebSocket gets a PreviewSession that runs three tasks:
- forward: waits on the update channel and pushes every new page as text
- read: waits for client frames until the browser disconnects
- stop: waits for a deliberate close (supersession or shutdown)
The first one to finish ends the session; the others are cancelled and the
socket is always released in ``finally``.

Close Codes:
- 1001: preview closed (shutdown or channel end-of-stream)
- 4001: superseded by a newer connection
The browser client treats both as final and does not reconnect.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from enum import Enum
from typing import Optional

from fastapi import WebSocket

from .page import PageConfig, render_page
from .preview_state import EMPTY_PAGE
from .update_channel import ChannelReceiver, UpdateChannel
from ..observability import (
    record_message_sent,
    record_shutdown,
    record_supersession,
    record_websocket_connection,
    record_websocket_disconnection,
)

logger = logging.getLogger(__name__)

__all__ = ["ConnectionManager", "ManagerState", "PreviewSession", "CloseCode"]


class ManagerState(Enum):
    """Connection manager state machine."""
    AWAITING_CONNECTION = "awaiting_connection"
    CONNECTED = "connected"
    CLOSING = "closing"


class CloseCode:
    """WebSocket close codes sent by the server."""
    SHUTDOWN = 1001
    SUPERSEDED = 4001


class PreviewSession:
    """
    One accepted push-channel connection.

    Attributes:
        session_id: Identifier for log correlation
        websocket: Underlying FastAPI WebSocket
        receiver: Update channel receiver owned by this session
        messages_sent: Number of pages pushed so far
        close_code: Close code sent by the server, None if the client left
    """

    __slots__ = (
        'session_id',
        'websocket',
        'receiver',
        'connected_at',
        'messages_sent',
        'close_code',
        'close_reason',
        '_stop',
        '_started',
        '_finished',
    )

    def __init__(self, session_id: str, websocket: WebSocket, receiver: ChannelReceiver):
        self.session_id = session_id
        self.websocket = websocket
        self.receiver = receiver
        self.connected_at = time.time()
        self.messages_sent = 0
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None

        self._stop = asyncio.Event()
        self._started = False
        self._finished = asyncio.Event()

    @property
    def is_open(self) -> bool:
        return not self._stop.is_set() and not self._finished.is_set()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    async def run(self):
        """
        Forward updates until the session ends.

        Never raises for network errors; a dropped connection simply ends
        the session.
        """
        self._started = True

        forward = asyncio.create_task(self._forward(), name=f"preview_forward_{self.session_id}")
        read = asyncio.create_task(self._read(), name=f"preview_read_{self.session_id}")
        stop = asyncio.create_task(self._stop.wait(), name=f"preview_stop_{self.session_id}")

        try:
            done, _ = await asyncio.wait({forward, read, stop}, return_when=asyncio.FIRST_COMPLETED)

            if self._stop.is_set():
                logger.info(f"Closing session {self.session_id}: {self.close_reason}")
            elif forward in done:
                if forward.exception() is None:
                    # Channel end-of-stream
                    self._request_close(CloseCode.SHUTDOWN, "preview closed")
                    logger.info(f"Update channel closed, ending session {self.session_id}")
                else:
                    logger.info(
                        f"Connection lost for session {self.session_id}: {forward.exception()}"
                    )
            else:
                logger.info(f"Client disconnected from session {self.session_id}")

        finally:
            for task in (forward, read, stop):
                task.cancel()
            await asyncio.gather(forward, read, stop, return_exceptions=True)

            await self._release_socket()
            self._finished.set()

    async def close(self, code: int, reason: str, timeout: float = 5.0):
        """
        Deliberately close the session and wait for it to wind down.

        Args:
            code: WebSocket close code sent to the client
            reason: Close reason sent to the client
            timeout: Seconds to wait for the session tasks to finish
        """
        self._request_close(code, reason)

        if not self._started:
            await self._release_socket()
            self._finished.set()
            return

        try:
            await asyncio.wait_for(self._finished.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Session {self.session_id} did not close within {timeout}s")

    def _request_close(self, code: int, reason: str):
        if self._stop.is_set():
            return
        self.close_code = code
        self.close_reason = reason
        self._stop.set()

    async def _forward(self):
        async for page in self.receiver:
            if self._stop.is_set():
                return

            await self.websocket.send_text(page.html)
            self.messages_sent += 1
            record_message_sent()

            logger.debug(
                f"Sent page #{page.sequence} ({len(page.html)} chars) to session {self.session_id}"
            )

    async def _read(self):
        while True:
            message = await self.websocket.receive()

            if message["type"] == "websocket.disconnect":
                return message.get("code")

            logger.debug(f"Ignoring client frame on session {self.session_id}")

    async def _release_socket(self):
        if self.close_code is None:
            return

        try:
            await self.websocket.close(code=self.close_code, reason=self.close_reason)
        except Exception as e:
            # Socket already gone; nothing left to release.
            logger.debug(f"Close failed for session {self.session_id}: {e}")


class ConnectionManager:
    """
    Owns the single live session slot and the initial page.

    Concurrency Model:
    - Runs on one asyncio event loop
    - The session slot is only mutated between awaits, so no lock is needed
    - Sessions never share a channel receiver
    """

    __slots__ = ('channel', 'page_config', 'socket_path', 'close_timeout', 'state', '_session', '_ids', 'stats')

    def __init__(
        self,
        channel: UpdateChannel,
        page_config: Optional[PageConfig] = None,
        socket_path: str = "/",
        close_timeout: float = 5.0,
    ):
        """
        Initialize connection manager.

        Args:
            channel: Update channel the sessions forward from
            page_config: Configuration embedded in the initial page
            socket_path: WebSocket endpoint path embedded in the initial page
            close_timeout: Seconds to wait for a closing session to finish
        """
        self.channel = channel
        self.page_config = page_config or PageConfig()
        self.socket_path = socket_path
        self.close_timeout = close_timeout
        self.state = ManagerState.AWAITING_CONNECTION

        self._session: Optional[PreviewSession] = None
        self._ids = itertools.count(1)

        self.stats = {
            'total_connections': 0,
            'superseded_connections': 0,
            'lost_connections': 0,
            'shutdowns': 0,
        }

    @property
    def session(self) -> Optional[PreviewSession]:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self.state == ManagerState.CONNECTED

    def serve_initial_page(self) -> str:
        """Render the page shell around whatever the channel currently holds."""
        page = self.channel.latest or EMPTY_PAGE
        return render_page(self.page_config, page.html, socket_path=self.socket_path)

    async def accept_connection(self, websocket: WebSocket) -> PreviewSession:
        """
        Accept a WebSocket and make it the live session.

        Any previous session is superseded: it stops forwarding immediately
        and is closed with code 4001.
        """
        await websocket.accept()

        session = PreviewSession(f"ws_{next(self._ids)}", websocket, self.channel.subscribe())

        previous, self._session = self._session, session
        self.state = ManagerState.CONNECTED
        self.stats['total_connections'] += 1
        record_websocket_connection()

        logger.info(f"WebSocket connected: {session.session_id}")

        if previous is not None and not previous.finished:
            logger.info(f"Session {previous.session_id} superseded by {session.session_id}")
            self.stats['superseded_connections'] += 1
            record_supersession()
            await previous.close(CloseCode.SUPERSEDED, "superseded", timeout=self.close_timeout)

        return session

    async def handle(self, websocket: WebSocket):
        """Accept ``websocket`` and serve it until the session ends."""
        try:
            session = await self.accept_connection(websocket)
        except Exception as e:
            logger.warning(f"Failed to accept WebSocket: {e}")
            return

        try:
            await session.run()
        except Exception as e:
            logger.error(f"Session {session.session_id} failed: {e}", exc_info=True)
        finally:
            if session.close_code is None:
                self.stats['lost_connections'] += 1
            record_websocket_disconnection()
            self._release(session)

    async def shutdown(self) -> bool:
        """
        Close the live session, if any. Idempotent.

        Returns:
            True if a session was closed
        """
        session = self._session

        if session is None or not session.is_open:
            if session is None:
                self.state = ManagerState.AWAITING_CONNECTION
            return False

        self.state = ManagerState.CLOSING
        self.stats['shutdowns'] += 1
        record_shutdown()

        await session.close(CloseCode.SHUTDOWN, "preview closed", timeout=self.close_timeout)
        self._release(session)

        if self._session is None:
            self.state = ManagerState.AWAITING_CONNECTION

        return True

    def _release(self, session: PreviewSession):
        if self._session is not session:
            return

        self._session = None
        self.state = ManagerState.AWAITING_CONNECTION

        logger.info(f"WebSocket released: {session.session_id}")

    def get_stats(self) -> dict:
        """Get connection statistics for monitoring."""
        session = self._session
        return {
            **self.stats,
            'state': self.state.value,
            'session_id': session.session_id if session else None,
            'messages_sent': session.messages_sent if session else 0,
        }
