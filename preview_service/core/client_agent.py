"""
Client Agent - Push-Channel Follower State Machine.

The same state machine drives the browser client (static/js/preview_client.js)
and the headless ``preview-service follow`` command.

State Transitions:
    CONNECTING → OPEN                 (opened)
    OPEN → OPEN                       (message: replace content)
    OPEN → RECONNECTING               (closed by connection loss)
    CONNECTING → RECONNECTING         (connect_failed)
    RECONNECTING → CONNECTING         (retry timer fired)
    OPEN → CLOSED                     (clean close with a final code)

CLOSED is terminal: the server closed the preview on purpose, so the agent
closes its window and never reconnects.

dispatch() is pure bookkeeping: it consumes one named event and returns the
actions the driver must perform, so retry schedules can be checked without
sockets or timers.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)

__all__ = [
    "ClientAgent",
    "ReconnectionPolicy",
    "AgentState",
    "AgentEvent",
    "AgentAction",
    "EventType",
    "ActionType",
    "FINAL_CLOSE_CODES",
]

# Normal closure, going away (shutdown), superseded by a newer tab
FINAL_CLOSE_CODES = frozenset({1000, 1001, 4001})

ABNORMAL_CLOSURE = 1006


class AgentState(Enum):
    """Client agent connection state."""
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class EventType(Enum):
    OPENED = "opened"
    MESSAGE = "message"
    CLOSED = "closed"
    CONNECT_FAILED = "connect_failed"
    RETRY = "retry"


class ActionType(Enum):
    CONNECT = "connect"
    REPLACE_CONTENT = "replace_content"
    RENDER_EXTRAS = "render_extras"
    SCHEDULE_RECONNECT = "schedule_reconnect"
    CLOSE_WINDOW = "close_window"
    LOG = "log"


@dataclass(frozen=True)
class AgentEvent:
    """Something that happened to the push channel."""
    type: EventType
    data: Optional[str] = None
    code: Optional[int] = None
    was_clean: bool = False

    @classmethod
    def opened(cls) -> AgentEvent:
        return cls(EventType.OPENED)

    @classmethod
    def message(cls, html: str) -> AgentEvent:
        return cls(EventType.MESSAGE, data=html)

    @classmethod
    def closed(cls, code: int, was_clean: bool) -> AgentEvent:
        return cls(EventType.CLOSED, code=code, was_clean=was_clean)

    @classmethod
    def connect_failed(cls, error: str) -> AgentEvent:
        return cls(EventType.CONNECT_FAILED, data=error)

    @classmethod
    def retry(cls) -> AgentEvent:
        return cls(EventType.RETRY)


@dataclass(frozen=True)
class AgentAction:
    """Something the driver must do in response to an event."""
    type: ActionType
    html: Optional[str] = None
    delay: Optional[float] = None
    message: Optional[str] = None


@dataclass
class ReconnectionPolicy:
    """
    Capped exponential backoff.

    Attributes:
        base_delay: First retry delay (default: 1s)
        max_delay: Retry delay cap (default: 5s)
        jitter_factor: Randomization factor (default: none)
        backoff_multiplier: Exponential growth rate (default: 1.5)
    """
    base_delay: float = 1.0
    max_delay: float = 5.0
    jitter_factor: float = 0.0
    backoff_multiplier: float = 1.5

    def next_delay(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt`` (0-indexed).

        delay = min(base_delay * multiplier ** attempt, max_delay)

        Examples (defaults):
            attempt=0: 1.0s
            attempt=1: 1.5s
            attempt=2: 2.25s
            attempt=4: 5.0s (capped)
        """
        delay = min(
            self.base_delay * (self.backoff_multiplier ** attempt),
            self.max_delay
        )

        if self.jitter_factor:
            delay += delay * random.uniform(-self.jitter_factor, self.jitter_factor)

        return max(0.0, delay)


class ClientAgent:
    """
    Push-channel follower with bounded reconnection.

    Attributes:
        state: Current AgentState
        attempt_count: Consecutive failed attempts since the last open
        content: Last HTML received
    """

    __slots__ = ('policy', 'state', 'attempt_count', 'content', 'messages_received')

    def __init__(self, policy: Optional[ReconnectionPolicy] = None):
        self.policy = policy or ReconnectionPolicy()
        self.state = AgentState.CONNECTING
        self.attempt_count = 0
        self.content: Optional[str] = None
        self.messages_received = 0

    def start(self) -> List[AgentAction]:
        """Actions for the first connection attempt."""
        self.state = AgentState.CONNECTING
        return [AgentAction(ActionType.CONNECT)]

    def dispatch(self, event: AgentEvent) -> List[AgentAction]:
        """Apply ``event`` and return the resulting actions."""
        if self.state == AgentState.CLOSED:
            return []

        if event.type == EventType.OPENED:
            self.state = AgentState.OPEN
            self.attempt_count = 0
            return [AgentAction(ActionType.LOG, message="connected")]

        if event.type == EventType.MESSAGE:
            self.content = event.data
            self.messages_received += 1
            return [
                AgentAction(ActionType.REPLACE_CONTENT, html=event.data),
                AgentAction(ActionType.RENDER_EXTRAS),
            ]

        if event.type == EventType.CLOSED:
            if event.was_clean and event.code in FINAL_CLOSE_CODES:
                self.state = AgentState.CLOSED
                return [AgentAction(ActionType.CLOSE_WINDOW)]
            return self._schedule_reconnect(f"connection lost (code {event.code})")

        if event.type == EventType.CONNECT_FAILED:
            return self._schedule_reconnect(f"connection failed: {event.data}")

        if event.type == EventType.RETRY:
            if self.state != AgentState.RECONNECTING:
                return []
            self.state = AgentState.CONNECTING
            return [AgentAction(ActionType.CONNECT)]

        raise ValueError(f"Unknown event type: {event.type}")

    def _schedule_reconnect(self, reason: str) -> List[AgentAction]:
        delay = self.policy.next_delay(self.attempt_count)
        self.attempt_count += 1
        self.state = AgentState.RECONNECTING
        return [
            AgentAction(ActionType.LOG, message=f"{reason}, retrying in {delay:.2f}s"),
            AgentAction(ActionType.SCHEDULE_RECONNECT, delay=delay),
        ]

    async def follow(self, url: str, on_content: Callable[[str], None]):
        """
        Follow a preview server until it closes the preview.

        Args:
            url: WebSocket URL of the push channel
            on_content: Called with the HTML of every received update
        """
        pending = deque(self.start())

        while pending:
            action = pending.popleft()

            if action.type == ActionType.CONNECT:
                pending.extend(await self._connect_and_read(url, on_content))
            elif action.type == ActionType.SCHEDULE_RECONNECT:
                await asyncio.sleep(action.delay)
                pending.extend(self.dispatch(AgentEvent.retry()))
            elif action.type == ActionType.CLOSE_WINDOW:
                logger.info("Preview closed by server")
                return
            else:
                self._perform(action, on_content)

    async def _connect_and_read(self, url: str, on_content: Callable[[str], None]) -> List[AgentAction]:
        try:
            websocket = await websockets.connect(url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            return self.dispatch(AgentEvent.connect_failed(str(e) or type(e).__name__))

        try:
            for action in self.dispatch(AgentEvent.opened()):
                self._perform(action, on_content)

            async for message in websocket:
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                for action in self.dispatch(AgentEvent.message(message)):
                    self._perform(action, on_content)

        except ConnectionClosed as e:
            if e.rcvd is None:
                return self.dispatch(AgentEvent.closed(ABNORMAL_CLOSURE, was_clean=False))
            return self.dispatch(AgentEvent.closed(e.rcvd.code, was_clean=True))
        finally:
            await websocket.close()

        return self.dispatch(AgentEvent.closed(websocket.close_code or 1000, was_clean=True))

    def _perform(self, action: AgentAction, on_content: Callable[[str], None]):
        if action.type == ActionType.REPLACE_CONTENT:
            on_content(action.html)
        elif action.type == ActionType.RENDER_EXTRAS:
            # Highlighting and math rendering only exist in the browser.
            pass
        elif action.type == ActionType.LOG:
            logger.info(action.message)

    def get_stats(self) -> dict:
        """Get agent statistics for monitoring."""
        return {
            "state": self.state.value,
            "attempt_count": self.attempt_count,
            "messages_received": self.messages_received,
        }
