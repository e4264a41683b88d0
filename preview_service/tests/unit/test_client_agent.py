"""
Unit Tests for the Client Agent.

Tests the push-channel follower state machine and its backoff schedule.

Test Coverage:
- Capped exponential backoff
- Jitter randomization
- State machine transitions
- Final close codes (no reconnection)
- follow() driver against a mocked websockets client
"""

from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from preview_service.core.client_agent import (
    ActionType,
    AgentEvent,
    AgentState,
    ClientAgent,
    ReconnectionPolicy,
)


def action_types(actions):
    return [action.type for action in actions]


def closed_with(code: int, reason: str) -> ConnectionClosedError:
    frame = Close(code, reason)
    return ConnectionClosedError(frame, frame, rcvd_then_sent=True)


def scheduled_delay(actions):
    return next(a.delay for a in actions if a.type == ActionType.SCHEDULE_RECONNECT)


class TestReconnectionPolicy:
    """Test suite for reconnection backoff policy."""

    def test_initial_delay(self):
        """Test first retry uses the base delay."""
        assert ReconnectionPolicy().next_delay(0) == 1.0

    def test_exponential_growth(self):
        """Test delay grows by the multiplier."""
        policy = ReconnectionPolicy()

        assert policy.next_delay(1) == pytest.approx(1.5)
        assert policy.next_delay(2) == pytest.approx(2.25)
        assert policy.next_delay(3) == pytest.approx(3.375)

    def test_max_delay_cap(self):
        """Test delay is capped at max_delay."""
        policy = ReconnectionPolicy()

        assert policy.next_delay(4) == 5.0
        assert policy.next_delay(50) == 5.0

    def test_custom_cap(self):
        """Test a lower cap applies from the first attempt that exceeds it."""
        policy = ReconnectionPolicy(max_delay=2.0)

        assert [policy.next_delay(n) for n in range(4)] == [1.0, 1.5, 2.0, 2.0]

    def test_jitter_stays_in_range(self):
        """Test jitter randomizes within the configured factor."""
        policy = ReconnectionPolicy(base_delay=1.0, jitter_factor=0.25)

        delays = [policy.next_delay(0) for _ in range(100)]

        assert all(0.75 <= delay <= 1.25 for delay in delays)
        assert len(set(delays)) > 1


class TestClientAgentTransitions:
    """Test suite for the dispatch state machine."""

    def test_start_connects(self):
        """Test start() asks for a connection."""
        agent = ClientAgent()

        assert action_types(agent.start()) == [ActionType.CONNECT]
        assert agent.state == AgentState.CONNECTING

    def test_opened(self):
        """Test a successful connection moves to OPEN."""
        agent = ClientAgent()
        agent.start()

        agent.dispatch(AgentEvent.opened())

        assert agent.state == AgentState.OPEN
        assert agent.attempt_count == 0

    def test_message_replaces_content(self):
        """Test each message replaces the content and re-renders extras."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.opened())

        actions = agent.dispatch(AgentEvent.message("<h1>Hello</h1>"))

        assert action_types(actions) == [ActionType.REPLACE_CONTENT, ActionType.RENDER_EXTRAS]
        assert actions[0].html == "<h1>Hello</h1>"
        assert agent.content == "<h1>Hello</h1>"
        assert agent.messages_received == 1

    @pytest.mark.parametrize("code", [1000, 1001, 4001])
    def test_final_close(self, code):
        """Test a clean close with a final code closes the window for good."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.opened())

        actions = agent.dispatch(AgentEvent.closed(code, was_clean=True))

        assert action_types(actions) == [ActionType.CLOSE_WINDOW]
        assert agent.state == AgentState.CLOSED

    def test_closed_is_terminal(self):
        """Test no event leaves CLOSED."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.opened())
        agent.dispatch(AgentEvent.closed(1001, was_clean=True))

        assert agent.dispatch(AgentEvent.retry()) == []
        assert agent.dispatch(AgentEvent.message("<p>late</p>")) == []
        assert agent.dispatch(AgentEvent.connect_failed("refused")) == []
        assert agent.state == AgentState.CLOSED
        assert agent.content is None

    @pytest.mark.parametrize("code,was_clean", [
        (1006, False),
        (1001, False),
        (1011, True),
        (1012, True),
    ])
    def test_connection_loss_reconnects(self, code, was_clean):
        """Test anything but a clean final close schedules a reconnect."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.opened())

        actions = agent.dispatch(AgentEvent.closed(code, was_clean=was_clean))

        assert ActionType.SCHEDULE_RECONNECT in action_types(actions)
        assert agent.state == AgentState.RECONNECTING

    def test_retry_reconnects(self):
        """Test the retry timer triggers a new connection attempt."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.connect_failed("refused"))

        actions = agent.dispatch(AgentEvent.retry())

        assert action_types(actions) == [ActionType.CONNECT]
        assert agent.state == AgentState.CONNECTING

    def test_stray_retry_ignored(self):
        """Test a retry outside RECONNECTING does nothing."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.opened())

        assert agent.dispatch(AgentEvent.retry()) == []
        assert agent.state == AgentState.OPEN

    def test_backoff_schedule(self):
        """Test consecutive failures follow the capped backoff schedule."""
        agent = ClientAgent()
        agent.start()
        delays = []

        for _ in range(6):
            delays.append(scheduled_delay(agent.dispatch(AgentEvent.connect_failed("refused"))))
            agent.dispatch(AgentEvent.retry())

        assert delays == pytest.approx([1.0, 1.5, 2.25, 3.375, 5.0, 5.0])

    def test_open_resets_backoff(self):
        """Test a successful connection restarts the schedule."""
        agent = ClientAgent()
        agent.start()

        for _ in range(3):
            agent.dispatch(AgentEvent.connect_failed("refused"))
            agent.dispatch(AgentEvent.retry())

        agent.dispatch(AgentEvent.opened())
        actions = agent.dispatch(AgentEvent.closed(1006, was_clean=False))

        assert scheduled_delay(actions) == 1.0
        assert agent.attempt_count == 1

    def test_get_stats(self):
        """Test statistics reflect the agent state."""
        agent = ClientAgent()
        agent.start()
        agent.dispatch(AgentEvent.opened())
        agent.dispatch(AgentEvent.message("<p>x</p>"))

        assert agent.get_stats() == {
            "state": "open",
            "attempt_count": 0,
            "messages_received": 1,
        }


class FakeConnection:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, messages, error=None, close_code=1000):
        self.messages = messages
        self.error = error
        self.close_code = close_code
        self.closed = False

    async def __aiter__(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
class TestClientAgentFollow:
    """Test suite for the asyncio follow() driver."""

    async def test_follow_until_final_close(self):
        """Test follow() retries lost connections and stops on a final close."""
        lost = FakeConnection(["<p>a</p>", b"<p>b</p>"], error=ConnectionClosedError(None, None))
        final = FakeConnection(["<p>c</p>"], close_code=1001)
        connect = AsyncMock(side_effect=[OSError("refused"), lost, final])

        agent = ClientAgent(ReconnectionPolicy(base_delay=0.01, max_delay=0.02))
        received = []

        with patch("preview_service.core.client_agent.websockets.connect", connect):
            await agent.follow("ws://127.0.0.1:1/", received.append)

        assert received == ["<p>a</p>", "<p>b</p>", "<p>c</p>"]
        assert connect.await_count == 3
        assert agent.state == AgentState.CLOSED
        assert lost.closed and final.closed

    async def test_follow_stops_on_superseded(self):
        """Test a 4001 close received mid-stream is final."""
        superseded = FakeConnection(["<p>a</p>"], error=closed_with(4001, "superseded"))
        connect = AsyncMock(return_value=superseded)

        agent = ClientAgent(ReconnectionPolicy(base_delay=0.01, max_delay=0.02))
        received = []

        with patch("preview_service.core.client_agent.websockets.connect", connect):
            await agent.follow("ws://127.0.0.1:1/", received.append)

        assert received == ["<p>a</p>"]
        assert agent.state == AgentState.CLOSED
        assert connect.await_count == 1

    async def test_follow_reconnects_after_restart_code(self):
        """Test a clean close with a non-final code is retried."""
        restarted = FakeConnection([], error=closed_with(1012, "service restart"))
        final = FakeConnection([], close_code=1000)
        connect = AsyncMock(side_effect=[restarted, final])

        agent = ClientAgent(ReconnectionPolicy(base_delay=0.01, max_delay=0.02))

        with patch("preview_service.core.client_agent.websockets.connect", connect):
            await agent.follow("ws://127.0.0.1:1/", lambda html: None)

        assert connect.await_count == 2
        assert agent.state == AgentState.CLOSED
