"""
Observability Module - Prometheus Metrics.

Metrics Collected:
- Render metrics (successes, failures, latency)
- WebSocket metrics (sessions, messages, supersessions, shutdowns)

All metrics live in the default prometheus_client registry and are exposed
at ``GET /metrics``.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Render Metrics
renders_total = Counter(
    'preview_renders_total',
    'Total number of successful markdown renders'
)

render_errors_total = Counter(
    'preview_render_errors_total',
    'Total number of rejected markdown submissions'
)

render_duration_seconds = Histogram(
    'preview_render_duration_seconds',
    'Markdown render latency in seconds',
    buckets=(.001, .005, .01, .025, .05, .1, .25, .5, 1.0, 5.0)
)

# WebSocket Metrics
websocket_connections_total = Counter(
    'preview_websocket_connections_total',
    'Total number of accepted push-channel sessions'
)

websocket_active_connections = Gauge(
    'preview_websocket_active_connections',
    'Number of open push-channel sessions'
)

websocket_messages_sent_total = Counter(
    'preview_websocket_messages_sent_total',
    'Total number of rendered pages pushed to the browser'
)

websocket_supersessions_total = Counter(
    'preview_websocket_supersessions_total',
    'Total number of sessions closed because a newer one connected'
)

websocket_shutdowns_total = Counter(
    'preview_websocket_shutdowns_total',
    'Total number of sessions closed by a shutdown request'
)

# Service Info
service_info = Info(
    'preview_service',
    'Preview service information'
)

service_info.info({
    'version': '0.7.5',
    'transport': 'websocket',
})


# Helper Functions

def record_render(duration_seconds: float):
    """Record a successful render."""
    renders_total.inc()
    render_duration_seconds.observe(duration_seconds)


def record_render_error():
    """Record a rejected submission."""
    render_errors_total.inc()


def record_websocket_connection():
    """Record WebSocket connection."""
    websocket_connections_total.inc()
    websocket_active_connections.inc()


def record_websocket_disconnection():
    """Record WebSocket disconnection."""
    websocket_active_connections.dec()


def record_message_sent():
    """Record a page pushed to the browser."""
    websocket_messages_sent_total.inc()


def record_supersession():
    """Record a session replaced by a newer connection."""
    websocket_supersessions_total.inc()


def record_shutdown():
    """Record a session closed on request."""
    websocket_shutdowns_total.inc()


__all__ = [
    'renders_total',
    'render_errors_total',
    'websocket_connections_total',
    'websocket_active_connections',
    'record_render',
    'record_render_error',
    'record_websocket_connection',
    'record_websocket_disconnection',
    'record_message_sent',
    'record_supersession',
    'record_shutdown',
]
