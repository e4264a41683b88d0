"""Observability package initialization."""

from .metrics import (
    record_render,
    record_render_error,
    record_websocket_connection,
    record_websocket_disconnection,
    record_message_sent,
    record_supersession,
    record_shutdown,
)

__all__ = [
    'record_render',
    'record_render_error',
    'record_websocket_connection',
    'record_websocket_disconnection',
    'record_message_sent',
    'record_supersession',
    'record_shutdown',
]
