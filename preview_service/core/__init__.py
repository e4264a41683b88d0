"""
Core preview service modules.

This package contains the render-and-broadcast pipeline: renderers, the
single-writer preview state, the latest-value update channel, the connection
manager for the live WebSocket session, the page shell, and the client agent
state machine.
"""

from .renderer import Renderer, MarkdownRenderer, CommandRenderer, RenderError
from .preview_state import PreviewState, RenderedPage
from .update_channel import UpdateChannel, ChannelReceiver, ChannelClosed
from .connection_manager import ConnectionManager, ManagerState, PreviewSession, CloseCode
from .page import PageConfig, render_page
from .client_agent import ClientAgent, ReconnectionPolicy, AgentState

__all__ = [
    "Renderer",
    "MarkdownRenderer",
    "CommandRenderer",
    "RenderError",
    "PreviewState",
    "RenderedPage",
    "UpdateChannel",
    "ChannelReceiver",
    "ChannelClosed",
    "ConnectionManager",
    "ManagerState",
    "PreviewSession",
    "CloseCode",
    "PageConfig",
    "render_page",
    "ClientAgent",
    "ReconnectionPolicy",
    "AgentState",
]
