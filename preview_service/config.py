"""
Preview Service Configuration.

Environment-driven configuration using Pydantic Settings.
Every value can be set through a ``PREVIEW_``-prefixed environment variable,
a ``.env`` file, or overridden by command-line flags.

List values (``css``, ``js``, ``external_renderer``) are read from the
environment as JSON arrays, e.g. ``PREVIEW_CSS='["https://example.com/a.css"]'``.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


DEFAULT_HIGHLIGHT_THEME = "github"
DEFAULT_CSS = "https://cdnjs.cloudflare.com/ajax/libs/github-markdown-css/5.5.1/github-markdown.min.css"


class PreviewConfig(BaseSettings):
    """
    Configuration for the live preview server.

    Configuration Sources (priority order):
    1. Command-line flags (applied by the CLI)
    2. Environment variables
    3. .env file
    4. Default values
    """

    # Server Configuration
    host: str = "127.0.0.1"
    port: int = 0  # 0 asks the OS for a free port

    # Page Configuration
    title: str = "Markdown Preview"
    css: List[str] = []  # URLs, local paths or file:// URIs; empty means GitHub CSS
    js: List[str] = []
    highlight_enabled: bool = True
    highlight_theme: str = DEFAULT_HIGHLIGHT_THEME
    math_enabled: bool = True

    # Rendering
    initial_markdown: Optional[str] = None
    external_renderer: Optional[List[str]] = None  # argv of a markdown -> HTML filter
    static_root: Optional[str] = None  # directory relative links are served from

    # Client Agent
    max_reconnect_interval: float = 5.0  # seconds

    # Browser
    open_browser: bool = False
    browser: Optional[List[str]] = None  # argv; the server URL is appended

    # Observability
    log_level: str = "INFO"

    class Config:
        env_prefix = "PREVIEW_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
