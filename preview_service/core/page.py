"""
Page - Initial HTML Shell for the Preview.

The shell embeds the page configuration (title, stylesheets, scripts,
highlighting and math toggles), the current rendered HTML, and the path of
the push channel the browser client connects back to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Tuple
from urllib.parse import urlparse

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from ..config import DEFAULT_CSS, DEFAULT_HIGHLIGHT_THEME, PreviewConfig

logger = logging.getLogger(__name__)

__all__ = ["PageConfig", "render_page", "split_stylesheets", "CLIENT_SCRIPT_PATH"]

HIGHLIGHT_JS_URL = "https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/highlight.min.js"
HIGHLIGHT_THEME_URL = "https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/styles/{theme}.min.css"
KATEX_CSS_URL = "https://cdn.jsdelivr.net/npm/katex@0.16.9/dist/katex.min.css"
KATEX_JS_URL = "https://cdn.jsdelivr.net/npm/katex@0.16.9/dist/katex.min.js"
KATEX_AUTO_RENDER_URL = "https://cdn.jsdelivr.net/npm/katex@0.16.9/dist/contrib/auto-render.min.js"

CLIENT_SCRIPT_PATH = "/__/js/preview_client.js"
PREVIEW_CSS_PATH = "/__/css/preview.css"

_env = Environment(
    loader=PackageLoader("preview_service", "templates"),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class PageConfig:
    """
    Page-level configuration, fixed for the server's lifetime.

    Attributes:
        title: Document title
        css_urls: Stylesheets linked with <link> tags, in order
        js_urls: Extra scripts loaded after the preview client, in order
        highlight_enabled: Load highlight.js and highlight code blocks
        math_enabled: Load KaTeX and render math expressions
        highlight_theme: highlight.js theme name
        inline_styles: Contents of local stylesheets, inlined in <style> tags
        max_reconnect_interval: Backoff cap for the browser client, seconds
    """
    title: str = "Markdown Preview"
    css_urls: Tuple[str, ...] = (DEFAULT_CSS,)
    js_urls: Tuple[str, ...] = ()
    highlight_enabled: bool = True
    math_enabled: bool = True
    highlight_theme: str = DEFAULT_HIGHLIGHT_THEME
    inline_styles: Tuple[str, ...] = ()
    max_reconnect_interval: float = 5.0

    @classmethod
    def from_settings(cls, config: PreviewConfig) -> PageConfig:
        """
        Build page configuration from service settings.

        Local stylesheet files are read here, once.

        Raises:
            OSError: If a local stylesheet cannot be read
        """
        if config.css:
            css_urls, inline_styles = split_stylesheets(config.css)
        else:
            css_urls, inline_styles = (DEFAULT_CSS,), ()

        return cls(
            title=config.title,
            css_urls=css_urls,
            js_urls=tuple(config.js),
            highlight_enabled=config.highlight_enabled,
            math_enabled=config.math_enabled,
            highlight_theme=config.highlight_theme,
            inline_styles=inline_styles,
            max_reconnect_interval=config.max_reconnect_interval,
        )


def split_stylesheets(stylesheets: Iterable[str]) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """
    Separate remote stylesheet URLs from local stylesheet files.

    http(s) URLs are kept as links. Anything else is treated as a path
    (a ``file://`` prefix is stripped) and its contents are returned.
    """
    links = []
    styles = []

    for stylesheet in stylesheets:
        if urlparse(stylesheet).scheme in ("http", "https"):
            links.append(stylesheet)
        else:
            path = Path(stylesheet.removeprefix("file://"))
            logger.debug(f"Inlining stylesheet {path}")
            styles.append(path.read_text(encoding="utf-8"))

    return tuple(links), tuple(styles)


def render_page(page_config: PageConfig, html: str, socket_path: str = "/") -> str:
    """
    Render the initial preview page.

    Args:
        page_config: Page-level configuration
        html: Current rendered preview content, inserted verbatim
        socket_path: Path of the WebSocket push channel
    """
    template = _env.get_template("preview.html")

    return template.render(
        config=page_config,
        content=Markup(html),
        socket_path=socket_path,
        client_script_url=CLIENT_SCRIPT_PATH,
        preview_css_url=PREVIEW_CSS_PATH,
        highlight_js_url=HIGHLIGHT_JS_URL,
        highlight_theme_url=HIGHLIGHT_THEME_URL.format(theme=page_config.highlight_theme),
        katex_css_url=KATEX_CSS_URL,
        katex_js_url=KATEX_JS_URL,
        katex_auto_render_url=KATEX_AUTO_RENDER_URL,
        max_reconnect_interval_ms=int(page_config.max_reconnect_interval * 1000),
    )
