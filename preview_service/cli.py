"""
Command-line interface for the preview service.

Usage:
    preview-service serve README.md --open
    preview-service send README.md --url http://127.0.0.1:8080
    preview-service follow http://127.0.0.1:8080
    preview-service shutdown --url http://127.0.0.1:8080
"""

import argparse
import asyncio
import logging
import shlex
import sys
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule

from . import __version__
from .config import PreviewConfig
from .core.client_agent import ClientAgent, ReconnectionPolicy
from .service import PreviewServer

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_URL = "http://127.0.0.1:8080"


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="preview-service",
        description="Live markdown preview in the browser"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the preview server")
    serve.add_argument("file", nargs="?", help="Markdown file rendered on startup")
    serve.add_argument("--host", help="Address to bind (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, help="Port to bind (default: any free port)")
    serve.add_argument("--title", help="Page title")
    serve.add_argument("--css", action="append", help="Stylesheet URL or path (repeatable)")
    serve.add_argument("--js", action="append", help="Script URL (repeatable)")
    serve.add_argument("--no-highlight", action="store_true", help="Disable syntax highlighting")
    serve.add_argument("--no-math", action="store_true", help="Disable math rendering")
    serve.add_argument("--highlight-theme", help="highlight.js theme (default: github)")
    serve.add_argument("--static-root", help="Directory relative links are served from")
    serve.add_argument("--external-renderer", help='Command rendering stdin to HTML, e.g. "pandoc -t html"')
    serve.add_argument("--open", action="store_true", help="Open the preview in the default browser")
    serve.add_argument("--browser", help="Browser command; the preview URL is appended")

    send = subparsers.add_parser("send", help="Submit markdown to a running server")
    send.add_argument("file", help="Markdown file, or - for stdin")
    send.add_argument("--url", default=DEFAULT_URL, help=f"Server URL (default: {DEFAULT_URL})")

    follow = subparsers.add_parser("follow", help="Print every update pushed by a running server")
    follow.add_argument("url", nargs="?", default=DEFAULT_URL, help=f"Server URL (default: {DEFAULT_URL})")
    follow.add_argument("--max-reconnect-interval", type=float, default=5.0,
                        help="Backoff cap in seconds (default: 5)")

    shutdown = subparsers.add_parser("shutdown", help="Close the preview of a running server")
    shutdown.add_argument("--url", default=DEFAULT_URL, help=f"Server URL (default: {DEFAULT_URL})")

    return parser


def build_config(args: argparse.Namespace) -> PreviewConfig:
    """Settings from environment, overridden by explicit flags."""
    overrides = {}

    for name in ("host", "port", "title", "css", "js", "highlight_theme", "static_root", "log_level"):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value

    if args.no_highlight:
        overrides["highlight_enabled"] = False
    if args.no_math:
        overrides["math_enabled"] = False
    if args.external_renderer:
        overrides["external_renderer"] = shlex.split(args.external_renderer)
    if args.browser:
        overrides["browser"] = shlex.split(args.browser)
    if args.open or args.browser:
        overrides["open_browser"] = True

    if args.file:
        path = Path(args.file)
        overrides["initial_markdown"] = path.read_text(encoding="utf-8")
        if args.static_root is None:
            overrides["static_root"] = str(path.resolve().parent)

    return PreviewConfig(**overrides)


def websocket_url(url: str) -> str:
    """Map an http(s) server URL to its push-channel URL."""
    parsed = urlparse(url)
    scheme = {"http": "ws", "https": "wss"}.get(parsed.scheme, parsed.scheme)
    return urlunparse(parsed._replace(scheme=scheme, path=parsed.path or "/"))


async def serve(config: PreviewConfig):
    server = PreviewServer(config)
    await server.start()

    console.print(Panel(
        f"[bold]Preview:[/bold] {server.url}\n"
        f"[bold]Submit:[/bold]  POST {server.url}api/v1/markdown",
        title="Markdown Live Preview",
        border_style="cyan",
    ))

    if config.open_browser:
        try:
            server.open_browser(config.browser)
        except OSError as e:
            console.print(f"[yellow]Could not open browser: {e}[/yellow]")

    await server.wait()


def send(url: str, file: str) -> int:
    markdown = sys.stdin.read() if file == "-" else Path(file).read_text(encoding="utf-8")

    try:
        response = httpx.post(f"{url.rstrip('/')}/api/v1/markdown", json={"markdown": markdown}, timeout=30.0)
    except httpx.HTTPError as e:
        console.print(f"[red]✗ Request failed: {e}[/red]")
        return 1

    if response.status_code != 200:
        console.print(f"[red]✗ Render rejected ({response.status_code}): {response.json().get('detail')}[/red]")
        return 1

    data = response.json()
    console.print(f"[green]✓ Rendered page #{data['sequence']} ({data['html_length']} chars)[/green]")
    return 0


def shutdown(url: str) -> int:
    try:
        response = httpx.post(f"{url.rstrip('/')}/api/v1/shutdown", timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]✗ Request failed: {e}[/red]")
        return 1

    if response.json()["closed"]:
        console.print("[green]✓ Preview closed[/green]")
    else:
        console.print("[yellow]No preview was open[/yellow]")
    return 0


def follow(url: str, max_reconnect_interval: float) -> int:
    agent = ClientAgent(ReconnectionPolicy(max_delay=max_reconnect_interval))

    def show(html: str):
        console.print(Rule(f"update #{agent.messages_received}"))
        console.print(html, markup=False, highlight=False)

    try:
        asyncio.run(agent.follow(websocket_url(url), show))
    except KeyboardInterrupt:
        pass

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        config = build_config(args)
        configure_logging(config.log_level)
        try:
            asyncio.run(serve(config))
        except KeyboardInterrupt:
            pass
        return 0

    configure_logging(args.log_level or "WARNING")

    if args.command == "send":
        return send(args.url, args.file)
    if args.command == "follow":
        return follow(args.url, args.max_reconnect_interval)
    if args.command == "shutdown":
        return shutdown(args.url)

    return 2


if __name__ == "__main__":
    sys.exit(main())
