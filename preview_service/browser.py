"""
Browser launcher.

Opens the preview URL in the user's default browser using the platform
utility, or in a specific browser command:

    | Platform | Program    |
    | -------- | ---------- |
    | Linux    | xdg-open   |
    | macOS    | open -g    |
    | Windows  | explorer   |
"""

from __future__ import annotations

import logging
import platform
import subprocess
from typing import List, Optional, Sequence
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

__all__ = ["default_browser_command", "open_browser"]


def default_browser_command(system: Optional[str] = None) -> List[str]:
    """Command that opens a URL in the default browser on ``system``."""
    system = system or platform.system()

    if system == "Darwin":
        return ["open", "-g"]
    if system == "Windows":
        return ["explorer"]
    return ["xdg-open"]


def open_browser(url: str, command: Optional[Sequence[str]] = None) -> subprocess.Popen:
    """
    Spawn a browser process for ``url`` in the background.

    Args:
        url: http(s) URL to open; appended to the command as its last argument
        command: Browser program and arguments (default: platform utility)

    Raises:
        ValueError: If ``url`` is not an http(s) URL
        OSError: If the browser cannot be spawned
    """
    if urlparse(url).scheme not in ("http", "https"):
        raise ValueError(f"Not an http(s) URL: {url!r}")

    argv = list(command) if command else default_browser_command()
    argv.append(url)

    logger.info(f"Spawning browser: {argv}")

    return subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
