"""
Renderers - Markdown to HTML Conversion.

A renderer is a pure function of its input: the same markdown always yields
the same HTML, and the input string is never modified.

Implementations:
- MarkdownRenderer: in-process markdown-it-py parser (CommonMark + GFM tables,
  strikethrough, footnotes and task lists)
- CommandRenderer: pipes markdown through an external program such as pandoc
"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from markdown_it import MarkdownIt
from mdit_py_plugins.footnote import footnote_plugin
from mdit_py_plugins.tasklists import tasklists_plugin

logger = logging.getLogger(__name__)

__all__ = ["Renderer", "MarkdownRenderer", "CommandRenderer", "RenderError"]


class RenderError(Exception):
    """Raised when a renderer cannot turn its input into HTML."""
    pass


class Renderer(ABC):
    """Converts input text into an HTML fragment."""

    @abstractmethod
    def render(self, markdown: str) -> str:
        """
        Render ``markdown`` as HTML.

        Raises:
            RenderError: If the input cannot be rendered
        """


class MarkdownRenderer(Renderer):
    """
    Markdown renderer backed by markdown-it-py.

    Raw HTML in the input is passed through unchanged, so a client that
    already holds HTML can submit it directly.
    """

    __slots__ = ('_md',)

    def __init__(self):
        self._md = (
            MarkdownIt("commonmark")
            .enable("table")
            .enable("strikethrough")
            .use(footnote_plugin)
            .use(tasklists_plugin)
        )

    def render(self, markdown: str) -> str:
        try:
            return self._md.render(markdown)
        except Exception as e:
            raise RenderError(f"Markdown rendering failed: {e}") from e


class CommandRenderer(Renderer):
    """
    Renderer that delegates to an external command.

    The command receives markdown on stdin and must print HTML on stdout.
    Useful when the document needs features the built-in parser lacks.

    Example:
        CommandRenderer(["pandoc", "-f", "markdown", "-t", "html"])
    """

    __slots__ = ('command', 'timeout')

    def __init__(self, command: Sequence[str], timeout: Optional[float] = 30.0):
        """
        Initialize command renderer.

        Args:
            command: Program and arguments to spawn for each render
            timeout: Seconds to wait for the program before giving up
        """
        if not command:
            raise ValueError("External renderer command must not be empty")
        self.command = list(command)
        self.timeout = timeout

    def render(self, markdown: str) -> str:
        logger.debug(f"Spawning external renderer: {self.command}")

        try:
            result = subprocess.run(
                self.command,
                input=markdown,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise RenderError(f"Failed to run {self.command[0]}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise RenderError(
                f"{self.command[0]} exited with status {result.returncode}"
                + (f": {stderr}" if stderr else "")
            )

        return result.stdout

    def __repr__(self) -> str:
        return f"CommandRenderer({self.command!r})"
