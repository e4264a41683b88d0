"""
Unit Tests for the CLI and Browser Launcher.

Test Coverage:
- Argument parsing into service settings
- Server URL to push-channel URL mapping
- send / shutdown against a mocked HTTP client
- Platform browser commands
"""

import subprocess
from unittest.mock import Mock, patch

import httpx
import pytest

from preview_service import cli
from preview_service.browser import default_browser_command, open_browser


class TestBuildConfig:
    """Test suite for command-line settings."""

    def test_serve_flags(self):
        """Test explicit flags override the defaults."""
        args = cli.build_parser().parse_args([
            "serve",
            "--port", "9000",
            "--title", "Notes",
            "--css", "https://example.com/a.css",
            "--css", "https://example.com/b.css",
            "--no-math",
            "--highlight-theme", "darcula",
            "--external-renderer", "pandoc -f markdown -t html",
        ])

        config = cli.build_config(args)

        assert config.port == 9000
        assert config.title == "Notes"
        assert config.css == ["https://example.com/a.css", "https://example.com/b.css"]
        assert config.math_enabled is False
        assert config.highlight_enabled is True
        assert config.highlight_theme == "darcula"
        assert config.external_renderer == ["pandoc", "-f", "markdown", "-t", "html"]
        assert config.open_browser is False

    def test_serve_file(self, tmp_path):
        """Test a markdown file becomes the initial page and static root."""
        document = tmp_path / "README.md"
        document.write_text("# Hello", encoding="utf-8")

        config = cli.build_config(cli.build_parser().parse_args(["serve", str(document)]))

        assert config.initial_markdown == "# Hello"
        assert config.static_root == str(tmp_path.resolve())

    def test_explicit_static_root_wins(self, tmp_path):
        """Test --static-root is not replaced by the file's directory."""
        document = tmp_path / "README.md"
        document.write_text("# Hello", encoding="utf-8")

        args = cli.build_parser().parse_args(["serve", str(document), "--static-root", "/srv/docs"])

        assert cli.build_config(args).static_root == "/srv/docs"

    def test_browser_implies_open(self):
        """Test --browser opens the preview with the given command."""
        args = cli.build_parser().parse_args(["serve", "--browser", "firefox --new-window"])

        config = cli.build_config(args)

        assert config.open_browser is True
        assert config.browser == ["firefox", "--new-window"]


class TestWebsocketUrl:
    """Test suite for push-channel URL mapping."""

    @pytest.mark.parametrize("url,expected", [
        ("http://127.0.0.1:8080", "ws://127.0.0.1:8080/"),
        ("http://127.0.0.1:8080/", "ws://127.0.0.1:8080/"),
        ("https://preview.example", "wss://preview.example/"),
        ("ws://localhost:1234/", "ws://localhost:1234/"),
    ])
    def test_mapping(self, url, expected):
        assert cli.websocket_url(url) == expected


class TestRemoteCommands:
    """Test suite for commands talking to a running server."""

    def test_send(self, tmp_path):
        """Test send posts the file contents."""
        document = tmp_path / "notes.md"
        document.write_text("# Notes", encoding="utf-8")
        response = Mock(status_code=200)
        response.json.return_value = {"sequence": 3, "html_length": 15}

        with patch("preview_service.cli.httpx.post", return_value=response) as post:
            assert cli.main(["send", str(document), "--url", "http://127.0.0.1:9000/"]) == 0

        post.assert_called_once_with(
            "http://127.0.0.1:9000/api/v1/markdown",
            json={"markdown": "# Notes"},
            timeout=30.0,
        )

    def test_send_rejected(self, tmp_path):
        """Test a render failure is reported with a non-zero exit."""
        document = tmp_path / "notes.md"
        document.write_text("# Notes", encoding="utf-8")
        response = Mock(status_code=422)
        response.json.return_value = {"detail": "pandoc exited with status 1"}

        with patch("preview_service.cli.httpx.post", return_value=response):
            assert cli.send("http://127.0.0.1:9000", str(document)) == 1

    def test_send_unreachable(self, tmp_path):
        """Test a connection failure is reported with a non-zero exit."""
        document = tmp_path / "notes.md"
        document.write_text("# Notes", encoding="utf-8")

        with patch("preview_service.cli.httpx.post", side_effect=httpx.ConnectError("refused")):
            assert cli.send("http://127.0.0.1:9000", str(document)) == 1

    def test_shutdown(self):
        """Test shutdown posts to the shutdown endpoint."""
        response = Mock(status_code=200)
        response.json.return_value = {"closed": True}

        with patch("preview_service.cli.httpx.post", return_value=response) as post:
            assert cli.shutdown("http://127.0.0.1:9000") == 0

        assert post.call_args.args[0] == "http://127.0.0.1:9000/api/v1/shutdown"


class TestBrowser:
    """Test suite for the browser launcher."""

    @pytest.mark.parametrize("system,expected", [
        ("Linux", ["xdg-open"]),
        ("Darwin", ["open", "-g"]),
        ("Windows", ["explorer"]),
        ("FreeBSD", ["xdg-open"]),
    ])
    def test_default_command(self, system, expected):
        assert default_browser_command(system) == expected

    def test_custom_command(self):
        """Test the URL is appended to a custom command."""
        with patch("preview_service.browser.subprocess.Popen") as popen:
            open_browser("http://127.0.0.1:9000/", ["firefox", "--new-window"])

        argv = popen.call_args.args[0]
        assert argv == ["firefox", "--new-window", "http://127.0.0.1:9000/"]
        assert popen.call_args.kwargs["stdout"] == subprocess.DEVNULL

    def test_default_command_used(self):
        """Test the platform utility is used when no command is given."""
        with patch("preview_service.browser.subprocess.Popen") as popen, \
                patch("preview_service.browser.default_browser_command", return_value=["xdg-open"]):
            open_browser("http://127.0.0.1:9000/")

        assert popen.call_args.args[0] == ["xdg-open", "http://127.0.0.1:9000/"]

    def test_rejects_non_http_url(self):
        """Test only http(s) URLs are opened."""
        with pytest.raises(ValueError):
            open_browser("file:///etc/passwd")
