"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from staticserve import StaticServer, ServerConfig
from staticserve.http import HTTPRequest, ResponseRecorder, parse_request


INDEX_HTML = b"<!doctype html>\n<html><body><div id=\"app\"></div></body></html>\n"
APP_JS = b"console.log('app');\n" * 100


@pytest.fixture
def web_root(tmp_path: Path) -> Path:
    """
    A small single-page app:

        index.html
        app.js
        css/site.css
        docs/readme.txt     (directory without index.html)
        blog/index.html
    """
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "app.js").write_bytes(APP_JS)
    (root / "css").mkdir()
    (root / "css" / "site.css").write_bytes(b"body { margin: 0; }\n")
    (root / "docs").mkdir()
    (root / "docs" / "readme.txt").write_bytes(b"read me\n")
    (root / "blog").mkdir()
    (root / "blog" / "index.html").write_bytes(b"<html>blog</html>\n")
    return root


def make_request(target: str, method: str = "GET", headers: dict = None, **kwargs) -> HTTPRequest:
    """Build a request the way the server would parse it."""
    headers = {"Host": "localhost:8080", **(headers or {})}
    lines = [f"{method} {target} HTTP/1.1"]
    for name, value in headers.items():
        lines.append(f"{name}: {value}")
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
    request = parse_request(raw, ("127.0.0.1", 50000))
    return replace(request, **kwargs) if kwargs else request


def record(serve, request: HTTPRequest):
    """Run a writer-style serve function and return the finished response."""
    recorder = ResponseRecorder()
    serve(recorder, request)
    return recorder.finish()


@pytest.fixture
def config(web_root: Path) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        web_root=str(web_root),
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        keep_alive_timeout=1.0,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # Not a test class

    def __init__(self, server: StaticServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.http_port

    def start(self):
        """Bind, then accept in a background thread."""
        self.server.start()
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

        # Wait for server to be ready
        for _ in range(50):  # 5 seconds max
            try:
                with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                    s.connect(("127.0.0.1", self.port))
                    return
            except ConnectionRefusedError:
                time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def server_factory(config: ServerConfig) -> Generator:
    """Start servers with config overrides; all are stopped at teardown."""
    started = []

    def start(**overrides) -> TestServer:
        test_srv = TestServer(StaticServer(replace(config, **overrides)))
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield start

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(server_factory) -> TestServer:
    """A running server with the default test configuration."""
    return server_factory()
