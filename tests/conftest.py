"""
pytest configuration and fixtures.
"""

import socket
import threading
from pathlib import Path
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from webserver import HTTPServer, ServerConfig


# Exactly 50 bytes
INDEX_HTML = b"<html><body><h1>Hello</h1></body></html>".ljust(50, b"\n")
STYLE_CSS = b"body { color: black; }\n"
NOTES_TXT = b"first line\nsecond line\n"
PIXEL_PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(32))


@pytest.fixture
def www(tmp_path: Path) -> Path:
    """
    Document root with a few files:

        www/index.html      50 bytes
        www/style.css
        www/notes.txt
        www/pixel.png
        www/README          (no extension)
        www/docs/page.html
        secret.txt          (outside the root)
    """
    root = tmp_path / "www"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "style.css").write_bytes(STYLE_CSS)
    (root / "notes.txt").write_bytes(NOTES_TXT)
    (root / "pixel.png").write_bytes(PIXEL_PNG)
    (root / "README").write_bytes(b"plain\n")
    (root / "docs").mkdir()
    (root / "docs" / "page.html").write_bytes(b"<p>docs</p>")
    (tmp_path / "secret.txt").write_bytes(b"top secret\n")
    return root


@pytest.fixture
def config(www: Path) -> ServerConfig:
    """Test server configuration serving the www fixture."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        document_root=str(www),
        min_workers=2,
        max_workers=4,
        keep_alive_timeout=1.0,
        shutdown_grace=1.0,
        log_level="WARNING",
    )


class ServerThread:
    """Runs an HTTPServer in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.stop()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connect(self, timeout: float = 5.0) -> "RawClient":
        return RawClient(self.port, timeout=timeout)


class RawClient:
    """
    Minimal blocking HTTP client over a plain socket, so tests control
    exactly which bytes go out and see exactly which bytes come back.
    """

    def __init__(self, port: int, timeout: float = 5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self._buffer = b""

    def send(self, data: bytes):
        self.sock.sendall(data)

    def read_response(self, head_only: bool = False) -> tuple[str, list[tuple[str, str]], bytes]:
        """
        Read one response.

        Returns:
            (status line, [(header, value), ...] in wire order, body)
        """
        while b"\r\n\r\n" not in self._buffer:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError(f"Connection closed mid-response: {self._buffer!r}")
            self._buffer += chunk

        head, self._buffer = self._buffer.split(b"\r\n\r\n", 1)
        lines = head.decode("latin-1").split("\r\n")
        headers = [tuple(line.split(": ", 1)) for line in lines[1:]]

        length = int(dict(headers)["Content-Length"])
        if head_only:
            return lines[0], headers, b""

        while len(self._buffer) < length:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError("Connection closed mid-body")
            self._buffer += chunk

        body, self._buffer = self._buffer[:length], self._buffer[length:]
        return lines[0], headers, body

    def is_closed(self, timeout: float = 3.0) -> bool:
        """True if the server closes the connection without sending more."""
        if self._buffer:
            return False
        self.sock.settimeout(timeout)
        try:
            return self.sock.recv(1) == b""
        except ConnectionResetError:
            return True
        except socket.timeout:
            return False

    def close(self):
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[ServerThread, None, None]:
    """Start a server on a free port; stopped after the test."""
    server_thread = ServerThread(HTTPServer(config))
    server_thread.start()

    yield server_thread

    server_thread.stop()


@pytest.fixture
def start_server() -> Generator:
    """
    Factory for servers with a customised config; all are stopped after
    the test.

        server = start_server(config)
    """
    started = []

    def _start(config: ServerConfig) -> ServerThread:
        server_thread = ServerThread(HTTPServer(config))
        server_thread.start()
        started.append(server_thread)
        return server_thread

    yield _start

    for server_thread in started:
        server_thread.stop()
