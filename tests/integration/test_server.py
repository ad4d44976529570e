"""
Integration tests: a real server on a free port, driven over TCP.
"""

import threading
import time
from pathlib import Path

import pytest

from webserver import ServerConfig
from webserver.http.response import ERROR_BODY


class TestBasicRequests:
    """Single request per connection."""

    def test_get_index(self, running_server, www: Path):
        with running_server.connect() as client:
            client.send(b"GET /index.html HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            status, headers, body = client.read_response()

            assert status == "HTTP/1.1 200 OK"
            assert headers == [
                ("Content-Type", "text/html"),
                ("Connection", "Close"),
                ("Content-Length", "50"),
            ]
            assert body == (www / "index.html").read_bytes()
            assert client.is_closed()

    def test_root_serves_default_object(self, running_server):
        responses = []
        for target in (b"/", b"/index.html"):
            with running_server.connect() as client:
                client.send(b"GET " + target + b" HTTP/1.0\r\nConnection: close\r\n\r\n")
                responses.append(client.read_response())

        assert responses[0] == responses[1]

    def test_missing_file(self, running_server):
        with running_server.connect() as client:
            client.send(b"GET /missing.html HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
            status, headers, body = client.read_response()

            assert status == "HTTP/1.1 500 Internal Server Error"
            assert dict(headers)["Content-Length"] == str(len(ERROR_BODY))
            assert body == ERROR_BODY

    @pytest.mark.parametrize("request_line", [b"PUT /index.html HTTP/1.1", b"GET /index.html HTTP/2.0"])
    def test_unsupported_request_then_close(self, running_server, request_line: bytes):
        with running_server.connect() as client:
            client.send(request_line + b"\r\nHost: x\r\nConnection: close\r\n\r\n")
            status, _, body = client.read_response()

            assert " 500 " in status
            assert body == ERROR_BODY
            assert client.is_closed()

    def test_head_matches_get(self, running_server):
        with running_server.connect() as client:
            client.send(b"GET /pixel.png HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")
            _, get_headers, get_body = client.read_response()

            client.send(b"HEAD /pixel.png HTTP/1.1\r\nConnection: close\r\n\r\n")
            _, head_headers, head_body = client.read_response(head_only=True)

            assert dict(head_headers)["Content-Length"] == dict(get_headers)["Content-Length"]
            assert dict(head_headers)["Content-Type"] == "image/png"
            assert head_body == b""
            # Nothing after the HEAD headers but the close
            assert client.is_closed()

    def test_traversal_is_not_served(self, running_server):
        with running_server.connect() as client:
            client.send(b"GET /../secret.txt HTTP/1.1\r\nConnection: close\r\n\r\n")
            status, _, body = client.read_response()

            assert " 500 " in status
            assert b"secret" not in body


class TestKeepAlive:
    """Persistent connections."""

    def test_repeated_gets_identical(self, running_server):
        request = b"GET /index.html HTTP/1.1\r\nHost: x\r\nConnection: keep-alive\r\n\r\n"

        with running_server.connect() as client:
            responses = []
            for _ in range(5):
                client.send(request)
                responses.append(client.read_response())

            assert all(r == responses[0] for r in responses)
            assert dict(responses[0][1])["Connection"] == "Keep-alive"

    def test_pipelined_requests(self, running_server, www: Path):
        with running_server.connect() as client:
            client.send(
                b"GET /style.css HTTP/1.1\r\nConnection: keep-alive\r\n\r\n"
                b"GET /notes.txt HTTP/1.1\r\nConnection: keep-alive\r\n\r\n"
                b"GET /index.html HTTP/1.1\r\nConnection: close\r\n\r\n"
            )

            bodies = [client.read_response()[2] for _ in range(3)]

            assert bodies == [
                (www / "style.css").read_bytes(),
                (www / "notes.txt").read_bytes(),
                (www / "index.html").read_bytes(),
            ]
            assert client.is_closed()

    def test_idle_timeout_closes_silently(self, running_server):
        """keep_alive_timeout is 1s in the test config."""
        with running_server.connect() as client:
            client.send(b"GET / HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")
            client.read_response()

            started = time.monotonic()
            assert client.is_closed(timeout=5.0)
            assert 0.5 < time.monotonic() - started < 4.0

    def test_client_switches_to_close(self, running_server):
        with running_server.connect() as client:
            client.send(b"GET / HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")
            _, first, _ = client.read_response()
            client.send(b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n")
            _, second, _ = client.read_response()

            assert dict(first)["Connection"] == "Keep-alive"
            assert dict(second)["Connection"] == "Close"
            assert client.is_closed()

    def test_post(self, running_server, www: Path):
        with running_server.connect() as client:
            client.send(b"POST /index.html HTTP/1.1\r\nConnection: close\r\n\r\nhello\r\n")
            status, headers, body = client.read_response()

            assert status == "HTTP/1.1 200 OK"
            assert body == b"<html><body><pre><h1>hello</h1></pre>" + (www / "index.html").read_bytes()
            assert dict(headers)["Content-Length"] == str(len(body))


class TestConcurrency:
    """Several clients at once."""

    def test_concurrent_clients(self, running_server, www: Path):
        expected = (www / "index.html").read_bytes()
        results = []
        lock = threading.Lock()

        def fetch():
            with running_server.connect() as client:
                client.send(b"GET /index.html HTTP/1.1\r\nConnection: close\r\n\r\n")
                body = client.read_response()[2]
            with lock:
                results.append(body)

        threads = [threading.Thread(target=fetch) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert results == [expected] * 10

    def test_slow_client_does_not_block_others(self, running_server):
        with running_server.connect() as slow:
            slow.send(b"GET /index.html HTTP/1.1\r\n")  # never finishes

            with running_server.connect() as fast:
                fast.send(b"GET /index.html HTTP/1.1\r\nConnection: close\r\n\r\n")
                status, _, _ = fast.read_response()

            assert status == "HTTP/1.1 200 OK"

    def test_idle_connections_do_not_starve_new_clients(self, config: ServerConfig, start_server):
        """Silent clients opened back to back each get their own worker."""
        config.min_workers = 1
        config.max_workers = 8
        server_thread = start_server(config)

        idle = [server_thread.connect() for _ in range(6)]
        time.sleep(0.3)

        try:
            with server_thread.connect(timeout=3.0) as client:
                client.send(b"GET /index.html HTTP/1.1\r\nConnection: close\r\n\r\n")
                status, _, _ = client.read_response()

            assert status == "HTTP/1.1 200 OK"
        finally:
            for c in idle:
                c.close()

    def test_overloaded_pool_answers_503(self, config: ServerConfig, start_server):
        config.min_workers = 1
        config.max_workers = 1
        config.queue_size = 1
        config.keep_alive_timeout = 10.0
        server_thread = start_server(config)

        busy = server_thread.connect()
        busy.send(b"GET / HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")
        busy.read_response()  # the only worker now holds this connection

        queued = server_thread.connect()
        time.sleep(0.2)  # let the accept thread queue it

        with server_thread.connect() as rejected:
            status, headers, _ = rejected.read_response()

        assert status == "HTTP/1.1 503 Service Unavailable"
        assert dict(headers)["Connection"] == "Close"

        busy.close()
        queued.close()


class TestShutdown:
    """Stopping the server."""

    def test_stop_closes_idle_keep_alive_connections(self, config: ServerConfig, start_server):
        config.keep_alive_timeout = 30.0
        server_thread = start_server(config)

        with server_thread.connect() as client:
            client.send(b"GET / HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")
            client.read_response()

            started = time.monotonic()
            server_thread.stop()

            assert client.is_closed(timeout=5.0)
            assert time.monotonic() - started < 10.0
            assert not server_thread.server.is_running

    def test_stop_force_closes_stuck_connections(self, config: ServerConfig, start_server):
        config.shutdown_grace = 0.2
        server_thread = start_server(config)

        with server_thread.connect() as client:
            client.send(b"GET / HTTP/1.1\r\n")  # headers never finished
            time.sleep(0.2)

            server_thread.stop()

            assert client.is_closed(timeout=5.0)
            assert server_thread.server.active_connections == 0
