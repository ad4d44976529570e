"""
Unit tests for HTTP request parsing and framing.
"""

import pytest

from webserver.http.request import (
    HTTPRequest,
    HTTPMethod,
    HTTPVersion,
    ConnectionPreferences,
    RequestParser,
    parse_request,
)


@pytest.fixture
def sample_get_request() -> bytes:
    """GET with the headers a browser would send."""
    return (
        b"GET /index.html HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


class TestRequestParser:
    """Tests for RequestParser.parse."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method is HTTPMethod.GET
        assert request.target == "/index.html"
        assert request.version is HTTPVersion.HTTP_1_1
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.post_data is None

    def test_parse_headers_by_name(self, sample_get_request: bytes):
        """Headers are looked up by name, not by position."""
        request = parse_request(sample_get_request)

        assert request.host == "localhost:8080"
        assert request.connection == "keep-alive"
        assert request.get_header("User-Agent") == "pytest"

    def test_header_order_does_not_matter(self):
        """Connection found even when it comes first and Host is missing."""
        raw = b"GET / HTTP/1.0\r\nConnection: close\r\nAccept: */*\r\n\r\n"
        request = parse_request(raw)

        assert request.connection == "close"
        assert request.host == ""

    def test_case_insensitive_headers(self):
        """Header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nCONNECTION: Keep-Alive\r\nhost: x\r\n\r\n"
        request = parse_request(raw)

        assert request.connection == "Keep-Alive"
        assert request.get_header("Host") == "x"
        assert request.get_header("host") == "x"

    def test_colon_less_header_line(self):
        """A 'Name value' line still counts as a header."""
        request = parse_request(b"GET / HTTP/1.1\r\nHost x\r\nConnection close\r\n\r\n")

        assert request.host == "x"
        assert request.connection == "close"

    def test_repeated_header_values_joined(self):
        raw = b"GET / HTTP/1.1\r\nConnection: keep-alive\r\nConnection: Upgrade\r\n\r\n"
        request = parse_request(raw)

        assert request.connection == "keep-alive, Upgrade"

    def test_target_kept_verbatim(self):
        """No URL decoding and no query stripping."""
        request = parse_request(b"GET /a%20b.html?x=1 HTTP/1.1\r\n\r\n")

        assert request.target == "/a%20b.html?x=1"

    def test_unknown_method_preserved(self):
        """Unknown methods parse; validation rejects them later."""
        request = parse_request(b"PUT /index.html HTTP/1.1\r\nHost: x\r\n\r\n")

        assert request.method is HTTPMethod.UNKNOWN
        assert request.raw_method == "PUT"
        assert not request.has_supported_method
        assert request.has_supported_version

    def test_unknown_version_preserved(self):
        request = parse_request(b"GET / HTTP/2.0\r\n\r\n")

        assert request.version is HTTPVersion.UNKNOWN
        assert request.raw_version == "HTTP/2.0"
        assert not request.has_supported_version

    def test_methods_are_case_sensitive(self):
        assert parse_request(b"get / HTTP/1.1\r\n\r\n").method is HTTPMethod.UNKNOWN

    @pytest.mark.parametrize("raw, expected", [
        (b"GET\r\n\r\n", ("GET", "", "")),
        (b"GET /index.html\r\n\r\n", ("GET", "/index.html", "")),
        (b"\r\n\r\n", ("", "", "")),
        (b"GET / HTTP/1.1 extra\r\n\r\n", ("GET", "/", "HTTP/1.1")),
    ])
    def test_malformed_request_line_degrades(self, raw: bytes, expected: tuple):
        """Missing tokens come back empty instead of raising."""
        request = parse_request(raw)

        assert (request.raw_method, request.target, request.raw_version) == expected

    def test_garbage_does_not_raise(self):
        request = parse_request(b"\x00\xff\xfe garbage")

        assert request.method is HTTPMethod.UNKNOWN

    def test_leading_blank_lines_skipped(self):
        request = parse_request(b"\r\n\r\nHEAD / HTTP/1.0\r\n\r\n")

        assert request.method is HTTPMethod.HEAD
        assert request.version is HTTPVersion.HTTP_1_0

    def test_post_line(self):
        """POST body: the first line after the headers."""
        raw = b"POST /index.html HTTP/1.1\r\nHost: x\r\n\r\nhello world\r\n"
        request = parse_request(raw)

        assert request.method is HTTPMethod.POST
        assert request.post_data == "hello world"

    def test_post_line_without_terminator(self):
        request = parse_request(b"POST / HTTP/1.1\r\n\r\nname=value")

        assert request.post_data == "name=value"

    def test_post_without_body(self):
        request = parse_request(b"POST / HTTP/1.1\r\n\r\n")

        assert request.post_data is None

    def test_get_body_ignored(self):
        request = parse_request(b"GET / HTTP/1.1\r\nContent-Length: 3\r\n\r\nabc")

        assert request.post_data is None


class TestFindRequestEnd:
    """Tests for request framing on a connection buffer."""

    def test_incomplete_headers(self):
        parser = RequestParser()

        assert parser.find_request_end(b"GET / HTTP/1.1\r\nHost: x\r\n") is None

    def test_incomplete_headers_at_eof(self):
        """At EOF whatever is buffered is the request."""
        parser = RequestParser()
        buffer = b"GET / HTTP/1.1\r\nHost: x\r\n"

        assert parser.find_request_end(buffer, eof=True) == len(buffer)

    def test_blank_only_buffer(self):
        parser = RequestParser()

        assert parser.find_request_end(b"") is None
        assert parser.find_request_end(b"\r\n\r\n", eof=True) is None

    def test_pipelined_gets(self):
        parser = RequestParser()
        first = b"GET /a HTTP/1.1\r\nHost: x\r\n\r\n"
        second = b"GET /b HTTP/1.1\r\n\r\n"

        end = parser.find_request_end(first + second)

        assert end == len(first)
        assert parser.find_request_end(second) == len(second)

    def test_content_length_body(self):
        parser = RequestParser()
        request = b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"

        assert parser.find_request_end(request + b"GET / HTTP/1.1\r\n\r\n") == len(request)

    def test_content_length_body_incomplete(self):
        parser = RequestParser()
        buffer = b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nhel"

        assert parser.find_request_end(buffer) is None
        assert parser.find_request_end(buffer, eof=True) == len(buffer)

    def test_get_content_length_is_ignored(self):
        """Only POST has a body; a GET never waits for one."""
        parser = RequestParser()
        request = b"GET / HTTP/1.1\r\nContent-Length: 10\r\n\r\n"

        assert parser.find_request_end(request) == len(request)
        assert parser.find_request_end(b"HEAD / HTTP/1.1\r\nContent-Length: 5\r\n\r\n") is not None

    def test_post_line_without_content_length(self):
        parser = RequestParser()
        request = b"POST / HTTP/1.1\r\n\r\nline\r\n"

        assert parser.find_request_end(request + b"GET / HTTP/1.1\r\n\r\n") == len(request)

    def test_post_takes_what_was_buffered(self):
        parser = RequestParser()
        buffer = b"POST / HTTP/1.1\r\n\r\npartial"

        assert parser.find_request_end(buffer) == len(buffer)

    def test_leading_blank_lines_belong_to_request(self):
        parser = RequestParser()
        buffer = b"\r\nGET / HTTP/1.1\r\n\r\n"

        assert parser.find_request_end(buffer) == len(buffer)


class TestConnectionPreferences:
    """Tests for keep-alive negotiation."""

    @pytest.mark.parametrize("header, keep_alive", [
        ("keep-alive", True),
        ("Keep-Alive", True),
        ("keep-alive, Upgrade", True),
        ("close", False),
        ("Close", False),
        ("keep-alive, close", False),
        ("", False),
        ("upgrade", False),
    ])
    def test_connection_header(self, header: str, keep_alive: bool):
        headers = {"connection": header} if header else {}
        request = HTTPRequest(HTTPMethod.GET, "/", HTTPVersion.HTTP_1_1, headers=headers)

        prefs = ConnectionPreferences.from_request(request, keep_alive_timeout=10.0)

        assert prefs.keep_alive is keep_alive
        assert prefs.idle_timeout == (10.0 if keep_alive else None)

    def test_server_can_refuse_keep_alive(self):
        request = parse_request(b"GET / HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")

        prefs = ConnectionPreferences.from_request(request, 10.0, allow_keep_alive=False)

        assert prefs.keep_alive is False

    def test_default_is_close(self):
        assert ConnectionPreferences().keep_alive is False
