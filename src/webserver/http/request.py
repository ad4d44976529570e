"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns raw bytes received on a connection into structured HTTPRequest
objects, and decides where one request ends and the next begins.

=============================================================================
WHAT A REQUEST LOOKS LIKE HERE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  POST /index.html HTTP/1.1\r\n           ← request line             │
    │  Host: localhost\r\n                     ← headers                   │
    │  Connection: keep-alive\r\n                                          │
    │  \r\n                                    ← blank line                │
    │  name=value\r\n                          ← POST line (POST only)     │
    └─────────────────────────────────────────────────────────────────────┘

Only two headers matter to the server: Host and Connection. All header
lines are parsed into a case-insensitive name → value mapping, so their
order and the presence of other headers do not matter.

A POST carries at most ONE line of body text. It is not form-decoded or
interpreted in any way, just echoed into the response page.

=============================================================================
LENIENT PARSING
=============================================================================

The parser never rejects a request. A broken request line simply leaves
fields empty:

    "GET\r\n\r\n"           → method=GET, target="", version=UNKNOWN
    "\x00garbage\r\n\r\n"   → method=UNKNOWN, target="", version=UNKNOWN

Unknown methods and versions keep their raw text (raw_method,
raw_version) and it is the ConnectionHandler's method/version check that
turns them into an error response. This keeps "what did the client send"
separate from "what do we accept".

=============================================================================
FRAMING (PIPELINING)
=============================================================================

TCP delivers a byte stream, and a single recv() may hold half a request
or three of them. find_request_end() looks at the buffered bytes and
says how many of them make up the first complete request:

    buffer:  GET /a HTTP/1.1\r\n\r\nGET /b HTTP/1.1\r\n\r\nGET /c HT
             └──────── request 1 ─────┘└──────── request 2 ─────┘└ partial ┘

    find_request_end(buffer) → end of request 1
    (request 2 is found on the next call, request 3 needs more bytes)

Body length rules, in order:
1. Anything but POST → no body, even with a Content-Length header.
2. POST with Content-Length → exactly that many bytes.
3. POST without Content-Length → the single line after the blank line,
   or whatever has been buffered so far if that line has no CRLF yet.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


CRLF = b"\r\n"
HEADER_TERMINATOR = b"\r\n\r\n"


class HTTPMethod(Enum):
    """
    Request methods the server understands.

    UNKNOWN stands for anything else; the raw token is kept on the
    request so it can be logged.
    """
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, token: str) -> "HTTPMethod":
        """Map a request-line token to a method. Matching is case-sensitive."""
        return _KNOWN_METHODS.get(token, cls.UNKNOWN)


class HTTPVersion(Enum):
    """HTTP versions the server speaks."""
    HTTP_1_0 = "HTTP/1.0"
    HTTP_1_1 = "HTTP/1.1"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, token: str) -> "HTTPVersion":
        """Map a request-line token to a version."""
        return _KNOWN_VERSIONS.get(token, cls.UNKNOWN)


_KNOWN_METHODS = {m.value: m for m in HTTPMethod if m is not HTTPMethod.UNKNOWN}
_KNOWN_VERSIONS = {v.value: v for v in HTTPVersion if v is not HTTPVersion.UNKNOWN}


@dataclass
class HTTPRequest:
    """
    Represents one parsed HTTP request.

    Built fresh for every request and thrown away once the response
    has been sent.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         HTTPMethod (GET, HEAD, POST or UNKNOWN)

        target:         Request target exactly as sent. NOT URL-decoded,
                        query string NOT stripped.

        version:        HTTPVersion (HTTP/1.0, HTTP/1.1 or UNKNOWN)

        raw_method:     The method token as received ("" if missing)

        raw_version:    The version token as received ("" if missing)

        headers:        Header name (lowercase) → value

        post_data:      The single body line of a POST, None otherwise

        client_address: (ip, port) of the client, for logging

        raw:            The bytes this request was parsed from

    =========================================================================
    """

    method: HTTPMethod
    target: str
    version: HTTPVersion
    raw_method: str = ""
    raw_version: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    post_data: Optional[str] = None
    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    @property
    def host(self) -> str:
        """Get the Host header value."""
        return self.get_header("Host")

    @property
    def connection(self) -> str:
        """Get the Connection header value."""
        return self.get_header("Connection")

    @property
    def has_supported_method(self) -> bool:
        return self.method is not HTTPMethod.UNKNOWN

    @property
    def has_supported_version(self) -> bool:
        return self.version is not HTTPVersion.UNKNOWN

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive lookup).

        Example:
            request.get_header("Connection")  # same as "connection"
        """
        return self.headers.get(name.lower(), default)


@dataclass(frozen=True)
class ConnectionPreferences:
    """
    What the client asked for in its Connection header.

    Recomputed for EVERY request: a client may ask for keep-alive on its
    first request and send "Connection: close" on the third.

    =========================================================================
    KEEP-ALIVE RULES
    =========================================================================

        Connection: keep-alive  → keep_alive=True, idle_timeout armed
        Connection: close       → keep_alive=False
        (missing / other)       → keep_alive=False

    The header is a comma separated token list and matching ignores case,
    so "Keep-Alive" and "keep-alive, Upgrade" both ask for keep-alive.
    "close" wins if both tokens are present.

    =========================================================================
    """

    keep_alive: bool = False
    idle_timeout: Optional[float] = None

    @classmethod
    def from_request(
        cls,
        request: HTTPRequest,
        keep_alive_timeout: float,
        allow_keep_alive: bool = True,
    ) -> "ConnectionPreferences":
        """
        Derive connection preferences from a request.

        Args:
            request: The parsed request.
            keep_alive_timeout: Idle timeout to arm when keep-alive is on.
            allow_keep_alive: Server-side switch; False forces close.
        """
        tokens = {t.strip().lower() for t in request.connection.split(",")}

        if allow_keep_alive and "keep-alive" in tokens and "close" not in tokens:
            return cls(keep_alive=True, idle_timeout=keep_alive_timeout)
        return cls(keep_alive=False, idle_timeout=None)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Raw Request Bytes
              │
              ▼
        ┌─────────────────────┐
        │ Strip leading CRLFs │  ← Blank lines between pipelined requests
        └─────────────────────┘
              │
              ▼
        ┌─────────────────────┐
        │ Split at \\r\\n\\r\\n  │  ← Header section / body
        └─────────────────────┘
              │
              ▼
        ┌─────────────────────┐
        │ Request line        │  ← Whitespace split, up to 3 tokens
        └─────────────────────┘
              │
              ▼
        ┌─────────────────────┐
        │ Header lines        │  ← name → value, lowercase names
        └─────────────────────┘
              │
              ▼
        ┌─────────────────────┐
        │ POST line           │  ← First body line, POST only
        └─────────────────────┘
              │
              ▼
        HTTPRequest dataclass

    ==========================================================================
    """

    # "Name: value" with optional whitespace after the colon
    HEADER_PATTERN = re.compile(r"^([^:\s]+)\s*:\s*(.*)$")

    def find_request_end(self, buffer: bytes, eof: bool = False) -> Optional[int]:
        """
        Find where the first complete request in the buffer ends.

        Args:
            buffer: Bytes received so far on the connection.
            eof: True if the peer has stopped sending. Whatever is
                 buffered then counts as a request, complete or not.

        Returns:
            Offset one past the last byte of the first request, or None
            if more bytes are needed. Returns None for a buffer holding
            only blank lines.
        """
        start = self._skip_blank_lines(buffer)
        if start >= len(buffer):
            return None

        header_end = buffer.find(HEADER_TERMINATOR, start)
        if header_end == -1:
            return len(buffer) if eof else None

        body_start = header_end + len(HEADER_TERMINATOR)
        head = buffer[start:header_end].decode("latin-1")
        lines = head.split("\r\n")
        request_line = lines[0].split()
        headers = self._parse_headers(lines[1:])

        # ─────────────────────────────────────────────────────────────────
        # RULE 1: only POST has a body
        # ─────────────────────────────────────────────────────────────────
        if not request_line or request_line[0] != HTTPMethod.POST.value:
            return body_start

        # ─────────────────────────────────────────────────────────────────
        # RULE 2: Content-Length
        # ─────────────────────────────────────────────────────────────────
        content_length = self._parse_content_length(headers)
        if content_length is not None:
            end = body_start + content_length
            if end <= len(buffer):
                return end
            return len(buffer) if eof else None

        # ─────────────────────────────────────────────────────────────────
        # RULE 3: POST line
        # ─────────────────────────────────────────────────────────────────
        line_end = buffer.find(CRLF, body_start)
        if line_end != -1:
            return line_end + len(CRLF)
        # No line terminator: take what has been received
        return len(buffer)

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Never raises on malformed input; missing pieces come back empty.

        Args:
            data: Bytes of exactly one request (see find_request_end).
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            Parsed HTTPRequest object.
        """
        data_start = self._skip_blank_lines(data)
        message = data[data_start:]

        header_end = message.find(HEADER_TERMINATOR)
        if header_end == -1:
            head_bytes, body = message, b""
        else:
            head_bytes = message[:header_end]
            body = message[header_end + len(HEADER_TERMINATOR):]

        # latin-1 maps every byte, so decoding cannot fail
        lines = head_bytes.decode("latin-1").split("\r\n")

        raw_method, target, raw_version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])
        method = HTTPMethod.parse(raw_method)

        post_data = None
        if method is HTTPMethod.POST and body:
            post_data = body.decode("utf-8", errors="replace").split("\r\n", 1)[0]

        return HTTPRequest(
            method=method,
            target=target,
            version=HTTPVersion.parse(raw_version),
            raw_method=raw_method,
            raw_version=raw_version,
            headers=headers,
            post_data=post_data,
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        """
        Split the request line into (method, target, version).

            "GET /index.html HTTP/1.1"  → ("GET", "/index.html", "HTTP/1.1")
            "GET /index.html"           → ("GET", "/index.html", "")
            ""                          → ("", "", "")

        Tokens past the third are ignored.
        """
        tokens = line.split()
        tokens += [""] * (3 - len(tokens))
        return tokens[0], tokens[1], tokens[2]

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dictionary with lowercase names.

        Accepts "Name: value" and the colon-less "Name value" form.
        Lines that fit neither are skipped. A repeated header has its
        values joined with ", ".
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line.strip():
                continue

            match = self.HEADER_PATTERN.match(line.strip())
            if match:
                name, value = match.groups()
            else:
                parts = line.split(None, 1)
                if len(parts) != 2:
                    continue
                name, value = parts

            name = name.lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    @staticmethod
    def _parse_content_length(headers: Dict[str, str]) -> Optional[int]:
        """Content-Length as an int, or None if missing or not a valid size."""
        value = headers.get("content-length")
        if value is None:
            return None
        try:
            length = int(value)
        except ValueError:
            return None
        return length if length >= 0 else None

    @staticmethod
    def _skip_blank_lines(data: bytes) -> int:
        """Offset of the first byte after any leading CR/LF characters."""
        index = 0
        while index < len(data) and data[index] in b"\r\n":
            index += 1
        return index


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
) -> HTTPRequest:
    """
    Parse one HTTP request in a single call.

    Use RequestParser directly when parsing many requests.
    """
    return RequestParser().parse(data, client_address)
