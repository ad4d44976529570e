"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds the two kinds of response this server sends and turns them into
bytes for the socket.

=============================================================================
THE TWO RESPONSE SHAPES
=============================================================================

    OK RESPONSE                            ERROR RESPONSE
    ───────────                            ──────────────
    HTTP/1.1 200 OK\\r\\n                    HTTP/1.1 500 Internal Server Error\\r\\n
    Content-Type: text/html\\r\\n            Content-Type: text/html\\r\\n
    Connection: Keep-alive\\r\\n             Connection: Close\\r\\n
    Content-Length: 50\\r\\n                 Content-Length: 64\\r\\n
    \\r\\n                                   \\r\\n
    <50 bytes of file>                     <html><body><pre><h1>500 ...

Headers are always exactly these three, always in this order. There is
no Date or Server header.

Note the capitalisation of the Connection directive: "Keep-alive" and
"Close". Existing clients match on these exact strings.

=============================================================================
HEAD RESPONSES
=============================================================================

A HEAD response carries the same Content-Length a GET would, but no body
bytes follow the blank line. HTTPResponse models this with an explicit
content_length and an empty body:

    GET  → content_length=None, body=<file bytes>  → Content-Length: len(body)
    HEAD → content_length=<size>, body=b""        → Content-Length: size

=============================================================================
TWO WRITES, NOT ONE
=============================================================================

The header block and the body are handed to the socket separately
(head_bytes() then body). Connection.send_response() uses sendall() for
each, which keeps writing until the whole buffer is out.

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Union

from .status_codes import HTTPStatus


DEFAULT_VERSION = "HTTP/1.1"
ERROR_CONTENT_TYPE = "text/html"

KEEP_ALIVE_DIRECTIVE = "Keep-alive"
CLOSE_DIRECTIVE = "Close"


def error_page(status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR) -> bytes:
    """
    Render the HTML body sent with an error response.

        >>> error_page()
        b'<html><body><pre><h1>500 Internal Server Error</h1></pre></html>'
    """
    return f"<html><body><pre><h1>{status.value} {status.phrase}</h1></pre></html>".encode("utf-8")


ERROR_BODY = error_page()


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Attributes:
        status: HTTP status code.
        version: Version string for the status line ("HTTP/1.0" / "HTTP/1.1").
        content_type: Content-Type value. May be empty for unknown file types.
        keep_alive: Whether the connection stays open after this response.
        body: Body bytes. Empty for HEAD.
        content_length: Explicit Content-Length. None means len(body).
    """

    status: HTTPStatus = HTTPStatus.OK
    version: str = DEFAULT_VERSION
    content_type: str = ""
    keep_alive: bool = False
    body: bytes = b""
    content_length: Optional[int] = None

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Example: "HTTP/1.1 200 OK"
        """
        return f"{self.version} {self.status.value} {self.status.phrase}"

    @property
    def connection_directive(self) -> str:
        """Value of the Connection header: "Keep-alive" or "Close"."""
        return KEEP_ALIVE_DIRECTIVE if self.keep_alive else CLOSE_DIRECTIVE

    @property
    def length(self) -> int:
        """Value of the Content-Length header."""
        if self.content_length is not None:
            return self.content_length
        return len(self.body)

    def head_bytes(self) -> bytes:
        """
        Serialize the status line and headers, up to and including the
        blank line that ends them.
        """
        lines = [
            self.status_line,
            f"Content-Type: {self.content_type}",
            f"Connection: {self.connection_directive}",
            f"Content-Length: {self.length}",
            "",
            "",
        ]
        return "\r\n".join(lines).encode("latin-1")

    def to_bytes(self) -> bytes:
        """Serialize the whole response (headers + body) in one buffer."""
        return self.head_bytes() + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Each method returns `self`, so a response reads top to bottom:

        response = (ResponseBuilder()
            .version("HTTP/1.0")
            .content_type("text/css")
            .body(css_bytes)
            .keep_alive(True)
            .build())

    Defaults: 200 OK, HTTP/1.1, empty Content-Type, Connection: Close.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._version = DEFAULT_VERSION
        self._content_type = ""
        self._keep_alive = False
        self._body = b""
        self._content_length: Optional[int] = None

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def version(self, version: str) -> "ResponseBuilder":
        self._version = version
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._content_type = content_type
        return self

    def keep_alive(self, keep_alive: bool = True) -> "ResponseBuilder":
        self._keep_alive = keep_alive
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """
        Set the response body. Strings are encoded as UTF-8.
        """
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def head_only(self, content_length: int) -> "ResponseBuilder":
        """
        Advertise content_length bytes but send no body (HEAD).
        """
        self._content_length = content_length
        self._body = b""
        return self

    def error(self, status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR) -> "ResponseBuilder":
        """
        Turn this into an error response: status, text/html and the
        matching error page as body.
        """
        self._status = status
        self._content_type = ERROR_CONTENT_TYPE
        self._body = error_page(status)
        self._content_length = None
        return self

    def build(self) -> HTTPResponse:
        """Build and return the HTTPResponse object."""
        return HTTPResponse(
            status=self._status,
            version=self._version,
            content_type=self._content_type,
            keep_alive=self._keep_alive,
            body=self._body,
            content_length=self._content_length,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok_response(
    version: str,
    content_type: str,
    body: bytes,
    keep_alive: bool,
) -> HTTPResponse:
    """Create a 200 OK response carrying body."""
    return (ResponseBuilder()
        .version(version)
        .content_type(content_type)
        .body(body)
        .keep_alive(keep_alive)
        .build())


def head_response(
    version: str,
    content_type: str,
    content_length: int,
    keep_alive: bool,
) -> HTTPResponse:
    """Create a 200 OK response with headers only."""
    return (ResponseBuilder()
        .version(version)
        .content_type(content_type)
        .head_only(content_length)
        .keep_alive(keep_alive)
        .build())


def error_response(
    version: str = DEFAULT_VERSION,
    keep_alive: bool = False,
    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
) -> HTTPResponse:
    """
    Create an error response.

    Args:
        version: Status line version. Callers pass the request's version
                 when it is a supported one, HTTP/1.1 otherwise.
        keep_alive: Whether the connection stays open afterwards.
        status: Defaults to 500, which is what every failure maps to
                unless strict status codes are enabled.
    """
    return (ResponseBuilder()
        .version(version)
        .error(status)
        .keep_alive(keep_alive)
        .build())
