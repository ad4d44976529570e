"""
=============================================================================
SERVER ERRORS
=============================================================================

Every failure the server knows how to name lives here. Each exception
carries the HTTP status it turns into when it reaches a client.

=============================================================================
WHERE EACH ERROR SURFACES
=============================================================================

    ┌──────────────────────┬──────────────────────┬─────────────────────────┐
    │ Error                │ Raised by            │ Outcome                 │
    ├──────────────────────┼──────────────────────┼─────────────────────────┤
    │ BindError            │ SocketServer.start   │ Fatal, process exits 1  │
    │ AcceptError          │ accept loop          │ Logged, loop continues  │
    │ ResourceNotFound     │ ResourceResolver     │ 500 response            │
    │ UnsupportedMethod    │ ConnectionHandler    │ 500 response            │
    │ UnsupportedVersion   │ ConnectionHandler    │ 500 response            │
    │ RequestTooLarge      │ Connection           │ 500 response, close     │
    │ ReceiveTimeout       │ Connection           │ Silent close            │
    └──────────────────────┴──────────────────────┴─────────────────────────┘

Only socket setup failures are fatal. Everything that happens while a
request is being handled is converted into a response on that connection.

A malformed request line is NOT an error here: the parser fills in
whatever it could read and the method/version check rejects the result.

=============================================================================
"""

from .http.status_codes import HTTPStatus


class ServerError(Exception):
    """
    Base class for all server errors.

    Attributes:
        status_code: HTTP status reported to the client when this error
                     is turned into a response.
        strict_status: Status used instead when the server runs with
                       strict_status_codes enabled.
    """

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    strict_status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def status_for(self, strict: bool) -> HTTPStatus:
        """Pick the status for this error under the given status policy."""
        return self.strict_status if strict else self.status_code


class BindError(ServerError, OSError):
    """The listening socket could not be bound (port in use, privileged, ...)."""


class AcceptError(ServerError):
    """accept() failed on the listening socket."""


class ResourceNotFound(ServerError):
    """
    The requested file is absent or inaccessible.

    "Not found" and "permission denied" are deliberately reported the
    same way.
    """

    strict_status = HTTPStatus.NOT_FOUND


class UnsupportedMethod(ServerError):
    """Request method is not GET, HEAD or POST."""

    strict_status = HTTPStatus.METHOD_NOT_ALLOWED


class UnsupportedVersion(ServerError):
    """Request version is not HTTP/1.0 or HTTP/1.1."""

    strict_status = HTTPStatus.HTTP_VERSION_NOT_SUPPORTED


class RequestTooLarge(ServerError):
    """More bytes were buffered for one request than max_request_size allows."""


class ReceiveTimeout(ServerError, TimeoutError):
    """
    No data arrived within the receive timeout.

    Not reported to the client: an idle keep-alive connection timing out
    is the normal way for it to end.
    """
