"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs the request/response loop for one connection on a worker thread.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────┐  bytes   ┌─────────┐          ┌─────────────┐
    │ READING  │─────────►│ PARSING │─────────►│ DISPATCHING │
    └──────────┘          └─────────┘          └──────┬──────┘
       ▲    │                                         │
       │    │ EOF / reset / idle timeout              ▼
       │    │                                  ┌─────────────┐
       │    └────────────────┐                 │ RESPONDING  │
       │                     ▼                 └──────┬──────┘
       │               ┌──────────┐    close /        │
       │               │  CLOSED  │◄── send failed ───┤
       │               └──────────┘    / shutdown     │
       │                                              │
       └────────────────── keep-alive ────────────────┘

Keep-alive is decided PER REQUEST from that request's Connection header.
Whatever the route to CLOSED, the socket is closed once, by the `with`
block around the loop.

=============================================================================
DISPATCH
=============================================================================

    method ∉ {GET, HEAD, POST}        → UnsupportedMethod   ┐
    version ∉ {HTTP/1.0, HTTP/1.1}    → UnsupportedVersion  ├─► error response
    file missing / outside the root   → ResourceNotFound    ┘   (500 by default)
    otherwise                         → StaticFileHandler → 200

The method is checked before the filesystem is touched. An error
response keeps the connection open if the client asked for keep-alive,
the same as a 200 would.

=============================================================================
"""

import time
import logging
import threading
from typing import Optional

from ..config import ServerConfig
from ..errors import ServerError, UnsupportedMethod, UnsupportedVersion, ReceiveTimeout, RequestTooLarge
from ..access_log import AccessLogger
from ..handlers.static import StaticFileHandler
from ..http.request import HTTPRequest, ConnectionPreferences, RequestParser
from ..http.response import HTTPResponse, DEFAULT_VERSION, error_response
from .connection import Connection, ConnectionState


logger = logging.getLogger(__name__)


class ConnectionHandler:
    """
    Drives Parser → Resolver → Builder for every request on a connection.

    One instance serves all connections; everything per-connection lives
    on the Connection passed to handle().

    Usage:
        handler = ConnectionHandler(config, StaticFileHandler(resolver))
        pool.submit(handler.handle, args=(conn,))
    """

    def __init__(
        self,
        config: ServerConfig,
        static: StaticFileHandler,
        access_log: Optional[AccessLogger] = None,
        cancelled: Optional[threading.Event] = None,
    ):
        """
        Args:
            config: Keep-alive and status code settings are read from here.
            static: Builds the response for a validated request.
            access_log: Receives one entry per response sent.
            cancelled: Once set, connections close after their current
                       response instead of waiting for another request.
        """
        self.config = config
        self.static = static
        self.access_log = access_log or AccessLogger(log_format=config.log_format)
        self.cancelled = cancelled or threading.Event()
        self._parser = RequestParser()

    def handle(self, conn: Connection):
        """
        Serve requests on conn until it closes. Closes the socket on return.
        """
        with conn:
            while True:
                try:
                    raw_request = conn.read_request()
                except ReceiveTimeout:
                    # Idle keep-alive connection: close without a response
                    logger.debug(f"[{conn.id}] Idle timeout after {conn.current_timeout}s")
                    break
                except RequestTooLarge as e:
                    logger.warning(f"[{conn.id}] {e}")
                    response = error_response(keep_alive=False, status=e.status_for(self.config.strict_status_codes))
                    conn.send_response(response.head_bytes(), response.body)
                    break

                if raw_request is None:
                    break  # Peer closed

                if not self.handle_request(conn, raw_request):
                    break

                if self.cancelled.is_set():
                    logger.debug(f"[{conn.id}] Server stopping, closing keep-alive connection")
                    break

                conn.set_keep_alive()

    def handle_request(self, conn: Connection, raw_request: bytes) -> bool:
        """
        Parse, dispatch and answer one request.

        Returns:
            True if the connection should stay open for another request.
        """
        start_time = time.perf_counter()

        conn.state = ConnectionState.PARSING
        request = self._parser.parse(raw_request, conn.address)

        # The client may change its mind on every request
        conn.preferences = ConnectionPreferences.from_request(
            request,
            keep_alive_timeout=self.config.keep_alive_timeout,
            allow_keep_alive=self.config.keep_alive,
        )

        conn.state = ConnectionState.DISPATCHING
        response = self.dispatch(request, conn.keep_alive)

        sent = conn.send_response(response.head_bytes(), response.body)

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.access_log.log(request, response, duration_ms, connection_id=conn.id)

        return sent and response.keep_alive

    def dispatch(self, request: HTTPRequest, keep_alive: bool) -> HTTPResponse:
        """
        Build the response for a request. Never raises.

        Args:
            request: The parsed request.
            keep_alive: Whether the response should keep the connection open.
        """
        try:
            self._validate(request)
            return self.static.handle(request, keep_alive)

        except ServerError as e:
            logger.debug(f"{type(e).__name__}: {e}")
            return error_response(
                version=self._response_version(request),
                keep_alive=keep_alive,
                status=e.status_for(self.config.strict_status_codes),
            )

        except Exception as e:
            logger.exception(f"Unexpected error handling {request.raw_method} {request.target}: {e}")
            return error_response(version=self._response_version(request), keep_alive=False)

    def _validate(self, request: HTTPRequest):
        """
        Raises:
            UnsupportedMethod: Method is not GET, HEAD or POST.
            UnsupportedVersion: Version is not HTTP/1.0 or HTTP/1.1.
        """
        if not request.has_supported_method:
            raise UnsupportedMethod(f"Unsupported method: {request.raw_method!r}")

        if not request.has_supported_version:
            raise UnsupportedVersion(f"Unsupported version: {request.raw_version!r}")

    @staticmethod
    def _response_version(request: HTTPRequest) -> str:
        """Echo the request's version if we speak it, else HTTP/1.1."""
        if request.has_supported_version:
            return request.version.value
        return DEFAULT_VERSION
