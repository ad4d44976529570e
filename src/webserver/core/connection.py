"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the operations the
ConnectionHandler needs: read the next complete request, send a response,
and close exactly once.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("GET /a HTTP/1.1\\r\\n\\r\\nGET /b HTTP/1.1\\r\\n\\r\\n")

    Server might receive ANY of these:
        recv() → both requests at once          (pipelining)
        recv() → "GET /a HTT"                   (partial)
        recv() → "P/1.1\\r\\n\\r\\nGET /b ..."      (rest of first + second)

So the connection keeps a BUFFER. read_request() asks the parser where
the first complete request ends, hands those bytes out, and keeps the
rest for the next call. Only when the buffer holds no complete request
does it call recv() again.

=============================================================================
RECEIVE TIMEOUTS
=============================================================================

Which timeout applies to a read depends on what the client asked for on
its PREVIOUS request:

    ┌────────────────────────────┬─────────────────────────────────────┐
    │ State                      │ recv() timeout                      │
    ├────────────────────────────┼─────────────────────────────────────┤
    │ First request              │ request_timeout (None = forever)    │
    │ After "Connection: close"  │ request_timeout (None = forever)    │
    │ After "keep-alive"         │ keep-alive idle timeout (10s)       │
    └────────────────────────────┴─────────────────────────────────────┘

A timeout raises ReceiveTimeout. The handler treats it as the normal end
of an idle connection and closes without sending anything.

=============================================================================
CLOSING EXACTLY ONCE
=============================================================================

Several code paths may try to close a connection: end of the keep-alive
loop, a send failure, the context manager, an overloaded pool rejecting
it. close() is guarded by a lock and a closed flag, so the socket is shut
down and released exactly once no matter how many callers there are.
The flag is separate from `state`, which the reading and writing paths
keep updating.

abort() is for OTHER threads (server shutdown): it only shuts the socket
down, which wakes a worker blocked in recv(). The worker then goes
through its normal close() path.

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..errors import ReceiveTimeout, RequestTooLarge
from ..http.request import ConnectionPreferences, RequestParser


logger = logging.getLogger(__name__)

# Bounds on reading leftover client data in close()
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024


class ConnectionState(Enum):
    """
    Connection lifecycle states.

        NEW → READING → PARSING → DISPATCHING → RESPONDING ─┬─► KEEP_ALIVE → READING ...
                 │                                          │
                 └──────────────────────────────────────────┴─► CLOSING → CLOSED
    """
    NEW = "new"                  # Just accepted
    READING = "reading"          # Blocked on recv()
    PARSING = "parsing"          # Turning bytes into an HTTPRequest
    DISPATCHING = "dispatching"  # Validating and resolving the resource
    RESPONDING = "responding"    # Writing the response
    KEEP_ALIVE = "keep_alive"    # Response sent, waiting for the next request
    CLOSING = "closing"          # Shutdown sequence in progress
    CLOSED = "closed"            # Socket released


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    Owned by exactly one ConnectionHandler for its whole life; the only
    method other threads may call is abort().

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        preferences: Keep-alive preferences from the latest request.
        requests_handled: Number of requests read on this connection.
    """

    # Required parameters
    socket: socket.socket
    address: tuple[str, int]

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0
    preferences: ConnectionPreferences = field(default_factory=ConnectionPreferences)

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    request_timeout: Optional[float] = None
    max_request_size: int = 1024 * 1024

    # Internal state (not shown in repr for cleaner logs)
    _buffer: bytes = field(default=b"", repr=False)
    _peer_closed: bool = field(default=False, repr=False)
    _closed: bool = field(default=False, repr=False)
    _parser: RequestParser = field(default_factory=RequestParser, repr=False, compare=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        # Blocking mode; read_request() sets the timeout per read
        self.socket.setblocking(True)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def keep_alive(self) -> bool:
        """Whether the latest request asked to keep the connection open."""
        return self.preferences.keep_alive

    @property
    def current_timeout(self) -> Optional[float]:
        """Receive timeout for the next read."""
        if self.preferences.keep_alive:
            return self.preferences.idle_timeout
        return self.request_timeout

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read the bytes of the next complete request.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_request() Flow                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   ┌────────────────────────┐                                    │
        │   │ Complete request in    │──yes──► cut it out of the buffer,  │
        │   │ the buffer?            │         return it                  │
        │   └───────────┬────────────┘                                    │
        │               │ no                                               │
        │   ┌───────────▼────────────┐                                    │
        │   │ Peer already closed?   │──yes──► return None                │
        │   └───────────┬────────────┘                                    │
        │               │ no                                               │
        │   ┌───────────▼────────────┐                                    │
        │   │ recv() → buffer        │   (b"" marks the peer closed)      │
        │   └───────────┬────────────┘                                    │
        │               └──────────── loop ──────────────                 │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        When the peer closes while unterminated bytes are buffered, those
        bytes are handed out as a final request.

        Returns:
            Raw bytes of one request, or None if the connection is done
            (peer closed, reset, or the socket was aborted).

        Raises:
            ReceiveTimeout: If no data arrived within the current timeout.
            RequestTooLarge: If the buffer grows past max_request_size.
        """
        if self._closed:
            return None

        self.state = ConnectionState.READING

        try:
            self.socket.settimeout(self.current_timeout)

            while True:
                end = self._parser.find_request_end(self._buffer, eof=self._peer_closed)
                if end is not None:
                    request_data = self._buffer[:end]
                    self._buffer = self._buffer[end:]
                    self.requests_handled += 1
                    self.last_activity = time.time()
                    return request_data

                if self._peer_closed:
                    return None

                chunk = self._recv()
                if not chunk:
                    self._peer_closed = True
                    continue

                self._buffer += chunk

                # Safety check: don't let buffer grow forever
                if len(self._buffer) > self.max_request_size:
                    raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

        except socket.timeout:
            raise ReceiveTimeout(f"No data within {self.current_timeout}s")

        except OSError as e:
            # Socket aborted or otherwise unusable
            logger.debug(f"[{self.id}] Receive failed: {e}")
            return None

    def _recv(self) -> bytes:
        """
        Receive data from socket.

        Returns:
            Received bytes, or empty bytes if connection closed.
        """
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            # Client disconnected abruptly
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, head: bytes, body: bytes = b"") -> bool:
        """
        Send a response: the header block, then the body as a second write.

        sendall() keeps writing until every byte is out, so a partial
        send never truncates a response.

        Args:
            head: Status line and headers, including the blank line.
            body: Body bytes (empty for HEAD and never sent then).

        Returns:
            True if send succeeded, False if connection lost.
        """
        self.state = ConnectionState.RESPONDING

        try:
            self.socket.sendall(head)
            if body:
                self.socket.sendall(body)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully. Safe to call any number of times.

        1. shutdown(SHUT_WR): Tell client we're done sending (FIN)
        2. Drain remaining data: at most DRAIN_LIMIT bytes, for at most
           DRAIN_TIMEOUT seconds in total
        3. close(): Release socket file descriptor
        """
        with self._close_lock:
            if self._closed:
                return  # Already closed

            self._closed = True
            self.state = ConnectionState.CLOSING

            try:
                self.socket.shutdown(socket.SHUT_WR)
            except OSError:
                pass  # Already disconnected

            self._drain()

            try:
                self.socket.close()
            except OSError:
                pass

            self._buffer = b""
            self.state = ConnectionState.CLOSED

        logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests, {self.age:.2f}s"
        )

    def _drain(self):
        """Discard data the client sent after our last response."""
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0

        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(4096)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass  # Includes socket.timeout

    def abort(self):
        """
        Shut the socket down from another thread.

        Wakes the owning worker if it is blocked in recv(); the worker
        then closes the connection through close().
        """
        if self._closed:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected any more

    def set_keep_alive(self):
        """Mark connection as waiting for its next request."""
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows using Connection with 'with' for automatic cleanup:

            with conn:
                data = conn.read_request()
            # Connection closed here, whatever happened inside
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions
