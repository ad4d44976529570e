"""
=============================================================================
LISTENER / ACCEPTOR
=============================================================================

Owns the listening socket. Binds, listens, and hands every accepted
client to a callback, which submits it to the worker pool. The callback
must return quickly: nothing slow may run on the accept thread, or every
other client waits behind it.

=============================================================================
SOCKET LIFECYCLE (server side)
=============================================================================

    socket()  →  setsockopt()  →  bind()  →  listen()  →  accept() ...
                                    │                        │
                                    └─ BindError (fatal)     └─ AcceptError
                                                                (logged, loop
                                                                 continues)

=============================================================================
STOPPING
=============================================================================

accept() waits at most one second at a time, so the loop notices
shutdown() within a second:

    while running:
        try:
            accept()          # ≤ 1s
        except timeout:
            continue          # re-check running

SIGINT and SIGTERM call shutdown(). Python only allows signal handlers
in the main thread, so a server started from another thread (tests,
embedding) leaves the process's handlers alone and must be stopped by
calling shutdown() directly.

=============================================================================
"""

import socket
import signal
import logging
import threading
import time
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..errors import BindError, AcceptError
from .connection import Connection


logger = logging.getLogger(__name__)


# Pause after a failed accept() (e.g. EMFILE) before trying again
ACCEPT_ERROR_BACKOFF = 0.1


class SocketServer:
    """
    Low-level TCP listener.

    Usage:
        def on_connection(conn: Connection):
            pool.submit(handle, args=(conn,), block=False)

        server = SocketServer(config)
        server.start(on_connection)  # Blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Server configuration (host, port, backlog, buffer sizes).

        The socket is created in start(), not here.
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False

        # Set once listening, so other threads can wait for the port
        self._ready_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (ip, port). Reports the real port when the config asked
        for port 0.
        """
        if self._socket is not None:
            try:
                return self._socket.getsockname()[:2]
            except OSError:
                pass
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create the listening socket with its options set."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restarting the server must not fail on TIME_WAIT sockets
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Send small responses right away
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Lets the accept loop check self._running once a second
        sock.settimeout(1.0)

        return sock

    def _setup_signals(self):
        """Route SIGTERM and SIGINT to shutdown(). Main thread only."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, leaving signal handlers alone")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections until shutdown() is called.

        Args:
            connection_handler: Called on the accept thread with each new
                                Connection.

        Raises:
            BindError: If the address cannot be bound or listened on.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise BindError(f"Cannot listen on {self.config.host}:{self.config.port}: {e}") from e

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                conn = self._accept()
            except socket.timeout:
                continue  # Normal: re-check self._running
            except AcceptError as e:
                if not self._running:
                    break  # Listening socket closed by shutdown
                logger.error(str(e))
                time.sleep(ACCEPT_ERROR_BACKOFF)
                continue

            connection_handler(conn)

    def _accept(self) -> Connection:
        """
        Accept one client and wrap it in a Connection.

        Raises:
            socket.timeout: No client within a second.
            AcceptError: accept() failed.
        """
        try:
            client_socket, client_address = self._socket.accept()
        except socket.timeout:
            raise
        except OSError as e:
            raise AcceptError(f"Accept error: {e}") from e

        conn = Connection(
            socket=client_socket,
            address=client_address,
            buffer_size=self.config.buffer_size,
            request_timeout=self.config.request_timeout,
            max_request_size=self.config.max_request_size,
        )
        logger.debug(f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}")
        return conn

    def shutdown(self):
        """
        Stop accepting. Safe to call from any thread, a signal handler,
        or more than once.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._running = False
        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. False on timeout."""
        return self._ready_event.wait(timeout)
