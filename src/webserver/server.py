"""
=============================================================================
WEB SERVER
=============================================================================

The orchestrator: wires the listener, the worker pool and the connection
handler together and owns the server's lifecycle.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           HTTPServer                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    ┌──────────────┐   Connection   ┌──────────────┐                 │
    │    │ SocketServer │───────────────►│  ThreadPool  │──── full ──► 503│
    │    │  (accept)    │                │  (workers)   │                 │
    │    └──────────────┘                └──────┬───────┘                 │
    │                                           │                          │
    │                                           ▼                          │
    │                                  ┌──────────────────┐               │
    │                                  │ConnectionHandler │               │
    │                                  │ (keep-alive loop)│               │
    │                                  └────────┬─────────┘               │
    │                                           │                          │
    │              ┌────────────────────────────┼──────────────┐          │
    │              ▼                            ▼              ▼          │
    │      ┌──────────────┐          ┌──────────────────┐ ┌──────────┐   │
    │      │RequestParser │          │StaticFileHandler │ │AccessLog │   │
    │      └──────────────┘          │ + ResourceResolver│ └──────────┘   │
    │                                └──────────────────┘                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN
=============================================================================

    SIGINT / SIGTERM (or stop())
        │
        ├── 1. Listener stops accepting and closes its socket
        ├── 2. Cancellation event set: connections close after their
        │      current response instead of waiting for another request
        ├── 3. Idle keep-alive connections are closed right away
        ├── 4. Busy connections get shutdown_grace seconds to finish
        ├── 5. Whatever is left is closed from under its worker
        └── 6. Worker pool stopped

=============================================================================
"""

import time
import logging
import threading
from typing import Optional, Set, Tuple

from .config import ServerConfig
from .core.socket_server import SocketServer
from .core.connection import Connection, ConnectionState
from .core.thread_pool import ThreadPool
from .core.handler import ConnectionHandler
from .handlers.static import ResourceResolver, StaticFileHandler
from .access_log import AccessLogger
from .http.status_codes import HTTPStatus
from .http.response import error_response


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Static file server over HTTP/1.0 and HTTP/1.1.

    Usage:
        server = HTTPServer(ServerConfig(port=8080, document_root="./www"))
        server.run()  # Blocks until SIGINT/SIGTERM or stop()

    From another thread:
        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(timeout=5)
        ...
        server.stop()
        thread.join()
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults apply when omitted.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self._socket_server = SocketServer(self.config)

        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )

        # ─────────────────────────────────────────────────────────────────
        # REQUEST HANDLING
        # ─────────────────────────────────────────────────────────────────

        self.resolver = ResourceResolver(self.config.document_root, self.config.default_object)
        self.static = StaticFileHandler(self.resolver)

        # Set on shutdown; keep-alive loops check it between requests
        self._cancelled = threading.Event()

        self._handler = ConnectionHandler(
            config=self.config,
            static=self.static,
            access_log=AccessLogger(log_format=self.config.log_format),
            cancelled=self._cancelled,
        )

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────

        # Accepted and not yet closed, for forced close on shutdown
        self._connections: Set[Connection] = set()
        self._connections_lock = threading.Lock()

        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (ip, port); the real port even if the config said 0."""
        return self._socket_server.address

    @property
    def active_connections(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Raises:
            BindError: If the port cannot be bound.
        """
        self._setup_logging()
        self._cancelled.clear()
        self._running = True

        self._thread_pool.start()

        logger.info(f"Serving {self.resolver.root_dir} on {self.config.host}:{self.config.port}")
        if not self.resolver.root_dir.is_dir():
            logger.warning(f"Document root {self.resolver.root_dir} is not a directory")

        self._print_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def stop(self):
        """Ask a running server to shut down. Returns immediately."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is accepting connections."""
        return self._socket_server.wait_until_ready(timeout)

    def _print_startup_banner(self):
        host, port = self.config.host, self.config.port
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  webserver listening on http://{host}:{port}")
        print(f"  document root: {self.resolver.root_dir}")
        print(f"  workers: {self.config.min_workers}-{self.config.max_workers}, "
              f"keep-alive timeout: {self.config.keep_alive_timeout:g}s")
        print("  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("webserver").setLevel(level)

    def _shutdown(self):
        """
        Graceful shutdown: see the module docstring for the sequence.
        """
        logger.info("Shutting down server...")
        self._running = False
        self._cancelled.set()

        self._close_idle_connections()

        deadline = time.time() + self.config.shutdown_grace
        while self.active_connections and time.time() < deadline:
            time.sleep(0.05)

        with self._connections_lock:
            remaining = list(self._connections)

        if remaining:
            logger.warning(f"Closing {len(remaining)} connections still open after {self.config.shutdown_grace}s")
            for conn in remaining:
                conn.abort()

        self._thread_pool.shutdown(wait=False, timeout=2.0)
        logger.info("Server stopped")

    def _close_idle_connections(self):
        """Wake connections that sit between requests so they close now."""
        with self._connections_lock:
            idle = [
                c for c in self._connections
                if c.state in (ConnectionState.KEEP_ALIVE, ConnectionState.READING)
                and c.requests_handled > 0
            ]

        for conn in idle:
            conn.abort()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Hand a new connection to the pool (runs on the accept thread).

        If the pool's queue is full the client gets a 503 and is closed.
        """
        with self._connections_lock:
            self._connections.add(conn)

        submitted = self._thread_pool.submit(self._serve, args=(conn,), block=False)

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._reject(conn)

    def _serve(self, conn: Connection):
        """Run the handler for conn (runs on a worker thread)."""
        try:
            self._handler.handle(conn)
        finally:
            self._forget(conn)

    def _reject(self, conn: Connection):
        response = error_response(keep_alive=False, status=HTTPStatus.SERVICE_UNAVAILABLE)
        try:
            conn.send_response(response.head_bytes(), response.body)
        finally:
            conn.close()
            self._forget(conn)

    def _forget(self, conn: Connection):
        with self._connections_lock:
            self._connections.discard(conn)
