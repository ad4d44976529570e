"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the web server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m webserver 8080 --root ./public                  │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── WEBSERVER_ROOT=./public python -m webserver 8080          │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The defaults reproduce the classic behaviour of this server: serve
./www on 0.0.0.0, /index.html for "/", a 10 second keep-alive idle
timeout, 4 KB reads and a backlog of 100.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


# The process interface refuses anything below this port
MIN_PORT = 5000

LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the web server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    DOCUMENT ROOT
    - document_root, default_object

    CONNECTION SETTINGS
    - keep_alive, keep_alive_timeout, request_timeout, max_request_size

    THREADING SETTINGS
    - min_workers, max_workers, queue_size, shutdown_grace

    RESPONSES
    - strict_status_codes

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. All interfaces by default.
    """

    port: int = 8080
    """
    The port number to listen on.
    0 lets the OS pick a free port (handy in tests).
    """

    backlog: int = 100
    """
    Maximum number of queued connections before the OS refuses new ones.
    """

    buffer_size: int = 4096
    """
    Bytes requested per recv() call.
    """

    # ─────────────────────────────────────────────────────────────────────
    # DOCUMENT ROOT
    # ─────────────────────────────────────────────────────────────────────

    document_root: str = "./www"
    """
    Directory that request targets are resolved against.
    Relative paths are relative to the working directory at startup.
    """

    default_object: str = "/index.html"
    """
    Object served when the target is exactly "/".
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """
    Honour "Connection: keep-alive" from clients.
    When False every response says "Connection: Close".
    """

    keep_alive_timeout: float = 10.0
    """
    Idle timeout in seconds once a client asked for keep-alive.
    If no further request arrives in this window the connection is closed
    without sending anything.
    """

    request_timeout: Optional[float] = None
    """
    Receive timeout before keep-alive has been negotiated.
    None = wait forever for the first request.
    """

    max_request_size: int = 1024 * 1024  # 1 MB
    """
    Maximum bytes buffered for a single request.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """
    Worker threads created at startup.
    """

    max_workers: int = 50
    """
    Upper bound on concurrently served connections.
    Each keep-alive connection holds one worker for its whole lifetime.
    """

    queue_size: int = 100
    """
    Accepted connections allowed to wait for a worker.
    Beyond this the connection gets a 503 and is closed.
    """

    shutdown_grace: float = 5.0
    """
    Seconds in-flight connections get to finish after a shutdown signal
    before their sockets are closed from under them.
    """

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSES
    # ─────────────────────────────────────────────────────────────────────

    strict_status_codes: bool = False
    """
    False: every failure is "500 Internal Server Error".
    True:  missing file → 404, bad method → 405, bad version → 505.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """

    log_format: str = "text"
    """
    Access log format: 'text' or 'json'.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        WEBSERVER_HOST                 Bind address (default: 0.0.0.0)
        WEBSERVER_PORT                 Port (default: 8080)
        WEBSERVER_ROOT                 Document root (default: ./www)
        WEBSERVER_WORKERS              Max worker threads (default: 50)
        WEBSERVER_KEEP_ALIVE_TIMEOUT   Idle timeout in seconds (default: 10)
        WEBSERVER_LOG_LEVEL            Logging level (default: INFO)
        WEBSERVER_LOG_FORMAT           text or json (default: text)

        =====================================================================
        """
        max_workers = int(os.getenv("WEBSERVER_WORKERS", "50"))

        return cls(
            host=os.getenv("WEBSERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("WEBSERVER_PORT", "8080")),
            document_root=os.getenv("WEBSERVER_ROOT", "./www"),
            min_workers=min(cls.min_workers, max_workers),
            max_workers=max_workers,
            keep_alive_timeout=float(os.getenv("WEBSERVER_KEEP_ALIVE_TIMEOUT", "10")),
            log_level=os.getenv("WEBSERVER_LOG_LEVEL", "INFO"),
            log_format=os.getenv("WEBSERVER_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by HTTPServer at construction so a bad value fails at
        startup, not on the first request.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if not self.default_object.startswith("/"):
            raise ValueError(f"default_object must start with '/': {self.default_object}")

        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")

        if self.max_request_size < self.buffer_size:
            raise ValueError("max_request_size must be >= buffer_size")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.shutdown_grace < 0:
            raise ValueError("shutdown_grace must be >= 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}")
