"""
=============================================================================
WEBSERVER - Static File Server for HTTP/1.0 and HTTP/1.1
=============================================================================

Serves files from a document root over raw sockets: GET, HEAD and POST,
persistent connections with an idle timeout, a bounded worker pool.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    webserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m webserver PORT)
    ├── server.py            # HTTPServer: wiring and lifecycle
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # ServerError hierarchy
    ├── access_log.py        # One log entry per response
    ├── core/                # Sockets and threads
    │   ├── socket_server.py # Listener / acceptor
    │   ├── connection.py    # Buffered client socket
    │   ├── handler.py       # Per-connection keep-alive loop
    │   └── thread_pool.py   # Bounded worker pool
    ├── http/                # Wire format
    │   ├── request.py       # Request parsing and framing
    │   ├── response.py      # Response building
    │   ├── status_codes.py  # HTTPStatus enum
    │   └── mime_types.py    # Extension → Content-Type
    └── handlers/
        └── static.py        # Document root lookup, HEAD/GET/POST

=============================================================================
QUICK START
=============================================================================

    from webserver import HTTPServer, ServerConfig

    server = HTTPServer(ServerConfig(port=8080, document_root="./www"))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer
from .config import ServerConfig

__all__ = ["HTTPServer", "ServerConfig", "__version__"]
