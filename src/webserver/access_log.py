"""
=============================================================================
ACCESS LOGGING
=============================================================================

One log line per response sent, on its own logger so it can be routed
or silenced independently of the server's diagnostic logs.

=============================================================================
TWO FORMATS
=============================================================================

TEXT (Apache-like, for humans):

    127.0.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET /index.html HTTP/1.1" 200 50 0.42ms

JSON (for log aggregators):

    {"connection_id": "3f2a9c1e", "method": "GET", "target": "/index.html",
     "version": "HTTP/1.1", "client_ip": "127.0.0.1", "host": "x",
     "status_code": 200, "content_length": 50, "duration_ms": 0.42, ...}

The method and version are logged AS RECEIVED, so rejected requests
("PUT", "HTTP/2.0") show what the client actually sent.

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass, asdict

from .http.request import HTTPRequest
from .http.response import HTTPResponse


# Configure separately from the server logs:
#   logging.getLogger("webserver.access").setLevel(logging.WARNING)
logger = logging.getLogger("webserver.access")


@dataclass
class RequestLog:
    """
    Structured log entry for one request/response exchange.

    content_length is the advertised Content-Length, so a HEAD logs the
    size of the file it describes.
    """

    connection_id: str
    method: str
    target: str
    version: str
    client_ip: str
    host: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Format as an Apache-style access log line."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target} {self.version}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class AccessLogger:
    """
    Emits RequestLog entries on the "webserver.access" logger.

    Usage:
        access_log = AccessLogger(log_format="json")
        access_log.log(request, response, duration_ms=0.8, connection_id=conn.id)
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        """
        Args:
            log_format: "text" or "json".
            log_level: Level the entries are logged at.
        """
        self.log_format = log_format
        self.log_level = log_level

    def log(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        duration_ms: float,
        connection_id: str = "-",
    ) -> RequestLog:
        """
        Build and emit the log entry for one exchange.

        Returns:
            The entry that was logged.
        """
        entry = RequestLog(
            connection_id=connection_id,
            method=request.raw_method or "-",
            target=request.target or "-",
            version=request.raw_version or "-",
            client_ip=request.client_address[0] or "-",
            host=request.host or "-",
            status_code=int(response.status),
            content_length=response.length,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if not logger.isEnabledFor(self.log_level):
            return entry

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())
        return entry
