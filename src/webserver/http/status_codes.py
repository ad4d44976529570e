"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The handful of status codes this server can produce.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK                  - File found and served          │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 404 Not Found           - Only with strict_status_codes  │
    │        │ 405 Method Not Allowed  - Only with strict_status_codes  │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Error      - Every failure (default policy) │
    │        │ 503 Service Unavailable - Worker pool is full            │
    │        │ 505 Version Unsupported - Only with strict_status_codes  │
    └────────┴───────────────────────────────────────────────────────────┘

By default EVERY failure is a 500: missing file, unknown method and
unknown version alike. strict_status_codes switches to the conventional
codes.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so statuses compare equal to plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.OK.phrase
        'OK'
    """

    OK = 200

    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

        This is the text after the code in the status line:

            HTTP/1.1 500 Internal Server Error
                     ─── ─────────────────────
                     code      phrase
        """
        return _PHRASES[self.value]

    @property
    def is_success(self) -> bool:
        """Check if this is a 2xx status."""
        return 200 <= self.value < 300

    @property
    def is_error(self) -> bool:
        """Check if this is a 4xx or 5xx status."""
        return self.value >= 400


_PHRASES = {
    200: "OK",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}
