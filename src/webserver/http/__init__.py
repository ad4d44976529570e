"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that knows about the HTTP wire format, and nothing that knows
about sockets or files:

    request.py       bytes → HTTPRequest, request framing, keep-alive prefs
    response.py      HTTPResponse → bytes, OK and error shapes
    status_codes.py  HTTPStatus enum
    mime_types.py    extension → Content-Type table

=============================================================================
"""

from .request import (
    HTTPRequest,
    HTTPMethod,
    HTTPVersion,
    ConnectionPreferences,
    RequestParser,
    parse_request,
)
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ERROR_BODY,
    error_page,
    ok_response,
    head_response,
    error_response,
)
from .status_codes import HTTPStatus
from .mime_types import get_content_type

__all__ = [
    # Request
    "HTTPRequest",
    "HTTPMethod",
    "HTTPVersion",
    "ConnectionPreferences",
    "RequestParser",
    "parse_request",
    # Response
    "HTTPResponse",
    "ResponseBuilder",
    "ERROR_BODY",
    "error_page",
    "ok_response",
    "head_response",
    "error_response",
    # Status / MIME
    "HTTPStatus",
    "get_content_type",
]
