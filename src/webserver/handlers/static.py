"""
=============================================================================
STATIC FILE SERVING
=============================================================================

Maps request targets to files under the document root and turns them
into HEAD, GET and POST responses.

=============================================================================
HOW A TARGET BECOMES A FILE
=============================================================================

    document_root = ./www            default_object = /index.html

    GET /                 → ./www/index.html   (default object)
    GET /css/site.css     → ./www/css/site.css
    GET /missing.html     → ResourceNotFound
    GET /../etc/passwd    → ResourceNotFound   (escapes the root)
    GET index.html        → ./wwwindex.html    → ResourceNotFound

The target is appended to the root AS IS: no URL-decoding, no query
string stripping. "/index.html?x=1" looks for a file literally called
"index.html?x=1".

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

After joining, the path is resolved (following ".." and symlinks) and
must still lie inside the document root. Anything outside it is reported
exactly like a missing file. Unreadable files are reported the same way
too, so a client cannot tell "absent" from "forbidden" from "outside".

=============================================================================
THE THREE METHODS
=============================================================================

    HEAD  → headers of a GET, Content-Length = file size, no body
    GET   → file bytes
    POST  → "<html><body><pre><h1>" + post line + "</h1></pre>" + file bytes

The POST page uses the content type of the file it wraps.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from ..errors import ResourceNotFound
from ..http.request import HTTPRequest, HTTPMethod
from ..http.response import HTTPResponse, ok_response, head_response
from ..http.mime_types import get_content_type


logger = logging.getLogger(__name__)


@dataclass
class ResourceDescriptor:
    """
    A file found under the document root.

    Created per request and consumed right away. The file is only opened
    inside read(), and closed again before read() returns.

    Attributes:
        target: Request target it was resolved from.
        path: Absolute filesystem path.
        size: Size in bytes at resolution time.
        content_type: Content-Type for the file ("" if unknown).
    """

    target: str
    path: Path
    size: int
    content_type: str

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> bytes:
        """
        Read the whole file.

        Raises:
            ResourceNotFound: If the file vanished or became unreadable
                              since it was resolved.
        """
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except OSError as e:
            raise ResourceNotFound(f"Cannot read {self.target}: {e}") from e


class ResourceResolver:
    """
    Resolves request targets against a document root.

    Usage:
        resolver = ResourceResolver("./www", "/index.html")
        resource = resolver.resolve("/")       # ./www/index.html
        resource.size, resource.content_type   # (50, "text/html")
    """

    def __init__(self, document_root: str, default_object: str = "/index.html"):
        """
        Args:
            document_root: Directory files are served from. Does not have
                           to exist yet; every lookup will simply fail.
            default_object: Path served for the target "/".
        """
        self.root_dir = Path(document_root).resolve()
        self.default_object = default_object

    def map_target(self, target: str) -> Path:
        """
        Turn a target into a filesystem path by plain concatenation with
        the document root. The result is NOT checked in any way.
        """
        relative = self.default_object if target == "/" else target
        return Path(str(self.root_dir) + relative)

    def resolve(self, target: str) -> ResourceDescriptor:
        """
        Find the file for a request target.

        Args:
            target: Request target exactly as received.

        Returns:
            ResourceDescriptor with size and content type.

        Raises:
            ResourceNotFound: Missing, unreadable, not a regular file, or
                              outside the document root.
        """
        if not target or "\x00" in target:
            raise ResourceNotFound(f"Invalid target: {target!r}")

        mapped = self.map_target(target)

        try:
            # resolve() follows symlinks and normalizes .. components
            full_path = mapped.resolve()

            # ─────────────────────────────────────────────────────────────
            # SECURITY: PATH TRAVERSAL CHECK
            # ─────────────────────────────────────────────────────────────
            try:
                full_path.relative_to(self.root_dir)
            except ValueError:
                logger.warning(f"Path traversal attempt: {target}")
                raise ResourceNotFound(f"Outside document root: {target}")

            if not full_path.is_file() or not os.access(full_path, os.R_OK):
                raise ResourceNotFound(f"File not found: {target}")

            size = full_path.stat().st_size
        except OSError as e:
            # e.g. ENAMETOOLONG
            raise ResourceNotFound(f"Cannot access {target}: {e}") from e

        return ResourceDescriptor(
            target=target,
            path=full_path,
            size=size,
            content_type=get_content_type(mapped),
        )


def post_page(post_data: Optional[str], content: bytes) -> bytes:
    """
    Render the POST response body: the posted line as a heading, followed
    by the file contents.

        >>> post_page("hello", b"<p>file</p>")
        b'<html><body><pre><h1>hello</h1></pre><p>file</p>'
    """
    heading = (post_data or "").encode("utf-8")
    return b"<html><body><pre><h1>" + heading + b"</h1></pre>" + content


class StaticFileHandler:
    """
    Builds HEAD, GET and POST responses for files under the document root.

    Every method either returns a 200 response or raises ResourceNotFound;
    turning that into an error response is the caller's job.

    Usage:
        static = StaticFileHandler(ResourceResolver("./www"))
        response = static.handle(request, keep_alive=True)
    """

    def __init__(self, resolver: ResourceResolver):
        self.resolver = resolver
        self._handlers: Dict[HTTPMethod, Callable[[HTTPRequest, bool], HTTPResponse]] = {
            HTTPMethod.HEAD: self.head,
            HTTPMethod.GET: self.get,
            HTTPMethod.POST: self.post,
        }

    def handle(self, request: HTTPRequest, keep_alive: bool) -> HTTPResponse:
        """
        Dispatch on the request method.

        The method must already have been validated; UNKNOWN raises KeyError.
        """
        return self._handlers[request.method](request, keep_alive)

    def head(self, request: HTTPRequest, keep_alive: bool) -> HTTPResponse:
        resource = self.resolver.resolve(request.target)
        return head_response(
            version=request.version.value,
            content_type=resource.content_type,
            content_length=resource.size,
            keep_alive=keep_alive,
        )

    def get(self, request: HTTPRequest, keep_alive: bool) -> HTTPResponse:
        resource = self.resolver.resolve(request.target)
        # Content-Length comes from the bytes actually read, not the stat size
        content = resource.read()
        return ok_response(
            version=request.version.value,
            content_type=resource.content_type,
            body=content,
            keep_alive=keep_alive,
        )

    def post(self, request: HTTPRequest, keep_alive: bool) -> HTTPResponse:
        resource = self.resolver.resolve(request.target)
        content = resource.read()
        return ok_response(
            version=request.version.value,
            content_type=resource.content_type,
            body=post_page(request.post_data, content),
            keep_alive=keep_alive,
        )
