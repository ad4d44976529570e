"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to the Content-Type header value sent with them.

=============================================================================
THE TABLE IS FIXED
=============================================================================

Only six extensions are known. Anything else (including a file with no
extension at all) gets an EMPTY content type, and the response carries
a bare "Content-Type:" header. There is no application/octet-stream
fallback and no charset parameter.

    ┌────────────┬──────────────────┐
    │ Extension  │ Content-Type     │
    ├────────────┼──────────────────┤
    │ .html      │ text/html        │
    │ .txt       │ text/plain       │
    │ .jpg       │ image/jpg        │
    │ .png       │ image/png        │
    │ .gif       │ image/gif        │
    │ .css       │ text/css         │
    └────────────┴──────────────────┘

Note "image/jpg" rather than the registered "image/jpeg". Clients of this
server already depend on that exact string.

=============================================================================
"""

from pathlib import Path
from typing import Union


MIME_TYPES = {
    ".html": "text/html",
    ".txt": "text/plain",
    ".jpg": "image/jpg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".css": "text/css",
}

# Unmapped or missing extension
DEFAULT_MIME_TYPE = ""


def get_extension(path: Union[str, Path]) -> str:
    """
    Get the extension of a path, including the leading dot.

    Only the final path component is looked at, so a dot in a directory
    name does not count:

        >>> get_extension("/docs.v2/readme")
        ''
        >>> get_extension("/index.html")
        '.html'
    """
    if isinstance(path, str):
        path = Path(path)
    return path.suffix


def get_content_type(path: Union[str, Path]) -> str:
    """
    Get the Content-Type header value for a file.

    Extensions are matched exactly as written, so "INDEX.HTML" is not
    recognised.

    Args:
        path: File path or name with extension.

    Returns:
        The MIME type, or an empty string if the extension is not known.

    Examples:
        >>> get_content_type("www/index.html")
        'text/html'

        >>> get_content_type("photo.jpg")
        'image/jpg'

        >>> get_content_type("archive.zip")
        ''
    """
    return MIME_TYPES.get(get_extension(path), DEFAULT_MIME_TYPE)
