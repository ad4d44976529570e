"""
=============================================================================
REQUEST HANDLERS
=============================================================================

Handlers turn a validated HTTPRequest into an HTTPResponse.

The only content this server has is files under the document root, so
there is a single handler family:

    static.py
    ├── ResourceResolver    target → file under the document root
    ├── ResourceDescriptor  size, content type, read()
    └── StaticFileHandler   HEAD / GET / POST responses

=============================================================================
"""

from .static import (
    ResourceResolver,
    ResourceDescriptor,
    StaticFileHandler,
    post_page,
)

__all__ = [
    "ResourceResolver",
    "ResourceDescriptor",
    "StaticFileHandler",
    "post_page",
]
