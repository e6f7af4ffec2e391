"""Content types for the file extensions the server is willing to serve."""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

MIME_TYPES: Mapping[str, str] = MappingProxyType(
    {
        ".html": "text/html",
        ".css": "text/css",
        ".js": "text/javascript",
        ".json": "application/json",
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".gif": "image/gif",
        ".svg": "image/svg+xml",
        ".ico": "image/x-icon",
        ".webp": "image/webp",
        ".woff": "font/woff",
        ".woff2": "font/woff2",
        ".ttf": "font/ttf",
    }
)


def resolve_content_type(extension: str) -> Optional[str]:
    """Return the content type for ``extension`` (e.g. ``".PNG"``), or None."""

    return MIME_TYPES.get(extension.lower())
