"""Validation of requested URL paths against the document root."""
from __future__ import annotations

import os
import posixpath
from pathlib import Path
from typing import Iterable

from secure_site.errors import PathRejected, RejectionReason
from secure_site.mime import resolve_content_type


class PathValidator:
    """Map a URL path onto a servable file under ``document_root``.

    Validation is purely lexical; whether the file exists is left to the
    caller.
    """

    def __init__(
        self,
        document_root: Path,
        allowed_files: Iterable[str],
        asset_prefixes: Iterable[str],
        index_file: str = "index.html",
    ) -> None:
        self._root = os.path.normpath(os.path.abspath(document_root))
        self._allowed = frozenset(allowed_files)
        self._prefixes = tuple(asset_prefixes)
        self._index_file = index_file

    def validate(self, raw_path: str) -> Path:
        relative = raw_path[1:] if raw_path.startswith("/") else raw_path
        if not relative:
            relative = self._index_file

        if _looks_like_traversal(relative):
            raise PathRejected(RejectionReason.TRAVERSAL)
        normalized = posixpath.normpath(relative)
        if _looks_like_traversal(normalized) or posixpath.isabs(normalized):
            raise PathRejected(RejectionReason.TRAVERSAL)

        name = posixpath.basename(normalized)
        if name not in self._allowed and not normalized.startswith(self._prefixes):
            raise PathRejected(RejectionReason.UNAUTHORIZED)

        # Extensionless names pass here and are refused once the content
        # type is looked up before writing.
        extension = posixpath.splitext(normalized)[1]
        if extension and resolve_content_type(extension) is None:
            raise PathRejected(RejectionReason.BAD_EXTENSION)

        candidate = os.path.normpath(os.path.join(self._root, *normalized.split("/")))
        if not candidate.startswith(self._root + os.sep):
            raise PathRejected(RejectionReason.ESCAPE)
        return Path(candidate)


def _looks_like_traversal(path: str) -> bool:
    return (
        ".." in path
        or "\\" in path
        or "//" in path
        or "\x00" in path
        or path.startswith(".")
    )
