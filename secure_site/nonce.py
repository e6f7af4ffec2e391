"""Per-response CSP nonces and their injection into inline scripts."""
from __future__ import annotations

import base64
import secrets
from html.parser import HTMLParser
from typing import List, NamedTuple, Optional, Tuple

NONCE_BYTES = 16

_SCRIPT_OPEN = "<script"


class PreparedHtml(NamedTuple):
    nonce: str
    body: bytes


def generate_nonce() -> str:
    return base64.b64encode(secrets.token_bytes(NONCE_BYTES)).decode("ascii")


def build_csp(nonce: Optional[str] = None) -> str:
    """Build the Content-Security-Policy value, nonce-bearing when given one."""

    script_src = "script-src 'self'"
    if nonce:
        script_src += f" 'nonce-{nonce}'"
    directives = [
        "default-src 'self'",
        f"{script_src} https://fonts.googleapis.com",
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com https://fonts.gstatic.com",
        "font-src 'self' https://fonts.gstatic.com",
        "img-src 'self' data: https:",
        "connect-src 'self'",
        "object-src 'none'",
        "base-uri 'self'",
        "form-action 'self'",
        "frame-ancestors 'none'",
    ]
    return "; ".join(directives)


class _InlineScriptFinder(HTMLParser):
    """Collect the (line, column) of every ``<script>`` tag without ``src``."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.positions: List[Tuple[int, int]] = []

    def handle_starttag(self, tag, attrs):  # noqa: D401
        if tag == "script" and not any(name == "src" for name, _ in attrs):
            self.positions.append(self.getpos())

    handle_startendtag = handle_starttag


def inject_nonce(html: str, nonce: str) -> str:
    """Return ``html`` with ``nonce`` set on each inline script tag.

    Tags are found with a tokenizer, so ``<script`` text inside comments or
    inside a script body is left alone.
    """

    finder = _InlineScriptFinder()
    finder.feed(html)
    finder.close()
    if not finder.positions:
        return html

    line_starts = [0]
    for line in html.split("\n")[:-1]:
        line_starts.append(line_starts[-1] + len(line) + 1)

    attribute = f' nonce="{nonce}"'
    pieces = []
    cursor = 0
    for lineno, column in finder.positions:
        insert_at = line_starts[lineno - 1] + column + len(_SCRIPT_OPEN)
        pieces.append(html[cursor:insert_at])
        pieces.append(attribute)
        cursor = insert_at
    pieces.append(html[cursor:])
    return "".join(pieces)


def prepare_html(raw: bytes) -> PreparedHtml:
    """Generate a fresh nonce and rewrite ``raw`` HTML to carry it."""

    nonce = generate_nonce()
    # surrogateescape keeps undecodable bytes intact through the round trip.
    text = raw.decode("utf-8", "surrogateescape")
    body = inject_nonce(text, nonce).encode("utf-8", "surrogateescape")
    return PreparedHtml(nonce=nonce, body=body)
