"""FastAPI application that serves the whitelisted site files."""
from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from secure_site.config import Settings
from secure_site.errors import (
    MethodNotAllowed,
    NotFound,
    PathRejected,
    RateLimitExceeded,
    ReadFailure,
    RejectionReason,
    SiteError,
)
from secure_site.mime import resolve_content_type
from secure_site.nonce import build_csp, prepare_html
from secure_site.paths import PathValidator
from secure_site.rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

ALLOWED_METHODS = ("GET", "POST", "OPTIONS")

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Permissions-Policy": "geolocation=(self), camera=(), microphone=(), payment=()",
}
HSTS = "max-age=31536000; includeSubDomains; preload"

HTML_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
SCRIPT_MAX_AGE = 3600
ASSET_MAX_AGE = 86400


@dataclass
class SiteContext:
    """Process-wide state shared by every request."""

    settings: Settings
    rate_limiter: RateLimiter
    validator: PathValidator
    started_at: float = field(default_factory=time.monotonic)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _log_rejection(request: Request, exc: SiteError) -> None:
    extra = {
        "client_ip": _client_ip(request),
        "method": request.method,
        "path": request.scope["path"],
        "status": exc.status_code,
        "reason": exc.log_reason,
    }
    if isinstance(exc, ReadFailure):
        LOGGER.error("read failure", exc_info=exc.__cause__, extra=extra)
    elif isinstance(exc, NotFound):
        LOGGER.info("file not found", extra=extra)
    else:
        LOGGER.warning("request rejected", extra=extra)


def _error_response(request: Request, exc: SiteError) -> Response:
    if exc.status_code in (404, 500):
        return templates.TemplateResponse(
            request,
            "error.html",
            {"status_code": exc.status_code, "message": exc.public_message},
            status_code=exc.status_code,
        )
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


def _apply_headers(response: Response, origin: Optional[str], settings: Settings) -> None:
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    # HTML responses already carry their nonce-bearing policy.
    response.headers.setdefault("Content-Security-Policy", build_csp())
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = HSTS

    if origin and origin in settings.allowed_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Vary"] = "Origin"
    response.headers["Access-Control-Allow-Methods"] = ", ".join(ALLOWED_METHODS)
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Requested-With"


def _etag_matches(header: Optional[str], etag: str) -> bool:
    if not header:
        return False
    candidates = [value.strip() for value in header.split(",")]
    return "*" in candidates or any(
        value.removeprefix("W/") == etag for value in candidates
    )


async def _sweep_idle_clients(limiter: RateLimiter, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = limiter.sweep()
        if removed:
            LOGGER.debug("swept %d idle clients", removed)


def create_app(settings: Settings, rate_limiter: Optional[RateLimiter] = None) -> FastAPI:
    """Build the site application around an explicit request context."""

    context = SiteContext(
        settings=settings,
        rate_limiter=rate_limiter
        or RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds),
        validator=PathValidator(
            settings.document_root,
            settings.allowed_files,
            settings.asset_prefixes,
            index_file=settings.index_file,
        ),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(
            _sweep_idle_clients(context.rate_limiter, settings.rate_limit_sweep_seconds)
        )
        LOGGER.info(
            "serving %s on %s:%d (%s)",
            settings.document_root,
            settings.host,
            settings.port,
            settings.environment,
        )
        try:
            yield
        finally:
            LOGGER.info("shutting down")
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(
        title="TyreHero secure site server",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.site = context

    @app.middleware("http")
    async def dispatch(request: Request, call_next):  # type: ignore[override]
        client_ip = _client_ip(request)
        LOGGER.info(
            "request",
            extra={
                "client_ip": client_ip,
                "method": request.method,
                "path": request.scope["path"],
                "user_agent": request.headers.get("user-agent"),
            },
        )

        rejection: Optional[SiteError] = None
        if not context.rate_limiter.admit(client_ip):
            rejection = RateLimitExceeded()
        elif request.method not in ALLOWED_METHODS:
            rejection = MethodNotAllowed()

        if rejection is not None:
            _log_rejection(request, rejection)
            response = _error_response(request, rejection)
        elif request.method == "OPTIONS":
            response = Response(status_code=200)
        else:
            try:
                response = await call_next(request)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Unhandled exception", extra={"client_ip": client_ip})
                raise exc

        _apply_headers(response, request.headers.get("origin"), settings)
        return response

    @app.exception_handler(SiteError)
    async def site_error_handler(request: Request, exc: SiteError) -> Response:
        _log_rejection(request, exc)
        return _error_response(request, exc)

    @app.get("/health")
    async def health() -> dict:
        """Report liveness for deployment probes."""

        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - context.started_at, 3),
            "pid": os.getpid(),
        }

    @app.api_route("/{requested:path}", methods=["GET", "POST"])
    async def serve(request: Request, requested: str) -> Response:
        """Serve an allow-listed file from the document root."""

        file_path = context.validator.validate(request.scope["path"])

        if not await run_in_threadpool(file_path.is_file):
            raise NotFound()

        content_type = resolve_content_type(file_path.suffix)
        if content_type is None:
            raise PathRejected(RejectionReason.BAD_EXTENSION)

        try:
            data = await run_in_threadpool(file_path.read_bytes)
        except OSError as exc:
            raise ReadFailure() from exc

        if content_type == "text/html":
            prepared = prepare_html(data)
            headers = dict(HTML_CACHE_HEADERS)
            headers["Content-Security-Policy"] = build_csp(prepared.nonce)
            return Response(prepared.body, media_type=content_type, headers=headers)

        etag = f'"{hashlib.md5(data).hexdigest()}"'
        max_age = SCRIPT_MAX_AGE if file_path.suffix.lower() in (".js", ".css") else ASSET_MAX_AGE
        headers = {"ETag": etag, "Cache-Control": f"public, max-age={max_age}"}
        if _etag_matches(request.headers.get("if-none-match"), etag):
            return Response(status_code=304, headers=headers)
        return Response(data, media_type=content_type, headers=headers)

    return app
