"""Rate limiting, CORS and security headers.

The limiter is a single-process, in-memory slowapi limiter keyed on the
client IP. Counts are not shared between workers.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from coral_api.backend.api.errors import error_body

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self'; "
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com; "
    "font-src 'self' https://fonts.gstatic.com; "
    "img-src 'self' data: https:; "
    "connect-src 'self' https://coral-demographics-api.onrender.com https://*.tile.openstreetmap.org"
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}


def client_ip(request: Request) -> str:
    """First address in ``X-Forwarded-For``, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response


def install_rate_limiter(app: FastAPI, rate_cfg: dict[str, Any]) -> Limiter:
    """
    Attach a per-IP limiter covering every API route.

    Args:
        app: Application to protect
        rate_cfg: ``rate_limit`` config section (``enabled``, ``max_requests``,
            ``window_seconds``)

    Returns:
        The limiter (also stored on ``app.state.limiter``)
    """
    max_requests = int(rate_cfg.get("max_requests", 100))
    window = int(rate_cfg.get("window_seconds", 60))
    limiter = Limiter(
        key_func=client_ip,
        application_limits=[f"{max_requests}/{window} seconds"],
        storage_uri="memory://",
        enabled=bool(rate_cfg.get("enabled", True)),
    )

    def _rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning("Rate limit exceeded for %s on %s", client_ip(request), request.url.path)
        body = error_body(
            "RATE_LIMIT_EXCEEDED",
            f"Rate limit exceeded. Maximum {max_requests} requests per {window} seconds.",
        )
        body.pop("details")
        body["retry_after"] = window
        return JSONResponse(status_code=429, content=body, headers={"Retry-After": str(window)})

    app.state.limiter = limiter
    # Sync handler: the middleware calls it without awaiting.
    app.add_exception_handler(RateLimitExceeded, _rate_limited)
    app.add_middleware(SlowAPIMiddleware)
    return limiter


def install_cors(app: FastAPI, origins: list[str], production: bool) -> None:
    """Explicit origins in production when configured, any origin otherwise."""
    restrict = production and bool(origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(origins) if restrict else ["*"],
        allow_credentials=restrict,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )
