"""
Security Headers Middleware for FastAPI

Adds security headers to all responses:
- X-Frame-Options: SAMEORIGIN everywhere except inline previews
- frame-ancestors: only the frontend may embed previews
- X-Content-Type-Options: Prevents MIME type sniffing
- Referrer-Policy: Keeps share tokens out of third-party referrers
- Content-Security-Policy: Restricts resource loading
- Strict-Transport-Security: Enforces HTTPS (production only)
- Permissions-Policy: Controls browser features
- Cache-Control: Prevents caching of documents and share metadata
"""

import logging
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from . import config

logger = logging.getLogger(__name__)


def get_csp_policy() -> str:
    """
    Content-Security-Policy for an API serving JSON and document bytes.

    frame-ancestors lists the frontend so inline previews can be embedded.
    """
    directives = [
        "default-src 'none'",
        f"frame-ancestors 'self' {config.FRONTEND_URL}",
        "img-src 'self' data: blob:",
        "object-src 'self'",
        "base-uri 'none'",
        "form-action 'none'",
    ]
    return "; ".join(directives)


def get_permissions_policy() -> str:
    features = [
        "accelerometer=()",
        "camera=()",
        "geolocation=()",
        "gyroscope=()",
        "magnetometer=()",
        "microphone=()",
        "payment=()",
        "usb=()",
        "interest-cohort=()",  # Disable FLoC tracking
    ]
    return ", ".join(features)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware that adds security headers to all responses"""

    def __init__(self, app, exclude_paths: Optional[list[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or []

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        path = request.url.path
        if any(path.startswith(excluded) for excluded in self.exclude_paths):
            return response

        # Inline previews are framed by the frontend origin; frame-ancestors governs them
        if not path.endswith("/preview"):
            response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Share URLs carry the token; never leak it through Referer
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = get_csp_policy()

        if config.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        response.headers["Permissions-Policy"] = get_permissions_policy()

        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"

        return response
