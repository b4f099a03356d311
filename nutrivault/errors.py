"""
Public share-link errors

Every failure on the public document routes is raised as a ShareAccessError
tagged with a ShareErrorKind. The exception handler registered in main.py
switches on the kind to pick the HTTP status and renders the
{"success": false, "error": ...} payload the frontend expects.
"""

import enum
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ShareErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED_MEDIA = "unsupported_media"
    STORAGE = "storage"


STATUS_BY_KIND = {
    ShareErrorKind.NOT_FOUND: 404,
    ShareErrorKind.VALIDATION: 400,
    ShareErrorKind.FORBIDDEN: 403,
    ShareErrorKind.UNAUTHORIZED: 401,
    ShareErrorKind.RATE_LIMITED: 429,
    ShareErrorKind.UNSUPPORTED_MEDIA: 400,
    ShareErrorKind.STORAGE: 500,
}


class ShareAccessError(Exception):
    """Raised by the share access flow; rendered as JSON at the request boundary"""

    def __init__(
        self,
        kind: ShareErrorKind,
        message: str,
        requires_password: bool = False,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.requires_password = requires_password
        self.retry_after = retry_after

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


async def share_access_error_handler(request: Request, exc: ShareAccessError) -> JSONResponse:
    content = {"success": False, "error": exc.message}
    if exc.requires_password:
        content["requires_password"] = True

    headers = None
    if exc.kind == ShareErrorKind.RATE_LIMITED and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}

    if exc.kind == ShareErrorKind.STORAGE:
        logger.error(f"❌ {request.method} {request.url.path} - {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} - {exc.status_code} {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)
