"""Public share-link router - no authentication, the token is the credential"""

import logging
from typing import Annotated, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import PasswordAttemptLimiter, get_client_ip, get_password_limiter
from ...security_utils import SHARE_TOKEN_PATTERN
from ...storage import iter_file
from .public_service import DocumentStream, PublicShareService, RequestMetadata
from .schemas import PasswordVerifyRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/documents", tags=["Public Documents"])

TokenPath = Annotated[str, Path(pattern=SHARE_TOKEN_PATTERN, description="64-character hex share token")]


def get_public_share_service(
    db: Session = Depends(get_db),
    limiter: PasswordAttemptLimiter = Depends(get_password_limiter),
) -> PublicShareService:
    return PublicShareService(db, limiter)


def get_request_metadata(request: Request) -> RequestMetadata:
    return RequestMetadata(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def content_disposition(disposition: str, file_name: str) -> str:
    """Header value with an ASCII fallback name and the RFC 5987 UTF-8 name"""
    fallback = file_name.encode("ascii", "replace").decode("ascii").replace('"', "").replace("?", "_")
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name)}"


def stream_response(stream: DocumentStream, disposition: str) -> StreamingResponse:
    return StreamingResponse(
        iter_file(stream.handle),
        media_type=stream.mime_type,
        headers={
            "Content-Disposition": content_disposition(disposition, stream.file_name),
            "Content-Length": str(stream.size),
        },
    )


@router.get("/{token}")
def get_share_info(
    token: TokenPath,
    metadata: RequestMetadata = Depends(get_request_metadata),
    service: PublicShareService = Depends(get_public_share_service),
):
    """Get share metadata and accessibility flags"""
    return {"success": True, "data": service.get_share_info(token, metadata)}


@router.post("/{token}/verify")
def verify_password(
    token: TokenPath,
    data: Optional[PasswordVerifyRequest] = None,
    metadata: RequestMetadata = Depends(get_request_metadata),
    service: PublicShareService = Depends(get_public_share_service),
):
    """Verify the password of a protected share"""
    password = data.password if data else None
    return {"success": True, "data": service.verify_password(token, password, metadata)}


@router.get("/{token}/download")
def download_document(
    token: TokenPath,
    password: Optional[str] = Query(None),
    metadata: RequestMetadata = Depends(get_request_metadata),
    service: PublicShareService = Depends(get_public_share_service),
):
    """Download the shared document as an attachment"""
    stream = service.prepare_download(token, password, metadata)
    return stream_response(stream, "attachment")


@router.get("/{token}/preview")
def preview_document(
    token: TokenPath,
    password: Optional[str] = Query(None),
    metadata: RequestMetadata = Depends(get_request_metadata),
    service: PublicShareService = Depends(get_public_share_service),
):
    """Display a PDF or image inline without consuming a download"""
    stream = service.prepare_preview(token, password, metadata)
    return stream_response(stream, "inline")
