"""
Public share-link access - token lookup, password gate and file dispatch

Nothing here requires authentication: the share token is the credential.
Every failure is raised as a ShareAccessError and rendered by the handler in
errors.py.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from sqlalchemy.orm import Session

from ...errors import ShareAccessError, ShareErrorKind
from ...models import Document, DocumentShare, utc_now
from ...rate_limiter import PasswordAttemptLimiter
from ...security_utils import log_security_event, mask_sensitive_data, verify_password_bcrypt
from ...storage import open_document, resolve_document_path
from .repository import DocumentShareRepository

logger = logging.getLogger(__name__)

PREVIEWABLE_MIME_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)

MSG_NOT_FOUND = "Share link not found"
MSG_NOT_ACCESSIBLE = "This share link is not accessible"
MSG_REVOKED = "This share link has been revoked"
MSG_EXPIRED = "This share link has expired"
MSG_LIMIT_REACHED = "Download limit reached for this share link"
MSG_INVALID_PASSWORD = "Invalid password"
MSG_PASSWORD_REQUIRED = "Password required"
MSG_TOO_MANY_ATTEMPTS = "Too many password attempts. Please try again later."


@dataclass
class RequestMetadata:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class DocumentStream:
    """An opened document ready to be streamed to the client"""

    file_name: str
    mime_type: str
    size: int
    handle: BinaryIO


def evaluate_access(share: DocumentShare) -> dict:
    """Accessibility flags of a share at the current instant"""
    now = utc_now()
    is_active = bool(share.is_active)
    is_expired = share.is_expired(now)
    has_reached_limit = share.has_reached_download_limit()
    return {
        "is_active": is_active,
        "is_expired": is_expired,
        "has_reached_limit": has_reached_limit,
        "is_accessible": share.is_accessible(now),
    }


def inaccessible_reason(flags: dict) -> str:
    """One message per inaccessible share; quota wins over expiry, expiry over revocation"""
    if flags["has_reached_limit"]:
        return MSG_LIMIT_REACHED
    if flags["is_expired"]:
        return MSG_EXPIRED
    if not flags["is_active"]:
        return MSG_REVOKED
    return MSG_NOT_ACCESSIBLE


class PublicShareService:
    """Service layer for the unauthenticated share-link endpoints"""

    def __init__(self, db: Session, limiter: PasswordAttemptLimiter):
        self.db = db
        self.repo = DocumentShareRepository()
        self.limiter = limiter

    # ------------------------------------------------------------------
    # Access evaluation
    # ------------------------------------------------------------------

    def _get_share(self, token: str) -> DocumentShare:
        share = self.repo.get_share_by_token(self.db, token)
        if not share:
            logger.info(f"🔍 Unknown share token {mask_sensitive_data(token)}")
            raise ShareAccessError(ShareErrorKind.NOT_FOUND, MSG_NOT_FOUND)
        return share

    def _ensure_accessible(self, share: DocumentShare) -> dict:
        flags = evaluate_access(share)
        if not flags["is_accessible"]:
            raise ShareAccessError(ShareErrorKind.FORBIDDEN, inaccessible_reason(flags))
        return flags

    def get_share_info(self, token: str, metadata: RequestMetadata) -> dict:
        """Share metadata plus accessibility flags; records a view"""
        share = self._get_share(token)
        flags = evaluate_access(share)

        self.repo.add_access_log(
            self.db, share, "view", metadata.ip_address, metadata.user_agent
        )

        document = share.document
        patient = share.patient
        return {
            "id": share.id,
            "expires_at": share.expires_at,
            "max_downloads": share.max_downloads,
            "download_count": share.download_count,
            "is_password_protected": share.is_password_protected,
            **flags,
            "created_at": share.created_at,
            "document": {
                "id": document.id,
                "file_name": document.file_name,
                "file_size": document.file_size,
                "mime_type": document.mime_type,
                "description": document.description,
            }
            if document
            else None,
            "patient": {
                "first_name": patient.first_name,
                "last_name": patient.last_name,
            }
            if patient
            else None,
        }

    # ------------------------------------------------------------------
    # Password gate
    # ------------------------------------------------------------------

    def _reject_if_throttled(self, ip: Optional[str]) -> None:
        if self.limiter.is_limited(ip):
            log_security_event("share_password_throttled", ip_address=ip)
            raise ShareAccessError(
                ShareErrorKind.RATE_LIMITED,
                MSG_TOO_MANY_ATTEMPTS,
                retry_after=self.limiter.retry_after(ip),
            )

    def _check_password(self, share: DocumentShare, password: str, metadata: RequestMetadata) -> None:
        valid = verify_password_bcrypt(password, share.password_hash)
        self.repo.add_access_log(
            self.db, share, "verify", metadata.ip_address, metadata.user_agent, success=valid
        )
        if not valid:
            log_security_event(
                "share_password_failed",
                ip_address=metadata.ip_address,
                details={"share_id": share.id, "token": mask_sensitive_data(share.token)},
            )
            raise ShareAccessError(ShareErrorKind.UNAUTHORIZED, MSG_INVALID_PASSWORD)

    def _password_gate(self, share: DocumentShare, password: str, metadata: RequestMetadata) -> None:
        self._reject_if_throttled(metadata.ip_address)
        self.limiter.record_attempt(metadata.ip_address)
        self._check_password(share, password, metadata)

    def verify_password(self, token: str, password: Optional[str], metadata: RequestMetadata) -> dict:
        """
        Check a password for a share.

        A missing share answers exactly like a wrong password so the endpoint
        cannot be used to probe for valid tokens.
        """
        self._reject_if_throttled(metadata.ip_address)

        if not password:
            raise ShareAccessError(ShareErrorKind.VALIDATION, "Password is required")

        self.limiter.record_attempt(metadata.ip_address)

        share = self.repo.get_share_by_token(self.db, token)
        if not share:
            raise ShareAccessError(ShareErrorKind.UNAUTHORIZED, MSG_INVALID_PASSWORD)

        if not share.is_password_protected:
            return {"valid": True, "message": "No password required"}

        self._check_password(share, password, metadata)
        logger.info(f"✅ Password verified for share {share.id}")
        return {"valid": True, "message": "Password verified"}

    # ------------------------------------------------------------------
    # Download / preview dispatch
    # ------------------------------------------------------------------

    def _authorize(self, token: str, password: Optional[str], metadata: RequestMetadata) -> DocumentShare:
        share = self._get_share(token)
        self._ensure_accessible(share)

        if share.is_password_protected:
            if not password:
                raise ShareAccessError(
                    ShareErrorKind.UNAUTHORIZED, MSG_PASSWORD_REQUIRED, requires_password=True
                )
            self._password_gate(share, password, metadata)

        return share

    @staticmethod
    def _active_document(share: DocumentShare) -> Document:
        document = share.document
        if not document or not document.is_active:
            raise ShareAccessError(ShareErrorKind.NOT_FOUND, "Document not found")
        return document

    @staticmethod
    def _open(document: Document, path: Path) -> DocumentStream:
        handle = open_document(path)
        return DocumentStream(
            file_name=document.file_name,
            mime_type=document.mime_type or "application/octet-stream",
            size=path.stat().st_size,
            handle=handle,
        )

    def prepare_download(
        self, token: str, password: Optional[str], metadata: RequestMetadata
    ) -> DocumentStream:
        """Run every gate, consume one download and open the file"""
        share = self._authorize(token, password, metadata)
        document = self._active_document(share)
        stream = self._open(document, resolve_document_path(document.file_path))

        try:
            consumed = self.repo.increment_download_count(self.db, share)
            if consumed:
                self.repo.add_access_log(
                    self.db, share, "download", metadata.ip_address, metadata.user_agent
                )
        except Exception:
            stream.handle.close()
            raise

        if not consumed:
            stream.handle.close()
            # Lost a race against another download, a revoke or the clock
            flags = evaluate_access(share)
            logger.warning(f"⚠️ Download quota check failed at update time for share {share.id}")
            raise ShareAccessError(ShareErrorKind.FORBIDDEN, inaccessible_reason(flags))

        logger.info(
            f"📥 Share {share.id} downloaded ({share.download_count}/{share.max_downloads or '∞'})"
        )
        return stream

    def prepare_preview(
        self, token: str, password: Optional[str], metadata: RequestMetadata
    ) -> DocumentStream:
        """Same gates as download, restricted MIME types, counter untouched"""
        share = self._authorize(token, password, metadata)
        document = self._active_document(share)

        if document.mime_type not in PREVIEWABLE_MIME_TYPES:
            raise ShareAccessError(
                ShareErrorKind.UNSUPPORTED_MEDIA, "Preview not available for this file type"
            )

        stream = self._open(document, resolve_document_path(document.file_path))
        try:
            self.repo.touch_share(self.db, share)
            self.repo.add_access_log(self.db, share, "view", metadata.ip_address, metadata.user_agent)
        except Exception:
            stream.handle.close()
            raise
        return stream
