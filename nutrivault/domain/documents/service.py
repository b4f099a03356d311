"""Document share service - Business logic for staff share-link management"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ... import config
from ...models import DocumentShare, User
from ...security_utils import generate_share_token, hash_password_bcrypt, log_security_event
from .public_service import evaluate_access
from .repository import DocumentShareRepository
from .schemas import AccessLogResponse, ShareLinkCreate, ShareLinkUpdate, ShareResponse

logger = logging.getLogger(__name__)


def build_share_url(token: str) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}/shared/{token}"


def to_share_response(share: DocumentShare, include_logs: bool = False) -> ShareResponse:
    flags = evaluate_access(share)
    return ShareResponse(
        id=share.id,
        token=share.token,
        share_url=build_share_url(share.token),
        document_id=share.document_id,
        patient_id=share.patient_id,
        created_by=share.created_by,
        expires_at=share.expires_at,
        max_downloads=share.max_downloads,
        download_count=share.download_count,
        is_active=flags["is_active"],
        is_password_protected=share.is_password_protected,
        is_expired=flags["is_expired"],
        has_reached_limit=flags["has_reached_limit"],
        is_accessible=flags["is_accessible"],
        notes=share.notes,
        sent_via=share.sent_via,
        last_accessed_at=share.last_accessed_at,
        created_at=share.created_at,
        access_logs=[AccessLogResponse.model_validate(log) for log in share.access_logs]
        if include_logs
        else None,
    )


class DocumentShareService:
    """Service layer for creating, updating and revoking share links"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DocumentShareRepository()

    def _get_share(self, share_id: int) -> DocumentShare:
        share = self.repo.get_share_by_id(self.db, share_id)
        if not share:
            raise HTTPException(status_code=404, detail="Share not found")
        return share

    def _new_token(self) -> str:
        token = generate_share_token()
        while self.repo.token_exists(self.db, token):
            token = generate_share_token()
        return token

    def create_share_link(self, document_id: int, data: ShareLinkCreate, user: User) -> DocumentShare:
        """Create a public share link for a document"""
        document = self.repo.get_document(self.db, document_id)
        if not document or not document.is_active:
            raise HTTPException(status_code=404, detail="Document not found")

        patient = self.repo.get_patient(self.db, data.patient_id)
        if not patient:
            raise HTTPException(status_code=404, detail="Patient not found")

        share = self.repo.create_share(
            self.db,
            token=self._new_token(),
            document_id=document.id,
            patient_id=patient.id,
            created_by=user.id,
            password_hash=hash_password_bcrypt(data.password) if data.password else None,
            expires_at=data.expires_at,
            max_downloads=data.max_downloads,
            notes=data.notes,
            sent_via=data.sent_via,
        )
        logger.info(
            f"🔗 User {user.id} shared document {document.id} with patient {patient.id} "
            f"(share {share.id}, password={'yes' if share.password_hash else 'no'})"
        )
        return share

    def get_document_shares(self, document_id: int) -> list[DocumentShare]:
        """Sharing history of a document with access logs"""
        if not self.repo.get_document(self.db, document_id):
            raise HTTPException(status_code=404, detail="Document not found")
        return self.repo.get_document_shares(self.db, document_id)

    def get_patient_shares(self, patient_id: int) -> list[DocumentShare]:
        if not self.repo.get_patient(self.db, patient_id):
            raise HTTPException(status_code=404, detail="Patient not found")
        return self.repo.get_patient_shares(self.db, patient_id)

    def update_share(self, share_id: int, data: ShareLinkUpdate, user: User) -> DocumentShare:
        """Update share settings; only fields present in the request are applied"""
        share = self._get_share(share_id)
        fields = data.model_dump(exclude_unset=True)

        updates = {}
        if "is_active" in fields:
            if fields["is_active"] and not share.is_active:
                raise HTTPException(
                    status_code=400, detail="Revoked share links cannot be reactivated"
                )
            if fields["is_active"] is False:
                updates["is_active"] = False
        if "password" in fields:
            password = fields["password"]
            updates["password_hash"] = hash_password_bcrypt(password) if password else None
        for key in ("expires_at", "max_downloads", "notes"):
            if key in fields:
                updates[key] = fields[key]

        share = self.repo.update_share(self.db, share, **updates)
        logger.info(f"✏️ User {user.id} updated share {share.id}: {sorted(updates)}")
        if updates.get("is_active") is False:
            log_security_event("share_revoked", user_id=str(user.id), details={"share_id": share.id})
        return share

    def revoke_share(self, share_id: int, user: User) -> dict:
        """Deactivate a share; the row and its access logs are kept"""
        share = self._get_share(share_id)
        if share.is_active:
            self.repo.update_share(self.db, share, is_active=False)
            log_security_event("share_revoked", user_id=str(user.id), details={"share_id": share.id})
        return {"message": "Share link revoked successfully"}
