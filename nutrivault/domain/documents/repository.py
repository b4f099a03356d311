"""Document share repository - Database operations for share links and access logs"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ...models import Document, DocumentAccessLog, DocumentShare, Patient, utc_now


class DocumentShareRepository:
    """Repository for share link database operations"""

    @staticmethod
    def get_document(db: Session, document_id: int) -> Optional[Document]:
        return db.query(Document).filter(Document.id == document_id).first()

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    @staticmethod
    def get_share_by_token(db: Session, token: str) -> Optional[DocumentShare]:
        """Get a share with its document and patient loaded"""
        return (
            db.query(DocumentShare)
            .options(joinedload(DocumentShare.document), joinedload(DocumentShare.patient))
            .filter(DocumentShare.token == token)
            .first()
        )

    @staticmethod
    def get_share_by_id(db: Session, share_id: int) -> Optional[DocumentShare]:
        return db.query(DocumentShare).filter(DocumentShare.id == share_id).first()

    @staticmethod
    def token_exists(db: Session, token: str) -> bool:
        return db.query(DocumentShare.id).filter(DocumentShare.token == token).first() is not None

    @staticmethod
    def get_document_shares(db: Session, document_id: int) -> list[DocumentShare]:
        """Get every share of a document, newest first, with access logs"""
        return (
            db.query(DocumentShare)
            .options(joinedload(DocumentShare.access_logs))
            .filter(DocumentShare.document_id == document_id)
            .order_by(DocumentShare.created_at.desc(), DocumentShare.id.desc())
            .all()
        )

    @staticmethod
    def get_patient_shares(db: Session, patient_id: int) -> list[DocumentShare]:
        """Get every share sent to a patient, newest first"""
        return (
            db.query(DocumentShare)
            .filter(DocumentShare.patient_id == patient_id)
            .order_by(DocumentShare.created_at.desc(), DocumentShare.id.desc())
            .all()
        )

    @staticmethod
    def create_share(db: Session, **share_data) -> DocumentShare:
        share = DocumentShare(**share_data)
        db.add(share)
        db.commit()
        db.refresh(share)
        return share

    @staticmethod
    def update_share(db: Session, share: DocumentShare, **updates) -> DocumentShare:
        """Apply updates as given; None values are written, not skipped"""
        for key, value in updates.items():
            if hasattr(share, key):
                setattr(share, key, value)

        db.commit()
        db.refresh(share)
        return share

    @staticmethod
    def increment_download_count(db: Session, share: DocumentShare) -> bool:
        """
        Consume one download in a single conditional UPDATE.

        Returns False when the share stopped being accessible (revoked,
        expired or quota exhausted) between the access check and the update.
        """
        now = utc_now()
        updated = (
            db.query(DocumentShare)
            .filter(
                DocumentShare.id == share.id,
                DocumentShare.is_active.is_(True),
                or_(
                    DocumentShare.max_downloads.is_(None),
                    DocumentShare.download_count < DocumentShare.max_downloads,
                ),
                or_(DocumentShare.expires_at.is_(None), DocumentShare.expires_at > now),
            )
            .update(
                {
                    DocumentShare.download_count: DocumentShare.download_count + 1,
                    DocumentShare.last_accessed_at: now,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        db.refresh(share)
        return updated == 1

    @staticmethod
    def touch_share(db: Session, share: DocumentShare) -> None:
        share.last_accessed_at = utc_now()
        db.commit()

    @staticmethod
    def add_access_log(
        db: Session,
        share: DocumentShare,
        action: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
    ) -> DocumentAccessLog:
        log = DocumentAccessLog(
            document_share_id=share.id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
            success=success,
        )
        db.add(log)
        db.commit()
        return log

