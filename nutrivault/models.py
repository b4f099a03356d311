from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


def utc_now() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Practice staff member (dietitian, assistant, admin)"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    shares = relationship("DocumentShare", back_populates="creator")


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    shares = relationship("DocumentShare", back_populates="patient")


class Document(Base):
    """Uploaded file; file_path is relative to the uploads directory"""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)  # False = soft deleted
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    shares = relationship("DocumentShare", back_populates="document")


class DocumentShare(Base):
    """
    Public share link for a document addressed to a patient.

    Rows are never deleted: revoking sets is_active to False so the access
    logs keep pointing at a share.
    """

    __tablename__ = "document_shares"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Access restrictions
    password_hash = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    max_downloads = Column(Integer, nullable=True)  # None = unlimited
    download_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    notes = Column(Text, nullable=True)
    sent_via = Column(String(20), default="link", nullable=False)  # email, link
    last_accessed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    document = relationship("Document", back_populates="shares")
    patient = relationship("Patient", back_populates="shares")
    creator = relationship("User", back_populates="shares")
    access_logs = relationship(
        "DocumentAccessLog",
        back_populates="share",
        order_by="DocumentAccessLog.id.desc()",
    )

    @property
    def is_password_protected(self) -> bool:
        return bool(self.password_hash)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) > self.expires_at

    def has_reached_download_limit(self) -> bool:
        if self.max_downloads is None:
            return False
        return (self.download_count or 0) >= self.max_downloads

    def is_accessible(self, now: Optional[datetime] = None) -> bool:
        return bool(self.is_active) and not self.is_expired(now) and not self.has_reached_download_limit()


class DocumentAccessLog(Base):
    """Append-only audit row, one per view/download/verify attempt"""

    __tablename__ = "document_access_logs"

    id = Column(Integer, primary_key=True, index=True)
    document_share_id = Column(
        Integer, ForeignKey("document_shares.id"), nullable=False, index=True
    )
    action = Column(String(20), nullable=False, index=True)  # view, download, verify
    ip_address = Column(String(45), nullable=True)  # 45 chars fits IPv6
    user_agent = Column(String(500), nullable=True)
    success = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    share = relationship("DocumentShare", back_populates="access_logs")
