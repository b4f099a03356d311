"""Document sharing schemas - Pydantic models for validation"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import utc_now

MIN_SHARE_PASSWORD_LENGTH = 4
SENT_VIA_CHOICES = ("email", "link")


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _validate_future(value: Optional[datetime]) -> Optional[datetime]:
    value = _to_naive_utc(value)
    if value is not None and value <= utc_now():
        raise ValueError("Expiration date must be in the future")
    return value


def _validate_max_downloads(value: Optional[int]) -> Optional[int]:
    if value is not None and value < 1:
        raise ValueError("max_downloads must be at least 1")
    return value


class ShareLinkCreate(BaseModel):
    """Schema for creating a public share link"""

    patient_id: int
    expires_at: Optional[datetime] = None
    password: Optional[str] = None
    max_downloads: Optional[int] = None
    notes: Optional[str] = None
    sent_via: str = "link"

    @field_validator("expires_at")
    @classmethod
    def validate_expires_at(cls, v):
        return _validate_future(v)

    @field_validator("max_downloads")
    @classmethod
    def validate_max_downloads(cls, v):
        return _validate_max_downloads(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if v is None or v == "":
            return None
        if len(v) < MIN_SHARE_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_SHARE_PASSWORD_LENGTH} characters")
        return v

    @field_validator("sent_via")
    @classmethod
    def validate_sent_via(cls, v):
        if v not in SENT_VIA_CHOICES:
            raise ValueError(f"sent_via must be one of: {', '.join(SENT_VIA_CHOICES)}")
        return v


class ShareLinkUpdate(BaseModel):
    """
    Schema for updating share settings.

    Only fields present in the request body are applied. An explicit null
    clears expires_at / max_downloads, and an empty password removes the
    password protection.
    """

    expires_at: Optional[datetime] = None
    password: Optional[str] = None
    max_downloads: Optional[int] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("expires_at")
    @classmethod
    def validate_expires_at(cls, v):
        return _validate_future(v)

    @field_validator("max_downloads")
    @classmethod
    def validate_max_downloads(cls, v):
        return _validate_max_downloads(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        if v and len(v) < MIN_SHARE_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_SHARE_PASSWORD_LENGTH} characters")
        return v


class AccessLogResponse(BaseModel):
    id: int
    action: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ShareResponse(BaseModel):
    """Schema for share link response (staff view)"""

    id: int
    token: str
    share_url: str
    document_id: int
    patient_id: int
    created_by: int
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    download_count: int
    is_active: bool
    is_password_protected: bool
    is_expired: bool
    has_reached_limit: bool
    is_accessible: bool
    notes: Optional[str] = None
    sent_via: str
    last_accessed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    access_logs: Optional[list[AccessLogResponse]] = None


class PasswordVerifyRequest(BaseModel):
    password: Optional[str] = None
