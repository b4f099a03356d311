"""Document share router - staff endpoints for managing share links"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import ShareLinkCreate, ShareLinkUpdate, ShareResponse
from .service import DocumentShareService, to_share_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Document Sharing"])


def get_share_service(db: Session = Depends(get_db)) -> DocumentShareService:
    """Dependency injection for DocumentShareService"""
    return DocumentShareService(db)


@router.post("/{document_id}/share-links", response_model=ShareResponse, status_code=201)
def create_share_link(
    document_id: int,
    data: ShareLinkCreate,
    current_user: User = Depends(get_current_user),
    service: DocumentShareService = Depends(get_share_service),
):
    """Create a public share link for a document"""
    share = service.create_share_link(document_id, data, current_user)
    return to_share_response(share)


@router.get("/{document_id}/shares", response_model=list[ShareResponse])
def get_document_shares(
    document_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentShareService = Depends(get_share_service),
):
    """Get the sharing history of a document, with access logs"""
    shares = service.get_document_shares(document_id)
    return [to_share_response(s, include_logs=True) for s in shares]


@router.get("/patient/{patient_id}/shares", response_model=list[ShareResponse])
def get_patient_shares(
    patient_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentShareService = Depends(get_share_service),
):
    """Get the share links sent to a patient"""
    return [to_share_response(s) for s in service.get_patient_shares(patient_id)]


@router.patch("/shares/{share_id}", response_model=ShareResponse)
def update_share(
    share_id: int,
    data: ShareLinkUpdate,
    current_user: User = Depends(get_current_user),
    service: DocumentShareService = Depends(get_share_service),
):
    """Update share settings"""
    share = service.update_share(share_id, data, current_user)
    return to_share_response(share)


@router.delete("/shares/{share_id}")
def revoke_share(
    share_id: int,
    current_user: User = Depends(get_current_user),
    service: DocumentShareService = Depends(get_share_service),
):
    """Revoke a share link"""
    return service.revoke_share(share_id, current_user)
