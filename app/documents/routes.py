from fastapi import APIRouter, Depends, status, UploadFile, File, Form
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
import logging
import uuid
import mimetypes
from pathlib import Path

from app.database import get_db
from app.models import AuditAction, Document, DocumentType, User, UserRole
from app.documents.schemas import DocumentResponse, DocumentShare, DocumentUpdate
from app.auth.dependencies import get_current_user
from app.constants import ALLOWED_DOCUMENT_TYPES, MAX_FILE_SIZE, SIGNED_URL_EXPIRY_SECONDS
from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.rate_limiter import upload_limiter
from app.services import storage
from app.services.audit_service import record_audit
from app.services.case_service import CaseService
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])


def get_file_info(file: UploadFile) -> dict:
    """Extract file information."""
    file_extension = Path(file.filename).suffix.lower()
    mime_type = file.content_type or mimetypes.guess_type(file.filename)[0] or "application/octet-stream"

    return {
        "original_name": file.filename,
        "file_extension": file_extension,
        "mime_type": mime_type,
    }


def validate_file(file: UploadFile) -> None:
    """Validate uploaded file."""
    if not file.filename:
        raise BadRequestError("No file provided")

    mime_type = file.content_type or mimetypes.guess_type(file.filename)[0]
    if mime_type not in ALLOWED_DOCUMENT_TYPES:
        raise BadRequestError("File type not allowed. Allowed types: PDF, DOC, DOCX, JPEG, PNG, WebP")


def can_read_document(document: Document, user: User) -> bool:
    if document.is_public or document.user_id == user.id or user.role == UserRole.ADMIN:
        return True
    return bool(document.shared_with) and user.id in document.shared_with


def can_manage_document(document: Document, user: User) -> bool:
    return document.user_id == user.id or user.role == UserRole.ADMIN


def get_document(db: Session, document_id: str) -> Document:
    document = db.query(Document).filter(Document.id == document_id, Document.deleted_at.is_(None)).first()
    if not document:
        raise NotFoundError("Document", document_id)
    return document


# =====================================================
# DOCUMENT CRUD OPERATIONS
# =====================================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    type: DocumentType = Form(DocumentType.GENERAL),
    description: Optional[str] = Form(None),
    case_id: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(upload_limiter),
):
    """Upload a document to storage, optionally attaching it to a case."""
    validate_file(file)
    if case_id:
        CaseService(db).get_case_for_user(case_id, current_user)

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise BadRequestError("File too large. Maximum size is 10MB")

    file_info = get_file_info(file)
    stored_name = f"{uuid.uuid4()}{file_info['file_extension']}"
    storage_path = f"{current_user.id}/{stored_name}"
    storage.upload_file(storage_path, content, file_info["mime_type"])

    document = Document(
        user_id=current_user.id,
        case_id=case_id,
        name=stored_name,
        original_name=file_info["original_name"],
        mime_type=file_info["mime_type"],
        size=len(content),
        type=type,
        storage_path=storage_path,
        storage_url=storage.get_public_url(storage_path),
        description=description,
        shared_with=[],
    )
    db.add(document)
    db.flush()

    if case_id:
        record_audit(
            db,
            AuditAction.DOCUMENT_ADDED,
            entity_type="Document",
            entity_id=document.id,
            user_id=current_user.id,
            case_id=case_id,
            details={"name": document.original_name, "size": document.size},
        )
    db.commit()
    db.refresh(document)

    logger.info(f"Document {document.id} uploaded by {current_user.id}")
    return success_response(DocumentResponse.model_validate(document), "Document uploaded successfully")


@router.get("/")
async def list_documents(
    type: Optional[DocumentType] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's documents."""
    query = db.query(Document).filter(Document.user_id == current_user.id, Document.deleted_at.is_(None))
    if type:
        query = query.filter(Document.type == type)

    documents = query.order_by(Document.created_at.desc()).all()
    return success_response([DocumentResponse.model_validate(d) for d in documents])


@router.get("/{document_id}")
async def get_document_detail(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    document = get_document(db, document_id)
    if not can_read_document(document, current_user):
        raise ForbiddenError("You do not have access to this document")
    return success_response(DocumentResponse.model_validate(document))


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Short-lived signed URL for the stored file."""
    document = get_document(db, document_id)
    if not can_read_document(document, current_user):
        raise ForbiddenError("You do not have access to this document")

    url = storage.create_signed_url(document.storage_path, expires_in=SIGNED_URL_EXPIRY_SECONDS)
    return success_response({
        "url": url,
        "expires_in": SIGNED_URL_EXPIRY_SECONDS,
        "file_name": document.original_name,
        "mime_type": document.mime_type,
    })


@router.put("/{document_id}")
async def update_document(
    document_id: str,
    document_update: DocumentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    document = get_document(db, document_id)
    if not can_manage_document(document, current_user):
        raise ForbiddenError("Not authorized to update this document")

    for field, value in document_update.dict(exclude_unset=True).items():
        setattr(document, field, value)
    db.commit()
    db.refresh(document)
    return success_response(DocumentResponse.model_validate(document), "Document updated successfully")


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete the row and remove the stored file."""
    document = get_document(db, document_id)
    if not can_manage_document(document, current_user):
        raise ForbiddenError("Not authorized to delete this document")

    storage.delete_file(document.storage_path)
    document.deleted_at = datetime.utcnow()
    if document.case_id:
        record_audit(
            db,
            AuditAction.DOCUMENT_REMOVED,
            entity_type="Document",
            entity_id=document.id,
            user_id=current_user.id,
            case_id=document.case_id,
            details={"name": document.original_name},
        )
    db.commit()

    logger.info(f"Document {document.id} deleted by {current_user.id}")
    return success_response(message="Document deleted successfully")


@router.post("/{document_id}/share")
async def share_document(
    document_id: str,
    share_data: DocumentShare,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    document = get_document(db, document_id)
    if document.user_id != current_user.id:
        raise ForbiddenError("Only the owner can share this document")

    shared = list(document.shared_with or [])
    for user_id in share_data.user_ids:
        if user_id not in shared and user_id != current_user.id:
            shared.append(user_id)
    # JSON columns only persist on reassignment
    document.shared_with = shared
    db.commit()
    db.refresh(document)
    return success_response(DocumentResponse.model_validate(document), "Document shared successfully")
