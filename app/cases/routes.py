from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session, joinedload
from typing import Optional
from datetime import datetime
import logging

from app.database import get_db
from app.models import (
    AuditAction, AuditLog, Booking, BookingStatus, Case, CasePriority, CaseStatus, Document, Lawyer, Message,
    MessageType, NotificationType, User, UserRole,
)
from app.cases.schemas import CaseCreate, CaseReject, CaseUpdate
from app.chat.socket import case_room, emit_threadsafe
from app.auth.dependencies import get_current_user
from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.logging_config import log_business
from app.services.audit_service import record_audit, serialize_audit
from app.services.case_service import MEETING_CASE_STATUSES, CaseService
from app.services.chat_service import create_message, serialize_message
from app.services.notification_service import notify_in_background
from app.utils.identifiers import generate_case_number, meeting_link_for_case
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cases", tags=["Cases"])


def serialize_case(case: Case) -> dict:
    lawyer = case.lawyer
    return {
        "id": case.id,
        "case_number": case.case_number,
        "title": case.title,
        "description": case.description,
        "status": case.status,
        "priority": case.priority,
        "client_id": case.client_id,
        "lawyer_id": case.lawyer_id,
        "booking_id": case.booking_id,
        "created_at": case.created_at,
        "updated_at": case.updated_at,
        "closed_at": case.closed_at,
        "client": {
            "id": case.client.id,
            "name": case.client.full_name,
            "email": case.client.email,
            "avatar": case.client.avatar,
        } if case.client else None,
        "lawyer": {
            "id": lawyer.id,
            "user_id": lawyer.user_id,
            "name": lawyer.user.full_name,
            "avatar": lawyer.user.avatar,
        } if lawyer else None,
    }


def _notify_client(background_tasks: BackgroundTasks, case: Case, title: str, message: str, **metadata):
    background_tasks.add_task(
        notify_in_background,
        user_id=case.client_id,
        type=NotificationType.CASE,
        title=title,
        message=message,
        action_url=f"/user/cases/{case.id}",
        action_label="View Case",
        metadata={"case_id": case.id, **metadata},
    )


# =====================================================
# CASE CRUD OPERATIONS
# =====================================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_case(
    case_data: CaseCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a case: users request one from a completed booking, lawyers open one for a client."""
    if current_user.role == UserRole.USER:
        if not case_data.booking_id:
            raise BadRequestError("booking_id is required. Select a completed consultation.")
        booking = db.query(Booking).options(joinedload(Booking.lawyer)).filter(
            Booking.id == case_data.booking_id
        ).first()
        if not booking or booking.client_id != current_user.id:
            raise BadRequestError("Invalid booking: this booking does not belong to you")
        if booking.status != BookingStatus.COMPLETED:
            raise BadRequestError("You can only request a case after a completed consultation")
        if db.query(Case.id).filter(Case.booking_id == booking.id).first():
            raise BadRequestError("A case already exists for this booking")

        client_id = current_user.id
        lawyer_id = booking.lawyer_id
        case_status = CaseStatus.REQUESTED

    elif current_user.role == UserRole.LAWYER:
        if not case_data.client_id:
            raise BadRequestError("client_id is required when a lawyer creates a case")
        lawyer = db.query(Lawyer).filter(Lawyer.user_id == current_user.id).first()
        if not lawyer:
            raise ForbiddenError("Lawyer profile not found")
        if not db.query(User.id).filter(User.id == case_data.client_id).first():
            raise NotFoundError("Client", case_data.client_id)
        if case_data.booking_id:
            booking = db.query(Booking).filter(Booking.id == case_data.booking_id).first()
            if not booking or booking.lawyer_id != lawyer.id or booking.client_id != case_data.client_id:
                raise BadRequestError("Invalid booking reference")

        client_id = case_data.client_id
        lawyer_id = lawyer.id
        case_status = CaseStatus.OPEN

    else:
        raise ForbiddenError("Only lawyers or users can create cases")

    db_case = Case(
        case_number=generate_case_number(),
        title=case_data.title,
        description=case_data.description.strip() if case_data.description else None,
        priority=case_data.priority,
        status=case_status,
        client_id=client_id,
        lawyer_id=lawyer_id,
        booking_id=case_data.booking_id,
    )
    db.add(db_case)
    db.flush()
    record_audit(
        db,
        AuditAction.CREATE,
        entity_type="Case",
        entity_id=db_case.id,
        user_id=current_user.id,
        case_id=db_case.id,
        details={"title": db_case.title, "priority": db_case.priority.value, "status": case_status.value},
    )
    db.commit()

    case = CaseService(db).get_case(db_case.id)
    if case_status == CaseStatus.REQUESTED:
        background_tasks.add_task(
            notify_in_background,
            user_id=case.lawyer.user_id,
            type=NotificationType.CASE,
            title="New Case Request",
            message=f'{current_user.full_name} has requested a case: "{case.title}"',
            action_url="/lawyer/cases",
            action_label="Review Request",
            metadata={"case_id": case.id},
        )
        message = "Case request submitted, awaiting lawyer approval"
    else:
        _notify_client(background_tasks, case, "New Case Opened", f'Your lawyer has opened a case: "{case.title}"')
        message = "Case created successfully"

    log_business("CASE_CREATED", case_id=case.id, lawyer_id=lawyer_id, client_id=client_id, status=case_status.value)
    return success_response(serialize_case(case), message)


@router.get("/")
async def list_cases(
    status: Optional[CaseStatus] = None,
    priority: Optional[CasePriority] = None,
    search: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List cases with filtering and pagination."""
    cases, total = CaseService(db).list_cases(
        current_user, status=status, priority=priority, search=search,
        skip=pagination.skip, limit=pagination.limit,
    )
    return paginated_response([serialize_case(c) for c in cases], total, pagination.page, pagination.limit)


@router.put("/{case_id}/approve")
async def approve_case(
    case_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Lawyer accepts a requested case (REQUESTED -> OPEN)."""
    case = CaseService(db).get_case_for_management(case_id, current_user)
    if case.status != CaseStatus.REQUESTED:
        raise BadRequestError(
            f'Cannot approve a case with status "{case.status.value}". Only REQUESTED cases can be approved.'
        )

    case.status = CaseStatus.OPEN
    record_audit(
        db, AuditAction.STATUS_CHANGE, "Case", case.id, current_user.id, case_id=case.id,
        details={"status": {"from": CaseStatus.REQUESTED.value, "to": CaseStatus.OPEN.value}},
    )
    db.commit()

    _notify_client(
        background_tasks, case, "Case Request Approved", f'Your case "{case.title}" has been approved by the lawyer.'
    )
    log_business("CASE_APPROVED", case_id=case.id)
    db.refresh(case)
    return success_response(serialize_case(case), "Case approved successfully")


@router.put("/{case_id}/reject")
async def reject_case(
    case_id: str,
    payload: CaseReject,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Lawyer declines a requested case (REQUESTED -> REJECTED)."""
    case = CaseService(db).get_case_for_management(case_id, current_user)
    if case.status != CaseStatus.REQUESTED:
        raise BadRequestError(
            f'Cannot reject a case with status "{case.status.value}". Only REQUESTED cases can be rejected.'
        )

    case.status = CaseStatus.REJECTED
    case.closed_at = datetime.utcnow()
    record_audit(
        db, AuditAction.STATUS_CHANGE, "Case", case.id, current_user.id, case_id=case.id,
        details={
            "status": {"from": CaseStatus.REQUESTED.value, "to": CaseStatus.REJECTED.value},
            "reason": payload.reason,
        },
    )
    db.commit()

    if payload.reason:
        message = f'Your case "{case.title}" has been declined. Reason: {payload.reason}'
    else:
        message = f'Your case "{case.title}" has been declined by the lawyer.'
    _notify_client(background_tasks, case, "Case Request Declined", message, reason=payload.reason)

    log_business("CASE_REJECTED", case_id=case.id, reason=payload.reason)
    db.refresh(case)
    return success_response(serialize_case(case), "Case rejected")


@router.get("/{case_id}")
async def get_case(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Case detail with recent messages, documents and related counts."""
    service = CaseService(db)
    case = service.get_case_for_user(case_id, current_user)

    messages = db.query(Message).options(joinedload(Message.sender)).filter(
        Message.case_id == case_id
    ).order_by(Message.created_at.desc()).limit(20).all()
    documents = db.query(Document).filter(
        Document.case_id == case_id, Document.deleted_at.is_(None)
    ).order_by(Document.created_at.desc()).all()

    data = serialize_case(case)
    data["booking"] = {
        "id": case.booking.id,
        "booking_number": case.booking.booking_number,
        "scheduled_date": case.booking.scheduled_date,
        "status": case.booking.status,
    } if case.booking else None
    data["messages"] = [serialize_message(m) for m in messages]
    data["documents"] = [
        {
            "id": d.id,
            "name": d.name,
            "original_name": d.original_name,
            "type": d.type,
            "mime_type": d.mime_type,
            "size": d.size,
            "created_at": d.created_at,
        }
        for d in documents
    ]
    data["counts"] = service.get_case_counts(case_id)
    return success_response(data)


@router.put("/{case_id}")
async def update_case(
    case_id: str,
    case_update: CaseUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update a case (assigned lawyer or admin)."""
    case = CaseService(db).get_case_for_management(case_id, current_user)

    changes = {}
    update_data = case_update.dict(exclude_unset=True)
    new_status = update_data.pop("status", None)
    if new_status and new_status != case.status:
        changes["status"] = {"from": case.status.value, "to": new_status.value}
        case.status = new_status
        if new_status in (CaseStatus.CLOSED, CaseStatus.RESOLVED):
            case.closed_at = datetime.utcnow()
    new_priority = update_data.pop("priority", None)
    if new_priority and new_priority != case.priority:
        changes["priority"] = {"from": case.priority.value, "to": new_priority.value}
        case.priority = new_priority
    for field, value in update_data.items():
        if field == "title" and not value:
            continue
        changes[field] = value
        setattr(case, field, value)

    record_audit(
        db,
        AuditAction.STATUS_CHANGE if "status" in changes else AuditAction.UPDATE,
        entity_type="Case",
        entity_id=case.id,
        user_id=current_user.id,
        case_id=case.id,
        details=changes,
    )
    db.commit()
    db.refresh(case)
    return success_response(serialize_case(case), "Case updated successfully")


@router.get("/{case_id}/history")
async def case_history(
    case_id: str,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Audit trail for a case, newest first."""
    CaseService(db).get_case_for_user(case_id, current_user)

    query = db.query(AuditLog).options(joinedload(AuditLog.user)).filter(AuditLog.case_id == case_id)
    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_audit(log) for log in logs], total, pagination.page, pagination.limit)


@router.post("/{case_id}/meeting")
async def start_meeting(
    case_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Post a video meeting link into the case chat and tell the client."""
    case = CaseService(db).get_case_for_management(case_id, current_user)
    if case.status not in MEETING_CASE_STATUSES:
        raise BadRequestError(f'Cannot start a meeting for a case with status "{case.status.value}".')

    link = meeting_link_for_case(case.id)
    message = create_message(
        db,
        case_id=case.id,
        sender_id=current_user.id,
        content=f"I have started a video meeting. Please join here:\n{link}",
        message_type=MessageType.SYSTEM,
        audit=False,
    )

    emit_threadsafe("message_received", serialize_message(message), case_room(case.id))
    _notify_client(
        background_tasks, case, "Video Meeting Started",
        f'Your lawyer has started a video meeting for case "{case.title}".', link=link,
    )

    log_business("CASE_MEETING_STARTED", case_id=case.id, lawyer_id=case.lawyer_id)
    return success_response({"link": link}, "Meeting started and client notified")
