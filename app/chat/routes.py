import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user
from app.chat.socket import case_room, emit_threadsafe
from app.database import get_db
from app.models import Case, Lawyer, Message, MessageType, User, UserRole
from app.services.case_service import TERMINAL_CASE_STATUSES, CaseService
from app.services.chat_service import create_message, mark_messages_read, serialize_message
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


class MessageCreate(BaseModel):
    content: Optional[str] = Field(None, max_length=5000)
    type: MessageType = MessageType.TEXT
    attachment_url: Optional[str] = Field(None, max_length=500)


@router.get("/conversations")
def conversations(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    query = db.query(Case).options(
        joinedload(Case.client), joinedload(Case.lawyer).joinedload(Lawyer.user)
    ).filter(Case.status.notin_(TERMINAL_CASE_STATUSES))
    if current_user.role == UserRole.LAWYER:
        query = query.join(Lawyer, Case.lawyer_id == Lawyer.id).filter(Lawyer.user_id == current_user.id)
    else:
        query = query.filter(Case.client_id == current_user.id)
    cases = query.order_by(Case.updated_at.desc()).all()

    case_ids = [c.id for c in cases]
    unread = dict(
        db.query(Message.case_id, func.count(Message.id)).filter(
            Message.case_id.in_(case_ids),
            Message.sender_id != current_user.id,
            Message.is_read == False,
        ).group_by(Message.case_id).all()
    ) if case_ids else {}

    data = []
    for case in cases:
        last_message = db.query(Message).options(joinedload(Message.sender)).filter(
            Message.case_id == case.id
        ).order_by(Message.created_at.desc()).first()
        other = case.lawyer.user if case.client_id == current_user.id else case.client
        data.append({
            "case_id": case.id,
            "case_number": case.case_number,
            "title": case.title,
            "status": case.status,
            "participant": {"id": other.id, "name": other.full_name, "avatar": other.avatar},
            "last_message": serialize_message(last_message) if last_message else None,
            "unread_count": unread.get(case.id, 0),
        })

    # Conversations with recent activity first
    data.sort(key=lambda c: c["last_message"]["created_at"] if c["last_message"] else "", reverse=True)
    return success_response(data)


@router.get("/{case_id}/messages")
def list_messages(
    case_id: str,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    CaseService(db).get_case_for_chat(case_id, current_user)

    query = db.query(Message).options(joinedload(Message.sender)).filter(Message.case_id == case_id)
    total = query.count()
    messages = query.order_by(Message.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    messages.reverse()
    return paginated_response([serialize_message(m) for m in messages], total, pagination.page, pagination.limit)


@router.post("/{case_id}/messages", status_code=status.HTTP_201_CREATED)
def send_message(
    case_id: str,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    CaseService(db).get_case_for_chat(case_id, current_user)
    message = create_message(
        db,
        case_id=case_id,
        sender_id=current_user.id,
        content=message_data.content,
        message_type=message_data.type,
        attachment_url=message_data.attachment_url,
    )
    payload = serialize_message(message)
    emit_threadsafe("message_received", payload, case_room(case_id))
    return success_response(payload, "Message sent")


@router.put("/{case_id}/messages/read")
def mark_read(case_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    CaseService(db).get_case_for_chat(case_id, current_user)
    count = mark_messages_read(db, case_id, current_user.id)
    emit_threadsafe("messages_read", {"case_id": case_id, "user_id": current_user.id, "count": count}, case_room(case_id))
    return success_response({"count": count}, "Messages marked as read")
