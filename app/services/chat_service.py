from datetime import datetime
from typing import Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session, joinedload

from app.errors import BadRequestError
from app.models import AuditAction, Message, MessageType
from app.services.audit_service import record_audit


def create_message(
    db: Session,
    case_id: str,
    sender_id: str,
    content: Optional[str],
    message_type: MessageType = MessageType.TEXT,
    attachment_url: Optional[str] = None,
    audit: bool = True,
) -> Message:
    """Persist a chat message (and its MESSAGE_SENT audit entry) and commit."""
    content = (content or "").strip()
    if not content and message_type == MessageType.TEXT:
        raise BadRequestError("Message content is required")

    message = Message(
        case_id=case_id,
        sender_id=sender_id,
        content=content,
        type=message_type,
        attachment_url=attachment_url,
    )
    db.add(message)
    db.flush()

    if audit:
        record_audit(
            db,
            AuditAction.MESSAGE_SENT,
            entity_type="Message",
            entity_id=message.id,
            user_id=sender_id,
            case_id=case_id,
            details={"type": message_type.value},
        )

    db.commit()
    return db.query(Message).options(joinedload(Message.sender)).filter(Message.id == message.id).first()


def mark_messages_read(db: Session, case_id: str, user_id: str) -> int:
    """Mark every unread message from the other party as read; returns how many changed."""
    count = db.query(Message).filter(
        Message.case_id == case_id,
        Message.sender_id != user_id,
        Message.is_read == False,
    ).update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()
    return count


def serialize_message(message: Message) -> dict:
    sender = message.sender
    return jsonable_encoder({
        "id": message.id,
        "case_id": message.case_id,
        "content": message.content,
        "type": message.type,
        "attachment_url": message.attachment_url,
        "is_read": message.is_read,
        "read_at": message.read_at,
        "created_at": message.created_at,
        "sender": {
            "id": sender.id,
            "name": sender.full_name,
            "avatar": sender.avatar,
            "role": sender.role,
        } if sender else None,
    })
