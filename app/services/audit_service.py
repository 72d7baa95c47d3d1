import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models import AuditAction, AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    action: AuditAction,
    entity_type: str,
    entity_id: str,
    user_id: str,
    case_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Add an audit entry to the session. The caller owns the commit."""
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        case_id=case_id,
        details=details,
    )
    db.add(entry)
    logger.debug(f"Audit {action.value} on {entity_type}:{entity_id} by {user_id}")
    return entry


def serialize_audit(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "case_id": entry.case_id,
        "details": entry.details,
        "created_at": entry.created_at,
        "user": {
            "id": entry.user.id,
            "name": entry.user.full_name,
            "role": entry.user.role,
        } if entry.user else None,
    }
