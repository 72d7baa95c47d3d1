from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user, require_admin
from app.database import get_db
from app.models import AuditLog, Case, User, UserRole
from app.services.audit_service import serialize_audit
from app.services.case_service import CaseService
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("/recent")
def recent_activity(
    limit: int = Query(20),
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    limit = min(max(limit, 1), 100)
    logs = db.query(AuditLog).options(joinedload(AuditLog.user)).order_by(AuditLog.created_at.desc()).limit(limit).all()
    return success_response([serialize_audit(log) for log in logs])


@router.get("/{entity_type}/{entity_id}")
def entity_history(
    entity_type: str,
    entity_id: str,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(AuditLog).options(joinedload(AuditLog.user)).filter(
        AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id
    )

    if current_user.role != UserRole.ADMIN:
        if entity_type == "Case":
            case = db.query(Case).options(joinedload(Case.lawyer)).filter(Case.id == entity_id).first()
            # Outsiders get an empty page, not a 403
            if not case or not CaseService.is_participant(case, current_user.id):
                return paginated_response([], 0, pagination.page, pagination.limit)
        else:
            query = query.filter(AuditLog.user_id == current_user.id)

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_audit(log) for log in logs], total, pagination.page, pagination.limit)
