from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.errors import ForbiddenError, NotFoundError
from app.models import Notification, User
from app.services.notification_service import serialize_notification
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _active_for(db: Session, user_id: str):
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        or_(Notification.expires_at.is_(None), Notification.expires_at > datetime.utcnow()),
    )


def _get_owned(db: Session, notification_id: str, user: User) -> Notification:
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise NotFoundError("Notification", notification_id)
    if notification.user_id != user.id:
        raise ForbiddenError("Not authorized")
    return notification


@router.get("/")
def list_notifications(
    unread_only: Optional[bool] = False,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = _active_for(db, current_user.id)
    if unread_only:
        query = query.filter(Notification.is_read == False)

    total = query.count()
    notifications = query.order_by(Notification.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_notification(n) for n in notifications], total, pagination.page, pagination.limit)


@router.get("/unread-count")
def unread_count(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = _active_for(db, current_user.id).filter(Notification.is_read == False).count()
    return success_response({"count": count})


@router.put("/read-all")
def mark_all_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = db.query(Notification).filter(
        Notification.user_id == current_user.id, Notification.is_read == False
    ).update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()
    return success_response({"count": count}, "All notifications marked as read")


@router.put("/{notification_id}/read")
def mark_read(notification_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    notification = _get_owned(db, notification_id, current_user)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return success_response(serialize_notification(notification), "Notification marked as read")


@router.delete("/{notification_id}")
def delete_notification(notification_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    notification = _get_owned(db, notification_id, current_user)
    db.delete(notification)
    db.commit()
    return success_response(message="Notification deleted")


@router.delete("/")
def clear_read_notifications(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = db.query(Notification).filter(
        Notification.user_id == current_user.id, Notification.is_read == True
    ).delete(synchronize_session=False)
    db.commit()
    return success_response({"count": count}, "Read notifications cleared")
