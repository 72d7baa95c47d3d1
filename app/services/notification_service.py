"""
In-app notifications.

Every notification is stored and then pushed to the owner's ``user:{id}``
socket room. The ``*_in_background`` variants open their own session so they
can run as FastAPI background tasks after the request has committed.
"""

import logging
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.models import Notification, NotificationType

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "action_url": notification.action_url,
        "action_label": notification.action_label,
        "metadata": notification.notification_metadata,
        "is_read": notification.is_read,
        "read_at": notification.read_at,
        "created_at": notification.created_at,
    }


def _push(notification: Notification):
    from app.chat.socket import emit_threadsafe, user_room

    emit_threadsafe("notification", jsonable_encoder(serialize_notification(notification)), user_room(notification.user_id))


def create_notification(
    db: Session,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    action_label: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        action_url=action_url,
        action_label=action_label,
        notification_metadata=metadata,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    _push(notification)
    return notification


def create_many_notifications(db: Session, items: list[dict[str, Any]]) -> list[Notification]:
    notifications = [
        Notification(
            user_id=item["user_id"],
            type=item["type"],
            title=item["title"],
            message=item["message"],
            action_url=item.get("action_url"),
            action_label=item.get("action_label"),
            notification_metadata=item.get("metadata"),
        )
        for item in items
    ]
    db.add_all(notifications)
    db.commit()
    for notification in notifications:
        db.refresh(notification)
        _push(notification)
    return notifications


def notify_in_background(**kwargs):
    """Background-task entry point for a single notification; failures are logged."""
    db = SessionLocal()
    try:
        create_notification(db, **kwargs)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create notification for user {kwargs.get('user_id')}: {e}")
    finally:
        db.close()


def notify_many_in_background(items: list[dict[str, Any]]):
    db = SessionLocal()
    try:
        create_many_notifications(db, items)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create {len(items)} notifications: {e}")
    finally:
        db.close()
