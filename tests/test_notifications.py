from datetime import datetime, timedelta

from app.models import Notification, NotificationType
from app.services.notification_service import create_notification

from conftest import auth_headers

API = "/api/v1/notifications"


def notify(db, user, title="Booking confirmed", **fields):
    return create_notification(db, user.id, NotificationType.SYSTEM, title, f"{title} message", **fields)


class TestNotifications:
    def test_list_and_unread_count(self, client, db, user, other_user):
        notify(db, user, "One")
        notify(db, user, "Two")
        notify(db, other_user, "Not yours")

        body = client.get(f"{API}/", headers=auth_headers(user)).json()
        assert body["meta"]["total"] == 2
        assert body["data"][0]["type"] == "SYSTEM"
        assert client.get(f"{API}/unread-count", headers=auth_headers(user)).json()["data"]["count"] == 2

    def test_expired_notifications_are_hidden(self, client, db, user):
        expired = notify(db, user, "Old")
        expired.expires_at = datetime.utcnow() - timedelta(days=1)
        db.commit()
        notify(db, user, "Fresh")

        body = client.get(f"{API}/", headers=auth_headers(user)).json()
        assert [n["title"] for n in body["data"]] == ["Fresh"]

    def test_mark_one_read(self, client, db, user):
        notification = notify(db, user)
        response = client.put(f"{API}/{notification.id}/read", headers=auth_headers(user))

        assert response.json()["data"]["is_read"] is True
        body = client.get(f"{API}/", params={"unread_only": True}, headers=auth_headers(user)).json()
        assert body["meta"]["total"] == 0

    def test_cannot_touch_someone_elses(self, client, db, user, other_user):
        notification = notify(db, user)
        assert client.put(f"{API}/{notification.id}/read", headers=auth_headers(other_user)).status_code == 403
        assert client.delete(f"{API}/{notification.id}", headers=auth_headers(other_user)).status_code == 403

    def test_read_all_then_clear(self, client, db, user):
        notify(db, user, "One")
        notify(db, user, "Two")

        assert client.put(f"{API}/read-all", headers=auth_headers(user)).json()["data"]["count"] == 2
        assert client.delete(f"{API}/", headers=auth_headers(user)).json()["data"]["count"] == 2
        assert db.query(Notification).count() == 0

    def test_delete_one(self, client, db, user):
        notification = notify(db, user)
        assert client.delete(f"{API}/{notification.id}", headers=auth_headers(user)).status_code == 200
        assert client.delete(f"{API}/{notification.id}", headers=auth_headers(user)).status_code == 404
