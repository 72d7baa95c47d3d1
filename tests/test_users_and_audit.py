from app.models import AuditAction, User
from app.services.audit_service import record_audit

from conftest import auth_headers, make_case

USERS = "/api/v1/users"
AUDIT = "/api/v1/audit"
PNG = b"\x89PNG\r\n\x1a\n avatar"


class TestProfile:
    def test_get_and_update(self, client, db, user):
        assert client.get(f"{USERS}/profile", headers=auth_headers(user)).json()["data"]["email"] == user.email

        response = client.put(
            f"{USERS}/profile", json={"first_name": "  Ashok ", "phone": "9876543210"}, headers=auth_headers(user)
        )

        data = response.json()["data"]
        assert data["first_name"] == "Ashok"
        assert data["last_name"] == "Verma"
        assert data["phone"] == "9876543210"

    def test_short_name_rejected(self, client, user):
        assert client.put(f"{USERS}/profile", json={"first_name": "A"}, headers=auth_headers(user)).status_code == 422

    def test_avatar_upload(self, client, db, user, external_services):
        response = client.post(
            f"{USERS}/avatar", files={"file": ("me.png", PNG, "image/png")}, headers=auth_headers(user)
        )

        avatar = response.json()["data"]["avatar"]
        assert avatar.startswith(f"https://files.test/{user.id}/")
        assert avatar.endswith(".png")
        db.expire_all()
        assert db.get(User, user.id).avatar == avatar

    def test_avatar_must_be_image(self, client, user, external_services):
        response = client.post(
            f"{USERS}/avatar", files={"file": ("cv.pdf", b"%PDF", "application/pdf")}, headers=auth_headers(user)
        )
        assert response.status_code == 400
        external_services["upload"].assert_not_called()


class TestUserDirectory:
    def test_admin_lists_and_fetches(self, client, user, other_user, admin):
        body = client.get(USERS + "/", params={"search": "kabir"}, headers=auth_headers(admin)).json()
        assert [u["id"] for u in body["data"]] == [other_user.id]

        assert client.get(f"{USERS}/{user.id}", headers=auth_headers(admin)).json()["data"]["id"] == user.id
        assert client.get(f"{USERS}/missing", headers=auth_headers(admin)).status_code == 404

    def test_users_cannot_list(self, client, user):
        assert client.get(USERS + "/", headers=auth_headers(user)).status_code == 403


class TestAuditTrail:
    def test_case_history_for_participants_only(self, client, db, user, other_user, lawyer):
        case = make_case(db, user, lawyer)
        record_audit(db, AuditAction.UPDATE, "Case", case.id, lawyer.user_id, case_id=case.id, details={"title": "x"})
        db.commit()

        body = client.get(f"{AUDIT}/Case/{case.id}", headers=auth_headers(user)).json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["user"]["id"] == lawyer.user_id

        outsider = client.get(f"{AUDIT}/Case/{case.id}", headers=auth_headers(other_user)).json()
        assert outsider["data"] == []
        assert outsider["meta"]["total"] == 0

    def test_other_entities_filtered_to_own_entries(self, client, db, user, other_user, admin):
        record_audit(db, AuditAction.CREATE, "Document", "doc-1", user.id)
        record_audit(db, AuditAction.UPDATE, "Document", "doc-1", other_user.id)
        db.commit()

        assert client.get(f"{AUDIT}/Document/doc-1", headers=auth_headers(user)).json()["meta"]["total"] == 1
        assert client.get(f"{AUDIT}/Document/doc-1", headers=auth_headers(admin)).json()["meta"]["total"] == 2

    def test_recent_is_admin_only(self, client, db, user, admin):
        record_audit(db, AuditAction.CREATE, "Document", "doc-1", user.id)
        db.commit()

        assert client.get(f"{AUDIT}/recent", headers=auth_headers(user)).status_code == 403
        data = client.get(f"{AUDIT}/recent", params={"limit": 500}, headers=auth_headers(admin)).json()["data"]
        assert data[0]["action"] == "CREATE"
