from app.models import (
    AuditAction, AuditLog, BookingStatus, Case, CaseStatus, Message, MessageType, Notification, NotificationType,
)

from conftest import auth_headers, make_booking, make_case, make_lawyer

API = "/api/v1/cases"


class TestCreateCase:
    def test_user_requests_case_from_completed_booking(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        response = client.post(
            f"{API}/", json={"title": "  Tenancy dispute ", "booking_id": booking.id}, headers=auth_headers(user)
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "REQUESTED"
        assert data["title"] == "Tenancy dispute"
        assert data["case_number"].startswith("CASE-")
        assert data["lawyer"]["id"] == lawyer.id
        assert db.query(Notification).filter(Notification.user_id == lawyer.user_id).count() == 1

    def test_user_must_name_a_booking(self, client, user):
        response = client.post(f"{API}/", json={"title": "No booking"}, headers=auth_headers(user))
        assert response.status_code == 400

    def test_user_needs_completed_consultation(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.CONFIRMED)
        response = client.post(f"{API}/", json={"title": "Too early", "booking_id": booking.id}, headers=auth_headers(user))
        assert response.status_code == 400

    def test_one_case_per_booking(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        payload = {"title": "First", "booking_id": booking.id}
        client.post(f"{API}/", json=payload, headers=auth_headers(user))
        response = client.post(f"{API}/", json={**payload, "title": "Second"}, headers=auth_headers(user))

        assert response.status_code == 400
        assert db.query(Case).count() == 1

    def test_someone_elses_booking(self, client, db, user, other_user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        response = client.post(
            f"{API}/", json={"title": "Not mine", "booking_id": booking.id}, headers=auth_headers(other_user)
        )
        assert response.status_code == 400

    def test_lawyer_opens_case_for_client(self, client, db, user, lawyer):
        response = client.post(
            f"{API}/",
            json={"title": "Cheque bounce", "client_id": user.id, "priority": "HIGH"},
            headers=auth_headers(lawyer.user),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "OPEN"
        assert data["priority"] == "HIGH"
        audit = db.query(AuditLog).filter(AuditLog.case_id == data["id"]).one()
        assert audit.action == AuditAction.CREATE
        assert db.query(Notification).filter(
            Notification.user_id == user.id, Notification.type == NotificationType.CASE
        ).count() == 1

    def test_lawyer_needs_existing_client(self, client, lawyer):
        response = client.post(
            f"{API}/", json={"title": "Ghost client", "client_id": "missing"}, headers=auth_headers(lawyer.user)
        )
        assert response.status_code == 404

    def test_admin_cannot_create(self, client, admin):
        assert client.post(f"{API}/", json={"title": "x"}, headers=auth_headers(admin)).status_code == 403

    def test_blank_title(self, client, user):
        assert client.post(f"{API}/", json={"title": "   "}, headers=auth_headers(user)).status_code == 422


class TestCaseWorkflow:
    def test_approve_requested_case(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer, status=CaseStatus.REQUESTED)
        response = client.put(f"{API}/{case.id}/approve", headers=auth_headers(lawyer.user))

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "OPEN"
        audit = db.query(AuditLog).filter(AuditLog.case_id == case.id).one()
        assert audit.details["status"] == {"from": "REQUESTED", "to": "OPEN"}

    def test_client_cannot_approve(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer, status=CaseStatus.REQUESTED)
        assert client.put(f"{API}/{case.id}/approve", headers=auth_headers(user)).status_code == 403

    def test_approve_only_requested(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        assert client.put(f"{API}/{case.id}/approve", headers=auth_headers(lawyer.user)).status_code == 400

    def test_reject_with_reason(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer, status=CaseStatus.REQUESTED)
        response = client.put(
            f"{API}/{case.id}/reject", json={"reason": "Outside my practice"}, headers=auth_headers(lawyer.user)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "REJECTED"
        assert data["closed_at"] is not None
        notification = db.query(Notification).filter(Notification.user_id == user.id).one()
        assert "Outside my practice" in notification.message

    def test_update_to_closed_sets_closed_at(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        response = client.put(f"{API}/{case.id}", json={"status": "CLOSED"}, headers=auth_headers(lawyer.user))

        assert response.status_code == 200
        assert response.json()["data"]["closed_at"] is not None
        audit = db.query(AuditLog).filter(AuditLog.case_id == case.id).one()
        assert audit.action == AuditAction.STATUS_CHANGE

    def test_other_lawyer_cannot_update(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        outsider = make_lawyer(db, first_name="Dev", last_name="Nair")
        response = client.put(f"{API}/{case.id}", json={"title": "Hijack"}, headers=auth_headers(outsider.user))
        assert response.status_code == 403

    def test_admin_can_update(self, client, db, user, lawyer, admin):
        case = make_case(db, user, lawyer)
        response = client.put(f"{API}/{case.id}", json={"priority": "URGENT"}, headers=auth_headers(admin))
        assert response.json()["data"]["priority"] == "URGENT"


class TestCaseViews:
    def test_list_is_scoped_by_role(self, client, db, user, other_user, lawyer, admin):
        make_case(db, user, lawyer, title="Partition suit")
        make_case(db, other_user, lawyer, title="Divorce petition")

        assert client.get(f"{API}/", headers=auth_headers(user)).json()["meta"]["total"] == 1
        assert client.get(f"{API}/", headers=auth_headers(lawyer.user)).json()["meta"]["total"] == 2
        assert client.get(f"{API}/", headers=auth_headers(admin)).json()["meta"]["total"] == 2

    def test_list_search(self, client, db, user, lawyer):
        make_case(db, user, lawyer, title="Partition suit")
        make_case(db, user, lawyer, title="Consumer complaint")

        body = client.get(f"{API}/", params={"search": "partition"}, headers=auth_headers(user)).json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["title"] == "Partition suit"

    def test_detail_includes_counts(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        db.add(Message(case_id=case.id, sender_id=user.id, content="Hello"))
        db.commit()

        data = client.get(f"{API}/{case.id}", headers=auth_headers(user)).json()["data"]
        assert data["counts"]["messages"] == 1
        assert data["counts"]["documents"] == 0
        assert len(data["messages"]) == 1

    def test_detail_forbidden_to_outsiders(self, client, db, user, other_user, lawyer, admin):
        case = make_case(db, user, lawyer)
        assert client.get(f"{API}/{case.id}", headers=auth_headers(other_user)).status_code == 403
        assert client.get(f"{API}/{case.id}", headers=auth_headers(admin)).status_code == 200

    def test_missing_case(self, client, user):
        response = client.get(f"{API}/does-not-exist", headers=auth_headers(user))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_history(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer, status=CaseStatus.REQUESTED)
        client.put(f"{API}/{case.id}/approve", headers=auth_headers(lawyer.user))
        client.put(f"{API}/{case.id}", json={"priority": "LOW"}, headers=auth_headers(lawyer.user))

        body = client.get(f"{API}/{case.id}/history", headers=auth_headers(user)).json()
        assert body["meta"]["total"] == 2
        assert {entry["action"] for entry in body["data"]} == {"STATUS_CHANGE", "UPDATE"}


class TestMeeting:
    def test_start_meeting_posts_system_message(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        response = client.post(f"{API}/{case.id}/meeting", headers=auth_headers(lawyer.user))

        assert response.status_code == 200
        link = response.json()["data"]["link"]
        assert link == "https://meet.jit.si/NyayBooker_Case_" + case.id.replace("-", "")

        message = db.query(Message).filter(Message.case_id == case.id).one()
        assert message.type == MessageType.SYSTEM
        assert link in message.content
        assert db.query(AuditLog).filter(AuditLog.case_id == case.id).count() == 0
        assert db.query(Notification).filter(Notification.user_id == user.id).count() == 1

    def test_no_meeting_on_closed_case(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer, status=CaseStatus.CLOSED)
        assert client.post(f"{API}/{case.id}/meeting", headers=auth_headers(lawyer.user)).status_code == 400

    def test_client_cannot_start_meeting(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        assert client.post(f"{API}/{case.id}/meeting", headers=auth_headers(user)).status_code == 403
