from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from app.models import (
    Booking, BookingStatus, Notification, NotificationType, Payment, PaymentStatus, RefreshToken, User, UserRole,
    VerificationStatus,
)

from conftest import PASSWORD, add_specialization, auth_headers, make_booking, make_lawyer, make_practice_area

API = "/api/v1/admin"


def completed_payment(db, booking, processed_at, amount="1000.00"):
    payment = Payment(
        booking_id=booking.id,
        user_id=booking.client_id,
        amount=Decimal(amount),
        status=PaymentStatus.COMPLETED,
        processed_at=processed_at,
    )
    db.add(payment)
    db.commit()
    return payment


class TestAccess:
    def test_admin_only(self, client, user, lawyer):
        assert client.get(f"{API}/dashboard", headers=auth_headers(user)).status_code == 403
        assert client.get(f"{API}/dashboard", headers=auth_headers(lawyer.user)).status_code == 403
        assert client.get(f"{API}/dashboard").status_code == 401


class TestDashboard:
    def test_counts(self, client, db, user, lawyer, admin):
        make_lawyer(db, verified=False, first_name="Pending", last_name="Advocate")
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        completed_payment(db, booking, datetime.utcnow())

        data = client.get(f"{API}/dashboard", headers=auth_headers(admin)).json()["data"]
        assert data["users"]["lawyers"] == 2
        assert data["users"]["verified_lawyers"] == 1
        assert data["users"]["pending_verifications"] == 1
        assert data["bookings"]["total"] == 1
        assert data["bookings"]["completed"] == 1
        assert Decimal(str(data["revenue"]["total"])) == Decimal("1000.00")
        assert data["recent_bookings"][0]["booking_number"] == booking.booking_number


class TestUserManagement:
    def test_list_with_filters(self, client, db, user, lawyer, admin):
        body = client.get(f"{API}/users", params={"role": "LAWYER"}, headers=auth_headers(admin)).json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["id"] == lawyer.user_id

    def test_deactivate_revokes_sessions(self, client, db, user, admin):
        client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})

        response = client.put(f"{API}/users/{user.id}/status", json={"is_active": False}, headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json()["message"] == "User deactivated successfully"
        assert db.query(RefreshToken).filter(RefreshToken.revoked_at.is_(None)).count() == 0
        assert client.get("/api/v1/auth/me", headers=auth_headers(user)).status_code == 401

    def test_cannot_deactivate_self(self, client, admin):
        response = client.put(f"{API}/users/{admin.id}/status", json={"is_active": False}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_change_role(self, client, db, user, admin):
        response = client.put(f"{API}/users/{user.id}/role", json={"role": "ADMIN"}, headers=auth_headers(admin))

        assert response.json()["data"]["role"] == "ADMIN"
        assert client.put(f"{API}/users/{admin.id}/role", json={"role": "USER"}, headers=auth_headers(admin)).status_code == 400

    def test_soft_delete(self, client, db, user, lawyer, admin):
        booking = make_booking(db, user, lawyer)

        assert client.delete(f"{API}/users/{user.id}", headers=auth_headers(admin)).status_code == 200
        db.expire_all()
        deleted = db.get(User, user.id)
        assert deleted.deleted_at is not None
        assert deleted.is_active is False
        assert db.get(Booking, booking.id) is not None
        assert client.delete(f"{API}/users/{user.id}", headers=auth_headers(admin)).status_code == 404

    def test_cannot_delete_admins(self, client, db, admin):
        other_admin = User(email="root2@example.com", first_name="Second", last_name="Admin", role=UserRole.ADMIN)
        db.add(other_admin)
        db.commit()
        assert client.delete(f"{API}/users/{other_admin.id}", headers=auth_headers(admin)).status_code == 400


class TestLawyerVerification:
    def test_pending_queue(self, client, db, admin, lawyer):
        pending = make_lawyer(db, verified=False, first_name="Queue", last_name="Member")
        body = client.get(f"{API}/lawyers/pending", headers=auth_headers(admin)).json()
        assert [l["id"] for l in body["data"]] == [pending.id]

    def test_approve(self, client, db, admin):
        pending = make_lawyer(db, verified=False)
        response = client.put(f"{API}/lawyers/{pending.id}/verify", json={"action": "approve"}, headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json()["data"]["verification_status"] == "VERIFIED"
        notification = db.query(Notification).filter(Notification.user_id == pending.user_id).one()
        assert notification.type == NotificationType.PROFILE_VERIFIED
        assert notification.title == "Profile Verified"

    def test_reject_needs_reason(self, client, db, admin):
        pending = make_lawyer(db, verified=False)
        url = f"{API}/lawyers/{pending.id}/verify"

        assert client.put(url, json={"action": "reject"}, headers=auth_headers(admin)).status_code == 400
        response = client.put(
            url, json={"action": "reject", "rejection_reason": "Certificate unreadable"}, headers=auth_headers(admin)
        )
        assert response.json()["data"]["verification_status"] == "REJECTED"
        db.expire_all()
        assert db.get(type(pending), pending.id).rejection_reason == "Certificate unreadable"

    def test_search_lawyers_by_bar_council_id(self, client, db, admin, lawyer):
        body = client.get(f"{API}/lawyers", params={"search": lawyer.bar_council_id}, headers=auth_headers(admin)).json()
        assert body["meta"]["total"] == 1

    def test_filter_by_status(self, client, db, admin, lawyer):
        make_lawyer(db, verified=False)
        body = client.get(f"{API}/lawyers", params={"status": "VERIFIED"}, headers=auth_headers(admin)).json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["verification_status"] == VerificationStatus.VERIFIED.value


class TestBookingsAndRevenue:
    def test_bookings_filtered_by_status(self, client, db, user, lawyer, admin):
        make_booking(db, user, lawyer, scheduled_time="09:00")
        make_booking(db, user, lawyer, status=BookingStatus.CANCELLED, scheduled_time="12:00")

        body = client.get(f"{API}/bookings", params={"status": "CANCELLED"}, headers=auth_headers(admin)).json()
        assert body["meta"]["total"] == 1

    def test_payments_include_user(self, client, db, user, lawyer, admin):
        booking = make_booking(db, user, lawyer)
        completed_payment(db, booking, datetime.utcnow())

        data = client.get(f"{API}/payments", headers=auth_headers(admin)).json()["data"]
        assert data[0]["user"]["email"] == user.email
        assert data[0]["booking_number"] == booking.booking_number

    def test_revenue_grouped_by_month(self, client, db, user, lawyer, admin):
        first = make_booking(db, user, lawyer, scheduled_time="09:00")
        second = make_booking(db, user, lawyer, scheduled_time="11:00")
        third = make_booking(db, user, lawyer, scheduled_time="13:00")
        completed_payment(db, first, datetime(2025, 1, 5, 10), "1000.00")
        completed_payment(db, second, datetime(2025, 1, 20, 10), "500.00")
        completed_payment(db, third, datetime(2025, 2, 2, 10), "1500.00")

        data = client.get(
            f"{API}/revenue",
            params={"start_date": "2025-01-01T00:00:00", "end_date": "2025-03-01T00:00:00", "group_by": "month"},
            headers=auth_headers(admin),
        ).json()["data"]

        assert [(b["date"], b["count"]) for b in data["time_series"]] == [("2025-01", 2), ("2025-02", 1)]
        assert Decimal(str(data["summary"]["total_revenue"])) == Decimal("3000.00")
        assert Decimal(str(data["summary"]["average_transaction_value"])) == Decimal("1000.00")

    def test_revenue_weeks_start_on_sunday(self, client, db, user, lawyer, admin):
        booking = make_booking(db, user, lawyer)
        # 2025-01-08 is a Wednesday
        completed_payment(db, booking, datetime(2025, 1, 8, 12))

        data = client.get(
            f"{API}/revenue",
            params={"start_date": "2025-01-01T00:00:00", "end_date": "2025-01-31T00:00:00", "group_by": "week"},
            headers=auth_headers(admin),
        ).json()["data"]
        assert data["time_series"][0]["date"] == "2025-01-05"


class TestPracticeAreas:
    def test_create_update_delete(self, client, admin):
        headers = auth_headers(admin)
        created = client.post(f"{API}/practice-areas", json={"name": "Cyber Law", "display_order": 3}, headers=headers)
        assert created.status_code == 201
        area = created.json()["data"]
        assert area["slug"] == "cyber-law"

        assert client.post(f"{API}/practice-areas", json={"name": "Cyber Law"}, headers=headers).status_code == 409

        updated = client.put(f"{API}/practice-areas/{area['id']}", json={"name": "Cyber Crime Law"}, headers=headers)
        assert updated.json()["data"]["slug"] == "cyber-crime-law"

        assert client.delete(f"{API}/practice-areas/{area['id']}", headers=headers).status_code == 200
        assert client.delete(f"{API}/practice-areas/{area['id']}", headers=headers).status_code == 404

    def test_cannot_delete_area_in_use(self, client, db, admin, lawyer):
        area = make_practice_area(db, "Tax Law")
        add_specialization(db, lawyer, area)

        assert client.delete(f"{API}/practice-areas/{area.id}", headers=auth_headers(admin)).status_code == 400
        listed = client.get(f"{API}/practice-areas", headers=auth_headers(admin)).json()["data"]
        assert listed[0]["lawyer_count"] == 1


def test_system_health_reports_degraded_storage(client, admin):
    with patch("app.admin.routes.check_storage_health", return_value=False):
        data = client.get(f"{API}/system/health", headers=auth_headers(admin)).json()["data"]

    assert data["status"] == "degraded"
    assert data["components"] == {"database": "healthy", "storage": "unhealthy"}
    assert data["uptime"] >= 0


def test_revenue_default_window_is_thirty_days(client, db, user, lawyer, admin):
    booking = make_booking(db, user, lawyer)
    completed_payment(db, booking, datetime.utcnow() - timedelta(days=40))

    data = client.get(f"{API}/revenue", headers=auth_headers(admin)).json()["data"]
    assert data["summary"]["total_transactions"] == 0
