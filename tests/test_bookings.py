from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import BookingError
from app.models import Booking, BookingStatus, Lawyer, Notification, NotificationType, Payment, PaymentStatus
from app.services.booking_service import BookingService, compute_amount, is_past_slot

from conftest import auth_headers, future_date, make_booking, make_lawyer, make_user

API = "/api/v1/bookings"


def booking_payload(lawyer, **overrides):
    payload = {
        "lawyer_id": lawyer.id,
        "scheduled_date": future_date().isoformat(),
        "scheduled_time": "11:00",
        "duration": 60,
        "meeting_type": "VIDEO",
        "client_notes": "Need advice on a rental agreement",
    }
    payload.update(overrides)
    return payload


class TestPricing:
    def test_compute_amount_prorates_by_minutes(self):
        assert compute_amount(Decimal("2000"), 60) == Decimal("2000.00")
        assert compute_amount(Decimal("2000"), 30) == Decimal("1000.00")
        assert compute_amount(Decimal("1500"), 45) == Decimal("1125.00")
        assert compute_amount(Decimal("999.99"), 90) == Decimal("1499.99")

    def test_is_past_slot(self):
        assert is_past_slot(date.today() - timedelta(days=1), "10:00") is True
        assert is_past_slot(date.today() + timedelta(days=2), "10:00") is False


class TestCreateBooking:
    def test_creates_pending_booking_priced_by_server(self, client, db, user, lawyer):
        response = client.post(f"{API}/", json=booking_payload(lawyer, duration=30), headers=auth_headers(user))

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "PENDING"
        assert Decimal(str(data["amount"])) == Decimal("1000.00")
        assert data["booking_number"].startswith("NB-")
        assert data["lawyer"]["id"] == lawyer.id

        db.expire_all()
        assert db.get(Lawyer, lawyer.id).total_bookings == 1
        notification = db.query(Notification).filter(Notification.user_id == lawyer.user_id).one()
        assert notification.type == NotificationType.BOOKING_CREATED

    def test_requires_authentication(self, client, lawyer):
        assert client.post(f"{API}/", json=booking_payload(lawyer)).status_code == 401

    def test_rejects_unsupported_duration(self, client, user, lawyer):
        response = client.post(f"{API}/", json=booking_payload(lawyer, duration=50), headers=auth_headers(user))
        assert response.status_code == 422

    def test_rejects_malformed_time(self, client, user, lawyer):
        response = client.post(f"{API}/", json=booking_payload(lawyer, scheduled_time="25:00"), headers=auth_headers(user))
        assert response.status_code == 422

    def test_rejects_past_slot(self, client, user, lawyer):
        past = (date.today() - timedelta(days=1)).isoformat()
        response = client.post(f"{API}/", json=booking_payload(lawyer, scheduled_date=past), headers=auth_headers(user))
        assert response.status_code == 400

    def test_unverified_lawyer_is_unavailable(self, client, db, user):
        pending = make_lawyer(db, verified=False)
        response = client.post(f"{API}/", json=booking_payload(pending), headers=auth_headers(user))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SLOT_UNAVAILABLE"

    def test_unknown_lawyer(self, client, user, lawyer):
        response = client.post(f"{API}/", json=booking_payload(lawyer, lawyer_id="missing"), headers=auth_headers(user))
        assert response.status_code == 404

    def test_lawyer_cannot_book_self(self, client, db, lawyer):
        response = client.post(f"{API}/", json=booking_payload(lawyer), headers=auth_headers(lawyer.user))
        assert response.status_code == 400

    def test_taken_slot_is_conflict(self, client, db, user, other_user, lawyer):
        client.post(f"{API}/", json=booking_payload(lawyer), headers=auth_headers(user))
        response = client.post(f"{API}/", json=booking_payload(lawyer), headers=auth_headers(other_user))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SLOT_UNAVAILABLE"
        assert db.query(Booking).count() == 1

    def test_client_double_booking_is_conflict(self, client, db, user, lawyer):
        second_lawyer = make_lawyer(db, first_name="Meera", last_name="Iyer")
        client.post(f"{API}/", json=booking_payload(lawyer), headers=auth_headers(user))
        response = client.post(f"{API}/", json=booking_payload(second_lawyer), headers=auth_headers(user))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "BOOKING_CONFLICT"

    def test_cancelled_slot_stays_taken(self, client, db, user, other_user, lawyer):
        make_booking(db, user, lawyer, status=BookingStatus.CANCELLED, scheduled_time="11:00")
        response = client.post(f"{API}/", json=booking_payload(lawyer), headers=auth_headers(other_user))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "SLOT_UNAVAILABLE"

    def test_serialization_failure_maps_to_slot_unavailable(self, db, user, lawyer, monkeypatch):
        class SerializationFailure(Exception):
            pgcode = "40001"

        original_flush = db.flush

        def flaky_flush(*args, **kwargs):
            if any(isinstance(obj, Booking) for obj in db.new):
                raise OperationalError("INSERT INTO bookings", {}, SerializationFailure())
            return original_flush(*args, **kwargs)

        monkeypatch.setattr(db, "flush", flaky_flush)
        with pytest.raises(BookingError) as excinfo:
            BookingService(db).create_booking(user, lawyer.id, future_date(), "15:00", 60)

        assert excinfo.value.error_code == "SLOT_UNAVAILABLE"
        assert db.query(Booking).count() == 0


class TestBookingLifecycle:
    def test_client_lists_own_bookings(self, client, db, user, other_user, lawyer):
        make_booking(db, user, lawyer, scheduled_time="09:00")
        make_booking(db, other_user, lawyer, scheduled_time="10:00")

        body = client.get(f"{API}/", headers=auth_headers(user)).json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["client"]["id"] == user.id

    def test_lawyer_lists_bookings(self, client, db, user, lawyer):
        make_booking(db, user, lawyer)
        body = client.get(f"{API}/lawyer", headers=auth_headers(lawyer.user)).json()
        assert body["meta"]["total"] == 1

    def test_unverified_lawyer_cannot_list_bookings(self, client, db):
        pending = make_lawyer(db, verified=False)
        assert client.get(f"{API}/lawyer", headers=auth_headers(pending.user)).status_code == 403

    def test_outsider_cannot_view_booking(self, client, db, user, other_user, lawyer):
        booking = make_booking(db, user, lawyer)
        assert client.get(f"{API}/{booking.id}", headers=auth_headers(other_user)).status_code == 403
        assert client.get(f"{API}/{booking.id}", headers=auth_headers(lawyer.user)).status_code == 200

    def test_confirm_by_lawyer(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer)
        response = client.put(
            f"{API}/{booking.id}/confirm",
            json={"meeting_link": "https://meet.example.com/abc"},
            headers=auth_headers(lawyer.user),
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "CONFIRMED"
        assert response.json()["data"]["meeting_link"] == "https://meet.example.com/abc"
        assert db.query(Notification).filter(
            Notification.user_id == user.id, Notification.type == NotificationType.BOOKING_CONFIRMED
        ).count() == 1

    def test_client_cannot_confirm(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer)
        assert client.put(f"{API}/{booking.id}/confirm", json={}, headers=auth_headers(user)).status_code == 403

    def test_confirm_twice_is_conflict(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.CONFIRMED)
        response = client.put(f"{API}/{booking.id}/confirm", json={}, headers=auth_headers(lawyer.user))
        assert response.status_code == 409

    def test_cancel_notifies_other_party(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer)
        response = client.put(f"{API}/{booking.id}/cancel", json={"reason": "Travelling"}, headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "CANCELLED"
        assert data["cancellation_reason"] == "Travelling"
        assert db.query(Notification).filter(
            Notification.user_id == lawyer.user_id, Notification.type == NotificationType.BOOKING_CANCELLED
        ).count() == 1

    def test_cancel_closed_booking(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        response = client.put(f"{API}/{booking.id}/cancel", json={}, headers=auth_headers(user))
        assert response.status_code == 409

    def test_complete_updates_lawyer_stats(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.CONFIRMED, amount=Decimal("1500.00"))
        response = client.put(f"{API}/{booking.id}/complete", json={"lawyer_notes": "Done"}, headers=auth_headers(lawyer.user))

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "COMPLETED"
        db.expire_all()
        refreshed = db.get(Lawyer, lawyer.id)
        assert refreshed.completed_bookings == 1
        assert refreshed.total_earnings == Decimal("1500.00")

    def test_complete_requires_confirmed(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer)
        response = client.put(f"{API}/{booking.id}/complete", json={}, headers=auth_headers(lawyer.user))
        assert response.status_code == 409

    def test_complete_twice(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        response = client.put(f"{API}/{booking.id}/complete", json={}, headers=auth_headers(lawyer.user))

        assert response.status_code == 409
        assert response.json()["message"] == "Booking has already been completed"
        db.expire_all()
        assert db.get(Lawyer, lawyer.id).completed_bookings == 0


class TestCheckout:
    def test_checkout_confirms_and_records_payment(self, client, db, user, lawyer):
        payload = {**booking_payload(lawyer, duration=90), "payment_method": "UPI", "amount": 1}
        response = client.post("/api/v1/payments/checkout", json=payload, headers=auth_headers(user))

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["booking"]["status"] == "CONFIRMED"
        assert data["payment"]["status"] == "COMPLETED"
        assert data["payment"]["method"] == "UPI"
        assert Decimal(str(data["payment"]["amount"])) == Decimal("3000.00")
        assert data["payment"]["gateway_order_id"].startswith("sim_order_")

        payment = db.query(Payment).one()
        assert payment.status == PaymentStatus.COMPLETED
        assert db.query(Notification).filter(Notification.user_id == user.id).count() == 1

    def test_checkout_on_taken_slot_creates_no_payment(self, client, db, user, lawyer):
        other = make_user(db)
        make_booking(db, other, lawyer, scheduled_time="11:00")
        response = client.post(
            "/api/v1/payments/checkout", json=booking_payload(lawyer), headers=auth_headers(user)
        )

        assert response.status_code == 409
        assert db.query(Payment).count() == 0
