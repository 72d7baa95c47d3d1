from datetime import datetime, timedelta
from itertools import count

from app.models import BookingStatus, Lawyer, Notification, NotificationType, Review

from conftest import auth_headers, future_date, make_booking, make_lawyer, make_user

API = "/api/v1/reviews"

_days_ahead = count(1)


def leave_review(client, db, reviewer, lawyer, rating=5, **fields):
    # each booking needs its own lawyer slot
    booking = make_booking(
        db, reviewer, lawyer, status=BookingStatus.COMPLETED, scheduled_date=future_date(next(_days_ahead))
    )
    return client.post(
        f"{API}/", json={"booking_id": booking.id, "rating": rating, **fields}, headers=auth_headers(reviewer)
    )


class TestCreateReview:
    def test_review_updates_lawyer_rating(self, client, db, user, other_user, lawyer):
        assert leave_review(client, db, user, lawyer, rating=5, title="Excellent").status_code == 201
        assert leave_review(client, db, other_user, lawyer, rating=4).status_code == 201

        db.expire_all()
        refreshed = db.get(Lawyer, lawyer.id)
        assert refreshed.total_reviews == 2
        assert refreshed.average_rating == 4.5
        assert db.query(Notification).filter(
            Notification.user_id == lawyer.user_id, Notification.type == NotificationType.REVIEW_RECEIVED
        ).count() == 2

    def test_only_completed_bookings(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.CONFIRMED)
        response = client.post(f"{API}/", json={"booking_id": booking.id, "rating": 5}, headers=auth_headers(user))
        assert response.status_code == 400

    def test_only_own_booking(self, client, db, user, other_user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        response = client.post(f"{API}/", json={"booking_id": booking.id, "rating": 5}, headers=auth_headers(other_user))
        assert response.status_code == 403

    def test_one_review_per_booking(self, client, db, user, lawyer):
        booking = make_booking(db, user, lawyer, status=BookingStatus.COMPLETED)
        payload = {"booking_id": booking.id, "rating": 5}
        client.post(f"{API}/", json=payload, headers=auth_headers(user))
        assert client.post(f"{API}/", json=payload, headers=auth_headers(user)).status_code == 409

    def test_rating_range(self, client, db, user, lawyer):
        assert leave_review(client, db, user, lawyer, rating=6).status_code == 422


class TestPublicReviews:
    def test_public_listing_hides_hidden_reviews_and_surnames(self, client, db, lawyer):
        reviewer = make_user(db, first_name="Sunita", last_name="Kulkarni")
        leave_review(client, db, reviewer, lawyer, rating=4)
        hidden_author = make_user(db)
        leave_review(client, db, hidden_author, lawyer, rating=1)
        db.query(Review).filter(Review.user_id == hidden_author.id).update({Review.is_hidden: True})
        db.commit()

        body = client.get(f"{API}/lawyer/{lawyer.id}").json()

        assert body["meta"]["total"] == 1
        assert body["data"][0]["author"]["name"] == "Sunita K."
        assert body["meta"]["rating_distribution"] == {"1": 0, "2": 0, "3": 0, "4": 1, "5": 0}
        assert body["meta"]["average_rating"] == 4.0

    def test_my_reviews(self, client, db, user, lawyer):
        leave_review(client, db, user, lawyer)
        data = client.get(f"{API}/my", headers=auth_headers(user)).json()["data"]
        assert data[0]["lawyer"]["id"] == lawyer.id


class TestManageReviews:
    def test_edit_within_window(self, client, db, user, lawyer):
        review_id = leave_review(client, db, user, lawyer, rating=5).json()["data"]["id"]
        response = client.put(f"{API}/{review_id}", json={"rating": 3}, headers=auth_headers(user))

        assert response.status_code == 200
        db.expire_all()
        assert db.get(Lawyer, lawyer.id).average_rating == 3.0

    def test_edit_after_window(self, client, db, user, lawyer):
        review_id = leave_review(client, db, user, lawyer).json()["data"]["id"]
        db.query(Review).filter(Review.id == review_id).update(
            {Review.created_at: datetime.utcnow() - timedelta(hours=49)}
        )
        db.commit()

        assert client.put(f"{API}/{review_id}", json={"rating": 1}, headers=auth_headers(user)).status_code == 400

    def test_lawyer_responds_once(self, client, db, user, lawyer):
        review_id = leave_review(client, db, user, lawyer).json()["data"]["id"]
        url = f"{API}/{review_id}/respond"

        assert client.post(url, json={"response": "Thanks"}, headers=auth_headers(lawyer.user)).status_code == 400
        response = client.post(url, json={"response": "Thank you for the kind words"}, headers=auth_headers(lawyer.user))
        assert response.status_code == 200
        assert response.json()["data"]["lawyer_response"] == "Thank you for the kind words"
        assert client.post(url, json={"response": "Thank you once more"}, headers=auth_headers(lawyer.user)).status_code == 409

    def test_other_lawyer_cannot_respond(self, client, db, user, lawyer):
        review_id = leave_review(client, db, user, lawyer).json()["data"]["id"]
        other = make_lawyer(db, first_name="Anil", last_name="Joshi")
        response = client.post(
            f"{API}/{review_id}/respond", json={"response": "Not my review at all"}, headers=auth_headers(other.user)
        )
        assert response.status_code == 403

    def test_helpful(self, client, db, user, other_user, lawyer):
        review_id = leave_review(client, db, user, lawyer).json()["data"]["id"]
        client.post(f"{API}/{review_id}/helpful", headers=auth_headers(other_user))

        db.expire_all()
        assert db.get(Review, review_id).helpful_count == 1
        assert client.post(f"{API}/missing/helpful", headers=auth_headers(user)).status_code == 404

    def test_delete_recomputes_rating(self, client, db, user, lawyer, admin):
        review_id = leave_review(client, db, user, lawyer).json()["data"]["id"]

        assert client.delete(f"{API}/{review_id}", headers=auth_headers(admin)).status_code == 200
        db.expire_all()
        refreshed = db.get(Lawyer, lawyer.id)
        assert refreshed.total_reviews == 0
        assert refreshed.average_rating == 0
