from datetime import datetime, timedelta
from decimal import Decimal

from app.models import BookingStatus, LawyerSpecialization, SearchLog

from conftest import add_specialization, auth_headers, future_date, make_booking, make_lawyer, make_practice_area

API = "/api/v1/lawyers"


class TestSearch:
    def test_only_verified_available_lawyers(self, client, db, lawyer):
        make_lawyer(db, verified=False, first_name="Pending", last_name="Person")
        away = make_lawyer(db, first_name="Away", last_name="Person")
        away.is_available = False
        db.commit()

        body = client.get(f"{API}/").json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["id"] == lawyer.id
        assert body["data"][0]["location"] == "Mumbai, Maharashtra"

    def test_filters(self, client, db, lawyer):
        make_lawyer(db, first_name="Kavya", last_name="Rao", city="Bengaluru", state="Karnataka",
                    hourly_rate=Decimal("5000.00"))

        assert client.get(f"{API}/", params={"city": "bengal"}).json()["meta"]["total"] == 1
        assert client.get(f"{API}/", params={"max_rate": 3000}).json()["data"][0]["id"] == lawyer.id
        assert client.get(f"{API}/", params={"min_experience": 20}).json()["meta"]["total"] == 0

    def test_filter_by_specialization_slug(self, client, db, lawyer):
        family = make_practice_area(db, "Family Law")
        other = make_lawyer(db, first_name="Irfan", last_name="Khan")
        add_specialization(db, other, family, is_primary=True)

        body = client.get(f"{API}/", params={"specialization": "family-law"}).json()
        assert [l["id"] for l in body["data"]] == [other.id]
        assert body["data"][0]["specializations"][0]["slug"] == "family-law"

    def test_sort_by_price_ascending(self, client, db, lawyer):
        cheap = make_lawyer(db, first_name="Nisha", last_name="Gupta", hourly_rate=Decimal("500.00"))
        body = client.get(f"{API}/", params={"sort_by": "price", "sort_order": "asc"}).json()
        assert [l["id"] for l in body["data"]] == [cheap.id, lawyer.id]

    def test_text_search_is_logged(self, client, db, user, lawyer):
        response = client.get(f"{API}/", params={"search": "rohan"}, headers=auth_headers(user))

        assert response.json()["meta"]["total"] == 1
        log = db.query(SearchLog).one()
        assert log.query == "rohan"
        assert log.results_count == 1
        assert log.user_id == user.id

    def test_featured(self, client, db, lawyer):
        lawyer.featured = True
        db.commit()
        make_lawyer(db, first_name="Plain", last_name="Lawyer")

        data = client.get(f"{API}/featured").json()["data"]
        assert [l["id"] for l in data] == [lawyer.id]

    def test_practice_areas_with_counts(self, client, db, lawyer):
        family = make_practice_area(db, "Family Law", display_order=1)
        make_practice_area(db, "Tax Law", display_order=2)
        add_specialization(db, lawyer, family)
        pending = make_lawyer(db, verified=False, first_name="Not", last_name="Verified")
        add_specialization(db, pending, family)

        data = client.get(f"{API}/practice-areas").json()["data"]
        assert [(a["name"], a["lawyer_count"]) for a in data] == [("Family Law", 1), ("Tax Law", 0)]


class TestProfile:
    def test_public_profile_by_slug_hides_bar_council_id(self, client, lawyer):
        response = client.get(f"{API}/{lawyer.slug}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == lawyer.id
        assert data["bar_council_id"] is None
        assert "email" not in data

    def test_public_profile_by_id(self, client, lawyer):
        assert client.get(f"{API}/{lawyer.id}").json()["data"]["slug"] == lawyer.slug

    def test_unverified_profile_is_not_public(self, client, db):
        pending = make_lawyer(db, verified=False)
        assert client.get(f"{API}/{pending.id}").status_code == 404

    def test_own_profile_includes_private_fields(self, client, lawyer):
        data = client.get(f"{API}/profile", headers=auth_headers(lawyer.user)).json()["data"]
        assert data["email"] == lawyer.user.email
        assert data["bar_council_id"] == lawyer.bar_council_id

    def test_profile_requires_lawyer_role(self, client, user):
        assert client.get(f"{API}/profile", headers=auth_headers(user)).status_code == 403

    def test_update_profile_and_specializations(self, client, db, lawyer):
        make_practice_area(db, "Family Law")
        make_practice_area(db, "Criminal Law")

        response = client.put(
            f"{API}/profile",
            json={
                "headline": "Family and criminal matters",
                "first_name": "Rohit",
                "specializations": ["criminal-law", "Family Law"],
                "availability": {"Monday": {"enabled": True, "start": "10:00", "end": "12:00"}},
            },
            headers=auth_headers(lawyer.user),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["headline"] == "Family and criminal matters"
        assert data["first_name"] == "Rohit"
        assert data["specializations"][0] == {
            "id": data["specializations"][0]["id"], "name": "Criminal Law", "slug": "criminal-law", "is_primary": True,
        }
        assert data["availability"] == {"monday": {"enabled": True, "start": "10:00", "end": "12:00"}}
        assert db.query(LawyerSpecialization).count() == 2

    def test_unknown_weekday(self, client, lawyer):
        response = client.put(
            f"{API}/profile", json={"availability": {"funday": {"enabled": True}}}, headers=auth_headers(lawyer.user)
        )
        assert response.status_code == 422

    def test_payment_credentials(self, client, lawyer):
        url = f"{API}/me/payment-credentials"
        assert client.put(url, json={}, headers=auth_headers(lawyer.user)).status_code == 400

        response = client.put(url, json={"bank_ifsc_code": "sbin0001234"}, headers=auth_headers(lawyer.user))
        assert response.json()["data"]["bank_ifsc_code"] == "SBIN0001234"

    def test_toggle_availability(self, client, db, lawyer):
        response = client.put(f"{API}/availability", json={"is_available": False}, headers=auth_headers(lawyer.user))

        assert response.json()["message"] == "Availability disabled"
        assert client.get(f"{API}/").json()["meta"]["total"] == 0


class TestAvailability:
    def test_hourly_slots_exclude_booked_times(self, client, db, user, lawyer):
        target = future_date(3)
        make_booking(db, user, lawyer, scheduled_date=target, scheduled_time="10:00")
        make_booking(db, user, lawyer, status=BookingStatus.CANCELLED, scheduled_date=target, scheduled_time="11:00")

        data = client.get(f"{API}/{lawyer.id}/availability", params={"date": target.isoformat()}).json()["data"]
        times = [slot["time"] for slot in data["slots"]]
        assert times[0] == "09:00"
        assert "10:00" not in times
        assert "11:00" in times
        assert len(times) == 8
        assert data["booked_slots"] == 1

    def test_blocked_period_removes_slots(self, client, db, lawyer):
        target = future_date(4)
        start = datetime(target.year, target.month, target.day, 13)
        client.post(
            f"{API}/blocked-periods",
            json={"start_date": start.isoformat(), "end_date": (start + timedelta(hours=2)).isoformat(), "reason": "Court"},
            headers=auth_headers(lawyer.user),
        )

        data = client.get(f"{API}/{lawyer.id}/availability", params={"date": target.isoformat()}).json()["data"]
        times = [slot["time"] for slot in data["slots"]]
        assert "13:00" not in times
        assert "14:00" not in times
        assert "15:00" in times

    def test_unavailable_lawyer_has_no_slots(self, client, db, lawyer):
        lawyer.is_available = False
        db.commit()
        data = client.get(f"{API}/{lawyer.id}/availability").json()["data"]
        assert data["slots"] == []

    def test_unknown_lawyer(self, client):
        assert client.get(f"{API}/missing/availability").status_code == 404


class TestBlockedPeriods:
    def test_crud(self, client, lawyer):
        headers = auth_headers(lawyer.user)
        start = datetime.utcnow() + timedelta(days=2)
        created = client.post(
            f"{API}/blocked-periods",
            json={"start_date": start.isoformat(), "end_date": (start + timedelta(days=1)).isoformat()},
            headers=headers,
        )
        assert created.status_code == 201
        period_id = created.json()["data"]["id"]

        assert [p["id"] for p in client.get(f"{API}/blocked-periods", headers=headers).json()["data"]] == [period_id]
        assert client.delete(f"{API}/blocked-periods/{period_id}", headers=headers).status_code == 200
        assert client.delete(f"{API}/blocked-periods/{period_id}", headers=headers).status_code == 404

    def test_end_must_follow_start(self, client, lawyer):
        start = datetime.utcnow() + timedelta(days=2)
        response = client.post(
            f"{API}/blocked-periods",
            json={"start_date": start.isoformat(), "end_date": start.isoformat()},
            headers=auth_headers(lawyer.user),
        )
        assert response.status_code == 400


class TestSavedLawyers:
    def test_save_list_unsave(self, client, user, lawyer):
        headers = auth_headers(user)
        assert client.post(f"{API}/{lawyer.id}/save", headers=headers).status_code == 201
        assert client.post(f"{API}/{lawyer.id}/save", headers=headers).status_code == 409

        body = client.get(f"{API}/saved/list", headers=headers).json()
        assert body["meta"]["total"] == 1
        assert body["data"][0]["saved_at"] is not None

        assert client.delete(f"{API}/{lawyer.id}/save", headers=headers).status_code == 200
        assert client.delete(f"{API}/{lawyer.id}/save", headers=headers).status_code == 404

    def test_save_unknown_lawyer(self, client, user):
        assert client.post(f"{API}/missing/save", headers=auth_headers(user)).status_code == 404

