from decimal import Decimal

from app.models import (
    AuditAction, AuditLog, CasePayment, CasePaymentStatus, CaseStatus, Lawyer, Notification, NotificationType,
)

from conftest import auth_headers, make_case

API = "/api/v1/case-payments"


def request_payment(client, case, lawyer, amount="1500.50", description="Drafting the legal notice"):
    return client.post(
        f"{API}/cases/{case.id}/request",
        json={"amount": amount, "description": description},
        headers=auth_headers(lawyer.user),
    )


class TestPaymentRequests:
    def test_lawyer_requests_payment_in_rupees(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        response = request_payment(client, case, lawyer)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["amount_in_paise"] == 150050
        assert data["formatted_amount"] == "₹1,500.50"
        assert data["status"] == "REQUESTED"
        assert data["requested_by_lawyer_id"] == lawyer.id
        notification = db.query(Notification).filter(Notification.user_id == user.id).one()
        assert notification.type == NotificationType.PAYMENT_REQUEST_RECEIVED

    def test_amount_must_be_positive(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        assert request_payment(client, case, lawyer, amount="0").status_code == 422

    def test_description_required(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        assert request_payment(client, case, lawyer, description="  ").status_code == 422

    def test_client_cannot_request(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        response = client.post(
            f"{API}/cases/{case.id}/request",
            json={"amount": "100", "description": "Nope"},
            headers=auth_headers(user),
        )
        assert response.status_code == 403

    def test_no_requests_on_closed_case(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer, status=CaseStatus.CLOSED)
        assert request_payment(client, case, lawyer).status_code == 400

    def test_list_for_case(self, client, db, user, other_user, lawyer):
        case = make_case(db, user, lawyer)
        request_payment(client, case, lawyer)
        request_payment(client, case, lawyer, amount="200")

        assert len(client.get(f"{API}/cases/{case.id}", headers=auth_headers(user)).json()["data"]) == 2
        assert client.get(f"{API}/cases/{case.id}", headers=auth_headers(other_user)).status_code == 403


class TestClientResponses:
    def test_deny(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        payment_id = request_payment(client, case, lawyer).json()["data"]["id"]

        response = client.put(f"{API}/{payment_id}/deny", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "DENIED"
        assert db.query(Notification).filter(Notification.user_id == lawyer.user_id).count() == 1

        assert client.put(f"{API}/{payment_id}/deny", headers=auth_headers(user)).status_code == 400
        assert client.post(f"{API}/{payment_id}/pay", headers=auth_headers(user)).status_code == 400

    def test_lawyer_cannot_respond(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        payment_id = request_payment(client, case, lawyer).json()["data"]["id"]
        assert client.put(f"{API}/{payment_id}/deny", headers=auth_headers(lawyer.user)).status_code == 403

    def test_pay_completes_and_credits_lawyer(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        payment_id = request_payment(client, case, lawyer).json()["data"]["id"]

        response = client.post(f"{API}/{payment_id}/pay", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "COMPLETED"
        assert data["razorpay_order_id"].startswith("case_order_")
        assert data["razorpay_payment_id"].startswith("case_pay_")

        db.expire_all()
        assert db.get(Lawyer, lawyer.id).total_earnings == Decimal("1500.50")
        audit = db.query(AuditLog).filter(AuditLog.entity_id == payment_id).one()
        assert audit.action == AuditAction.PAYMENT_MADE
        assert db.query(Notification).filter(Notification.type == NotificationType.PAYMENT_RECEIVED).count() == 2

        assert client.post(f"{API}/{payment_id}/pay", headers=auth_headers(user)).status_code == 400

    def test_my_payments_by_role(self, client, db, user, lawyer):
        case = make_case(db, user, lawyer)
        request_payment(client, case, lawyer)

        assert len(client.get(f"{API}/my-payments", headers=auth_headers(user)).json()["data"]) == 1
        assert len(client.get(f"{API}/my-payments", headers=auth_headers(lawyer.user)).json()["data"]) == 1

    def test_get_single(self, client, db, user, other_user, lawyer, admin):
        case = make_case(db, user, lawyer)
        payment_id = request_payment(client, case, lawyer).json()["data"]["id"]

        assert client.get(f"{API}/{payment_id}", headers=auth_headers(lawyer.user)).status_code == 200
        assert client.get(f"{API}/{payment_id}", headers=auth_headers(admin)).status_code == 200
        assert client.get(f"{API}/{payment_id}", headers=auth_headers(other_user)).status_code == 403
        assert db.query(CasePayment).one().status == CasePaymentStatus.REQUESTED
