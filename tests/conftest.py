"""
Shared fixtures: an in-memory SQLite database rebuilt for every test, a
TestClient over the FastAPI app, and small factories for users, lawyers,
bookings and cases. External services (Supabase storage, Razorpay) are
patched out.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"

from datetime import date, timedelta
from decimal import Decimal
from itertools import count
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.auth.utils import create_access_token, get_password_hash
from app.database import Base, SessionLocal, engine
from app.models import (
    Booking, BookingStatus, Case, CaseStatus, Lawyer, LawyerSpecialization, PracticeArea, User, UserRole,
    VerificationStatus,
)
from app.rate_limiter import reset_rate_limits
from app.utils.identifiers import generate_booking_number, generate_case_number
from main import app

PASSWORD = "Passw0rd!"
WEEK = {
    day: {"enabled": True, "start": "09:00", "end": "18:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
}

_sequence = count(1)


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_rate_limits()
    yield


@pytest.fixture(autouse=True)
def external_services():
    """Stub Supabase storage and the Razorpay REST client."""
    with patch("app.services.storage.upload_file", side_effect=lambda path, *a, **k: path) as upload, \
            patch("app.services.storage.get_public_url", side_effect=lambda path, *a, **k: f"https://files.test/{path}"), \
            patch("app.services.storage.delete_file") as delete, \
            patch("app.services.storage.create_signed_url", return_value="https://files.test/signed?token=abc"), \
            patch("app.services.razorpay_client.create_order") as create_order, \
            patch("app.services.razorpay_client.refund_payment") as refund:
        create_order.side_effect = lambda amount, receipt, notes=None, currency="INR": {
            "id": f"order_{receipt}", "amount": amount, "currency": currency,
        }
        refund.return_value = {"id": "rfnd_test_1"}
        yield {"upload": upload, "delete": delete, "create_order": create_order, "refund": refund}


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def future_date(days: int = 7) -> date:
    return date.today() + timedelta(days=days)


def make_user(db, role: UserRole = UserRole.USER, first_name: str = "Asha", last_name: str = "Verma", **fields) -> User:
    n = next(_sequence)
    user = User(
        email=fields.pop("email", f"user{n}@example.com"),
        password=get_password_hash(PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_email_verified=True,
        **fields,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_lawyer(db, verified: bool = True, hourly_rate=Decimal("2000.00"), first_name: str = "Rohan",
                last_name: str = "Mehta", **fields) -> Lawyer:
    user = make_user(db, role=UserRole.LAWYER, first_name=first_name, last_name=last_name)
    n = next(_sequence)
    lawyer = Lawyer(
        user_id=user.id,
        bar_council_id=f"MH/{1000 + n}/2015",
        bar_council_state="Maharashtra",
        enrollment_year=2015,
        experience=10,
        hourly_rate=hourly_rate,
        city=fields.pop("city", "Mumbai"),
        state=fields.pop("state", "Maharashtra"),
        slug=f"{first_name.lower()}-{last_name.lower()}-{n}",
        verification_status=VerificationStatus.VERIFIED if verified else VerificationStatus.PENDING,
        is_available=True,
        availability=WEEK,
        languages=["English", "Hindi"],
        **fields,
    )
    db.add(lawyer)
    db.commit()
    db.refresh(lawyer)
    return lawyer


def make_practice_area(db, name: str = "Family Law", **fields) -> PracticeArea:
    area = PracticeArea(name=name, slug=name.lower().replace(" ", "-"), **fields)
    db.add(area)
    db.commit()
    db.refresh(area)
    return area


def add_specialization(db, lawyer: Lawyer, area: PracticeArea, is_primary: bool = False):
    db.add(LawyerSpecialization(lawyer_id=lawyer.id, practice_area_id=area.id, is_primary=is_primary))
    db.commit()


def make_booking(db, client: User, lawyer: Lawyer, status: BookingStatus = BookingStatus.PENDING,
                 scheduled_date: date = None, scheduled_time: str = "10:00", amount=Decimal("2000.00")) -> Booking:
    booking = Booking(
        booking_number=generate_booking_number(),
        client_id=client.id,
        lawyer_id=lawyer.id,
        scheduled_date=scheduled_date or future_date(),
        scheduled_time=scheduled_time,
        duration=60,
        amount=amount,
        status=status,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def make_case(db, client: User, lawyer: Lawyer, status: CaseStatus = CaseStatus.OPEN, title: str = "Property dispute") -> Case:
    case = Case(
        case_number=generate_case_number(),
        title=title,
        description="Boundary wall dispute with neighbour",
        status=status,
        client_id=client.id,
        lawyer_id=lawyer.id,
    )
    db.add(case)
    db.commit()
    db.refresh(case)
    return case


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def other_user(db):
    return make_user(db, first_name="Kabir", last_name="Singh")


@pytest.fixture
def admin(db):
    return make_user(db, role=UserRole.ADMIN, first_name="Admin", last_name="User")


@pytest.fixture
def lawyer(db):
    return make_lawyer(db)
