import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user, get_lawyer_profile, get_optional_user, require_lawyer
from app.constants import ACTIVE_BOOKING_STATUSES
from app.database import get_db
from app.errors import BadRequestError, ConflictError, NotFoundError
from app.lawyers.schemas import (
    AvailabilityToggle, BlockedPeriodCreate, BlockedPeriodResponse, LawyerProfileUpdate, PaymentCredentialsUpdate,
    PracticeAreaResponse,
)
from app.models import (
    BlockedPeriod, Booking, Lawyer, LawyerSpecialization, PracticeArea, Review, SavedLawyer, SearchLog, User,
    VerificationStatus,
)
from app.rate_limiter import search_limiter
from app.utils.pagination import Pagination, pagination_params, parse_sort
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lawyers", tags=["Lawyers"])

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

SORT_FIELDS = {
    "rating": Lawyer.average_rating,
    "price": Lawyer.hourly_rate,
    "experience": Lawyer.experience,
    "reviews": Lawyer.total_reviews,
    "newest": Lawyer.created_at,
}


def _location(lawyer: Lawyer) -> Optional[str]:
    if lawyer.city and lawyer.state:
        return f"{lawyer.city}, {lawyer.state}"
    return lawyer.city or lawyer.state


def serialize_lawyer_card(lawyer: Lawyer) -> dict:
    specializations = sorted(lawyer.specializations, key=lambda s: not s.is_primary)
    return {
        "id": lawyer.id,
        "slug": lawyer.slug,
        "name": lawyer.user.full_name,
        "avatar": lawyer.user.avatar,
        "headline": lawyer.headline,
        "experience": lawyer.experience,
        "hourly_rate": lawyer.hourly_rate,
        "currency": lawyer.currency,
        "city": lawyer.city,
        "state": lawyer.state,
        "location": _location(lawyer),
        "rating": round(lawyer.average_rating or 0, 1),
        "total_reviews": lawyer.total_reviews,
        "completed_bookings": lawyer.completed_bookings,
        "is_available": lawyer.is_available,
        "featured": lawyer.featured,
        "specializations": [
            {"id": s.practice_area.id, "name": s.practice_area.name, "slug": s.practice_area.slug}
            for s in specializations[:3]
        ],
    }


def serialize_lawyer_profile(lawyer: Lawyer, include_private: bool = False) -> dict:
    data = serialize_lawyer_card(lawyer)
    data.update({
        "bio": lawyer.bio,
        "bar_council_id": lawyer.bar_council_id,
        "bar_council_state": lawyer.bar_council_state,
        "enrollment_year": lawyer.enrollment_year,
        "consultation_fee": lawyer.consultation_fee,
        "address": lawyer.address,
        "languages": lawyer.languages or [],
        "availability": lawyer.availability or {},
        "verification_status": lawyer.verification_status,
        "total_bookings": lawyer.total_bookings,
        "specializations": [
            {
                "id": s.practice_area.id,
                "name": s.practice_area.name,
                "slug": s.practice_area.slug,
                "is_primary": s.is_primary,
            }
            for s in sorted(lawyer.specializations, key=lambda s: not s.is_primary)
        ],
    })
    if include_private:
        data.update({
            "email": lawyer.user.email,
            "phone": lawyer.user.phone,
            "first_name": lawyer.user.first_name,
            "last_name": lawyer.user.last_name,
            "rejection_reason": lawyer.rejection_reason,
            "verified_at": lawyer.verified_at,
            "total_earnings": lawyer.total_earnings,
            "bank_account_name": lawyer.bank_account_name,
            "bank_account_number": lawyer.bank_account_number,
            "bank_ifsc_code": lawyer.bank_ifsc_code,
            "upi_id": lawyer.upi_id,
        })
    return data


def _lawyer_options():
    return (
        joinedload(Lawyer.user),
        joinedload(Lawyer.specializations).joinedload(LawyerSpecialization.practice_area),
    )


def _public_lawyer_query(db: Session):
    return db.query(Lawyer).join(User, Lawyer.user_id == User.id).filter(
        Lawyer.verification_status == VerificationStatus.VERIFIED,
        User.is_active == True,
        User.deleted_at.is_(None),
    )


@router.get("/")
def search_lawyers(
    city: Optional[str] = None,
    state: Optional[str] = None,
    min_rating: Optional[float] = None,
    min_rate: Optional[float] = None,
    max_rate: Optional[float] = None,
    min_experience: Optional[int] = None,
    max_experience: Optional[int] = None,
    specialization: Optional[str] = None,
    search: Optional[str] = None,
    available: Optional[bool] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    _: None = Depends(search_limiter),
):
    query = _public_lawyer_query(db)

    if available is not False:
        query = query.filter(Lawyer.is_available == True)
    if city:
        query = query.filter(Lawyer.city.ilike(f"%{city}%"))
    if state:
        query = query.filter(Lawyer.state.ilike(f"%{state}%"))
    if min_rating is not None:
        query = query.filter(Lawyer.average_rating >= min_rating)
    if min_rate is not None:
        query = query.filter(Lawyer.hourly_rate >= min_rate)
    if max_rate is not None:
        query = query.filter(Lawyer.hourly_rate <= max_rate)
    if min_experience is not None:
        query = query.filter(Lawyer.experience >= min_experience)
    if max_experience is not None:
        query = query.filter(Lawyer.experience <= max_experience)
    if specialization:
        slugs = [s.strip() for s in specialization.split(",") if s.strip()]
        query = query.filter(Lawyer.specializations.any(
            LawyerSpecialization.practice_area.has(PracticeArea.slug.in_(slugs))
        ))
    if search:
        query = query.filter(or_(
            Lawyer.bio.ilike(f"%{search}%"),
            Lawyer.headline.ilike(f"%{search}%"),
            User.first_name.ilike(f"%{search}%"),
            User.last_name.ilike(f"%{search}%"),
        ))

    sort_column, order = parse_sort(sort_by, sort_order, SORT_FIELDS, "rating", "desc")
    total = query.count()
    lawyers = query.options(*_lawyer_options()).order_by(
        sort_column.desc() if order == "desc" else sort_column.asc()
    ).offset(pagination.skip).limit(pagination.limit).all()

    if search:
        db.add(SearchLog(
            user_id=current_user.id if current_user else None,
            query=search,
            filters={
                "city": city, "state": state, "specialization": specialization,
                "min_rate": min_rate, "max_rate": max_rate, "min_rating": min_rating,
            },
            results_count=total,
        ))
        db.commit()

    return paginated_response([serialize_lawyer_card(l) for l in lawyers], total, pagination.page, pagination.limit)


@router.get("/featured")
def featured_lawyers(limit: int = Query(6), db: Session = Depends(get_db)):
    limit = min(max(limit, 1), 20)
    lawyers = _public_lawyer_query(db).filter(
        Lawyer.featured == True,
        Lawyer.is_available == True,
    ).options(*_lawyer_options()).order_by(Lawyer.average_rating.desc()).limit(limit).all()
    return success_response([serialize_lawyer_card(l) for l in lawyers])


@router.get("/practice-areas")
def practice_areas(db: Session = Depends(get_db)):
    areas = db.query(PracticeArea).filter(PracticeArea.is_active == True).order_by(PracticeArea.display_order).all()
    counts = dict(
        db.query(LawyerSpecialization.practice_area_id, func.count(LawyerSpecialization.id))
        .join(Lawyer, LawyerSpecialization.lawyer_id == Lawyer.id)
        .filter(Lawyer.verification_status == VerificationStatus.VERIFIED, Lawyer.is_available == True)
        .group_by(LawyerSpecialization.practice_area_id).all()
    )
    return success_response([
        dict(PracticeAreaResponse.model_validate(a).model_dump(), lawyer_count=counts.get(a.id, 0))
        for a in areas
    ])


@router.get("/profile")
def my_lawyer_profile(current_user: User = Depends(require_lawyer()), db: Session = Depends(get_db)):
    lawyer = get_lawyer_profile(db, current_user)
    return success_response(serialize_lawyer_profile(lawyer, include_private=True))


@router.put("/profile")
def update_lawyer_profile(
    profile_data: LawyerProfileUpdate,
    current_user: User = Depends(require_lawyer()),
    db: Session = Depends(get_db)
):
    lawyer = get_lawyer_profile(db, current_user)
    update_data = profile_data.dict(exclude_unset=True)

    for field in ("first_name", "last_name", "phone"):
        if update_data.get(field):
            setattr(current_user, field, update_data.pop(field).strip())
        else:
            update_data.pop(field, None)

    specializations = update_data.pop("specializations", None)

    for field, value in update_data.items():
        setattr(lawyer, field, value)

    if specializations is not None:
        db.query(LawyerSpecialization).filter(LawyerSpecialization.lawyer_id == lawyer.id).delete()
        wanted = [s.strip().lower() for s in specializations if s.strip()]
        areas = db.query(PracticeArea).filter(or_(
            PracticeArea.slug.in_(wanted),
            PracticeArea.name.in_([s.strip() for s in specializations]),
        )).all()
        # Keep the caller's order so the first one named becomes primary
        areas.sort(key=lambda a: min(
            wanted.index(a.slug) if a.slug in wanted else len(wanted),
            wanted.index(a.name.lower()) if a.name.lower() in wanted else len(wanted),
        ))
        for index, area in enumerate(areas):
            db.add(LawyerSpecialization(lawyer_id=lawyer.id, practice_area_id=area.id, is_primary=index == 0))

    db.commit()
    db.refresh(lawyer)
    return success_response(serialize_lawyer_profile(lawyer, include_private=True), "Profile updated successfully")


@router.put("/me/payment-credentials")
def update_payment_credentials(
    credentials: PaymentCredentialsUpdate,
    current_user: User = Depends(require_lawyer()),
    db: Session = Depends(get_db)
):
    update_data = credentials.dict(exclude_unset=True)
    if not any(update_data.values()):
        raise BadRequestError("At least one payment credential field is required")

    lawyer = get_lawyer_profile(db, current_user)
    if "bank_ifsc_code" in update_data:
        update_data["bank_ifsc_code"] = update_data["bank_ifsc_code"].upper() if update_data["bank_ifsc_code"] else None
    for field, value in update_data.items():
        setattr(lawyer, field, value)
    db.commit()

    return success_response({
        "id": lawyer.id,
        "bank_account_name": lawyer.bank_account_name,
        "bank_account_number": lawyer.bank_account_number,
        "bank_ifsc_code": lawyer.bank_ifsc_code,
        "upi_id": lawyer.upi_id,
    }, "Payment credentials updated successfully")


@router.put("/availability")
def toggle_availability(
    payload: AvailabilityToggle,
    current_user: User = Depends(require_lawyer()),
    db: Session = Depends(get_db)
):
    lawyer = get_lawyer_profile(db, current_user)
    lawyer.is_available = payload.is_available
    db.commit()
    return success_response(
        {"id": lawyer.id, "is_available": lawyer.is_available},
        f"Availability {'enabled' if payload.is_available else 'disabled'}",
    )


# =====================================================
# SAVED LAWYERS
# =====================================================

@router.get("/saved/list")
def saved_lawyers(
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(SavedLawyer).filter(SavedLawyer.user_id == current_user.id)
    total = query.count()
    saved = query.options(
        joinedload(SavedLawyer.lawyer).joinedload(Lawyer.user),
        joinedload(SavedLawyer.lawyer).joinedload(Lawyer.specializations).joinedload(LawyerSpecialization.practice_area),
    ).order_by(SavedLawyer.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()

    data = [dict(serialize_lawyer_card(s.lawyer), saved_at=s.created_at) for s in saved]
    return paginated_response(data, total, pagination.page, pagination.limit)


@router.post("/{lawyer_id}/save", status_code=status.HTTP_201_CREATED)
def save_lawyer(lawyer_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if not db.query(Lawyer.id).filter(Lawyer.id == lawyer_id).first():
        raise NotFoundError("Lawyer", lawyer_id)
    existing = db.query(SavedLawyer).filter(
        SavedLawyer.user_id == current_user.id, SavedLawyer.lawyer_id == lawyer_id
    ).first()
    if existing:
        raise ConflictError("Lawyer is already saved")

    db.add(SavedLawyer(user_id=current_user.id, lawyer_id=lawyer_id))
    db.commit()
    return success_response({"lawyer_id": lawyer_id, "saved": True}, "Lawyer saved")


@router.delete("/{lawyer_id}/save")
def unsave_lawyer(lawyer_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    deleted = db.query(SavedLawyer).filter(
        SavedLawyer.user_id == current_user.id, SavedLawyer.lawyer_id == lawyer_id
    ).delete()
    if not deleted:
        raise NotFoundError("Saved lawyer", lawyer_id)
    db.commit()
    return success_response({"lawyer_id": lawyer_id, "saved": False}, "Lawyer removed from saved list")


# =====================================================
# BLOCKED PERIODS
# =====================================================

@router.post("/blocked-periods", status_code=status.HTTP_201_CREATED)
def create_blocked_period(
    payload: BlockedPeriodCreate,
    current_user: User = Depends(require_lawyer()),
    db: Session = Depends(get_db)
):
    if payload.end_date <= payload.start_date:
        raise BadRequestError("End date must be after start date")

    lawyer = get_lawyer_profile(db, current_user)
    period = BlockedPeriod(
        lawyer_id=lawyer.id,
        start_date=payload.start_date.replace(tzinfo=None),
        end_date=payload.end_date.replace(tzinfo=None),
        reason=payload.reason,
    )
    db.add(period)
    db.commit()
    db.refresh(period)
    return success_response(BlockedPeriodResponse.model_validate(period), "Time blocked")


@router.get("/blocked-periods")
def list_blocked_periods(current_user: User = Depends(require_lawyer()), db: Session = Depends(get_db)):
    lawyer = get_lawyer_profile(db, current_user)
    periods = db.query(BlockedPeriod).filter(
        BlockedPeriod.lawyer_id == lawyer.id,
        BlockedPeriod.end_date >= datetime.utcnow(),
    ).order_by(BlockedPeriod.start_date).all()
    return success_response([BlockedPeriodResponse.model_validate(p) for p in periods])


@router.delete("/blocked-periods/{period_id}")
def delete_blocked_period(period_id: str, current_user: User = Depends(require_lawyer()), db: Session = Depends(get_db)):
    lawyer = get_lawyer_profile(db, current_user)
    deleted = db.query(BlockedPeriod).filter(
        BlockedPeriod.id == period_id, BlockedPeriod.lawyer_id == lawyer.id
    ).delete()
    if not deleted:
        raise NotFoundError("Blocked period", period_id)
    db.commit()
    return success_response(message="Blocked period removed")


# =====================================================
# PUBLIC DETAIL & AVAILABILITY
# =====================================================

@router.get("/{slug_or_id}")
def get_lawyer(slug_or_id: str, db: Session = Depends(get_db)):
    query = _public_lawyer_query(db).options(*_lawyer_options())
    if UUID_PATTERN.match(slug_or_id):
        lawyer = query.filter(Lawyer.id == slug_or_id).first()
    else:
        lawyer = query.filter(Lawyer.slug == slug_or_id).first()
    if not lawyer:
        raise NotFoundError("Lawyer", slug_or_id)

    reviews = db.query(Review).options(joinedload(Review.user)).filter(
        Review.lawyer_id == lawyer.id,
        Review.is_published == True,
        Review.is_hidden == False,
    ).order_by(Review.created_at.desc()).limit(5).all()

    data = serialize_lawyer_profile(lawyer)
    data["bar_council_id"] = None  # public view hides the enrolment number
    data["recent_reviews"] = [
        {
            "id": r.id,
            "rating": r.rating,
            "title": r.title,
            "content": r.content,
            "lawyer_response": r.lawyer_response,
            "author": f"{r.user.first_name} {r.user.last_name[:1]}." if r.user.last_name else r.user.first_name,
            "created_at": r.created_at,
        }
        for r in reviews
    ]
    return success_response(data)


def build_available_slots(lawyer: Lawyer, target: date, booked_times: set, blocked: list) -> list[dict]:
    """Hourly slots from the weekday schedule, minus booked times and blocked periods."""
    schedule = (lawyer.availability or {}).get(WEEKDAYS[target.weekday()])
    if not schedule or schedule.get("enabled") is False or not schedule.get("start") or not schedule.get("end"):
        return []

    start_hour = int(schedule["start"].split(":")[0])
    end_hour = int(schedule["end"].split(":")[0])
    slots = []
    for hour in range(start_hour, end_hour):
        time_str = f"{hour:02d}:00"
        if time_str in booked_times:
            continue
        slot_start = datetime(target.year, target.month, target.day, hour)
        slot_end = slot_start + timedelta(hours=1)
        if any(p.start_date < slot_end and p.end_date > slot_start for p in blocked):
            continue
        slots.append({"time": time_str, "end_time": f"{hour + 1:02d}:00", "available": True})
    return slots


@router.get("/{lawyer_id}/availability")
def lawyer_availability(lawyer_id: str, date: Optional[date] = None, db: Session = Depends(get_db)):
    lawyer = db.query(Lawyer).filter(Lawyer.id == lawyer_id).first()
    if not lawyer:
        raise NotFoundError("Lawyer", lawyer_id)

    target = date or datetime.utcnow().date()
    if not lawyer.is_available:
        return success_response({"date": target, "slots": [], "message": "Lawyer is not available"})

    bookings = db.query(Booking.scheduled_time).filter(
        Booking.lawyer_id == lawyer_id,
        Booking.scheduled_date == target,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
    ).all()
    day_start = datetime(target.year, target.month, target.day)
    blocked = db.query(BlockedPeriod).filter(
        BlockedPeriod.lawyer_id == lawyer_id,
        BlockedPeriod.start_date < day_start + timedelta(days=1),
        BlockedPeriod.end_date > day_start,
    ).all()

    booked_times = {b.scheduled_time for b in bookings}
    return success_response({
        "date": target,
        "slots": build_available_slots(lawyer, target, booked_times, blocked),
        "booked_slots": len(booked_times),
    })
