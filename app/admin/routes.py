import logging
import time
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from app.admin.schemas import (
    LawyerVerification, PracticeAreaCreate, PracticeAreaUpdate, UserRoleUpdate, UserStatusUpdate,
)
from app.auth.dependencies import require_admin
from app.database import check_database_health, get_db
from app.errors import BadRequestError, ConflictError, NotFoundError
from app.lawyers.schemas import PracticeAreaResponse
from app.logging_config import log_business
from app.models import (
    Booking, BookingStatus, Lawyer, LawyerSpecialization, NotificationType, Payment, PaymentStatus, PracticeArea,
    RefreshToken, User, UserRole, VerificationStatus,
)
from app.services.booking_service import serialize_booking, serialize_payment
from app.services.notification_service import notify_in_background
from app.services.storage import check_storage_health
from app.users.schemas import UserListItem
from app.utils.identifiers import slugify
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin Tools"], dependencies=[Depends(require_admin())])

STARTED_AT = time.monotonic()


def _sum_completed_payments(db: Session, since: Optional[datetime] = None):
    query = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(Payment.status == PaymentStatus.COMPLETED)
    if since is not None:
        query = query.filter(Payment.processed_at >= since)
    return query.scalar()


def serialize_admin_lawyer(lawyer: Lawyer) -> dict:
    return {
        "id": lawyer.id,
        "slug": lawyer.slug,
        "name": lawyer.user.full_name,
        "email": lawyer.user.email,
        "phone": lawyer.user.phone,
        "bar_council_id": lawyer.bar_council_id,
        "bar_council_state": lawyer.bar_council_state,
        "enrollment_year": lawyer.enrollment_year,
        "city": lawyer.city,
        "state": lawyer.state,
        "experience": lawyer.experience,
        "hourly_rate": lawyer.hourly_rate,
        "verification_status": lawyer.verification_status,
        "verified_at": lawyer.verified_at,
        "rejection_reason": lawyer.rejection_reason,
        "is_available": lawyer.is_available,
        "average_rating": lawyer.average_rating,
        "total_bookings": lawyer.total_bookings,
        "created_at": lawyer.created_at,
    }


def _get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise NotFoundError("User", user_id)
    return user


# =====================================================
# DASHBOARD
# =====================================================

@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    now = datetime.utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = now - timedelta(days=7)
    start_of_month = start_of_day.replace(day=1)

    def booking_count(*criteria):
        return db.query(func.count(Booking.id)).filter(*criteria).scalar()

    recent_bookings = db.query(Booking).options(
        joinedload(Booking.client), joinedload(Booking.lawyer).joinedload(Lawyer.user)
    ).order_by(Booking.created_at.desc()).limit(5).all()
    recent_users = db.query(User).filter(User.deleted_at.is_(None)).order_by(User.created_at.desc()).limit(5).all()

    return success_response({
        "users": {
            "total": db.query(func.count(User.id)).filter(User.deleted_at.is_(None)).scalar(),
            "lawyers": db.query(func.count(Lawyer.id)).scalar(),
            "verified_lawyers": db.query(func.count(Lawyer.id)).filter(
                Lawyer.verification_status == VerificationStatus.VERIFIED
            ).scalar(),
            "pending_verifications": db.query(func.count(Lawyer.id)).filter(
                Lawyer.verification_status == VerificationStatus.PENDING
            ).scalar(),
        },
        "bookings": {
            "total": booking_count(),
            "today": booking_count(Booking.created_at >= start_of_day),
            "this_week": booking_count(Booking.created_at >= start_of_week),
            "this_month": booking_count(Booking.created_at >= start_of_month),
            "completed": booking_count(Booking.status == BookingStatus.COMPLETED),
            "pending": booking_count(Booking.status == BookingStatus.PENDING),
        },
        "revenue": {
            "total": _sum_completed_payments(db),
            "this_month": _sum_completed_payments(db, since=start_of_month),
        },
        "recent_bookings": [
            {
                "id": b.id,
                "booking_number": b.booking_number,
                "client": b.client.full_name,
                "lawyer": b.lawyer.user.full_name,
                "status": b.status,
                "created_at": b.created_at,
            }
            for b in recent_bookings
        ],
        "recent_users": [UserListItem.model_validate(u) for u in recent_users],
    })


# =====================================================
# USER MANAGEMENT
# =====================================================

@router.get("/users")
def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    pagination: Pagination = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    query = db.query(User).filter(User.deleted_at.is_(None))
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    if search:
        query = query.filter(or_(
            User.email.ilike(f"%{search}%"),
            User.first_name.ilike(f"%{search}%"),
            User.last_name.ilike(f"%{search}%"),
        ))

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([UserListItem.model_validate(u) for u in users], total, pagination.page, pagination.limit)


@router.put("/users/{user_id}/status")
def update_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    user = _get_user(db, user_id)
    if user.id == current_user.id and not payload.is_active:
        raise BadRequestError("Cannot deactivate your own account")

    user.is_active = payload.is_active
    if not payload.is_active:
        db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None)
        ).update({"revoked_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()
    db.refresh(user)

    log_business("USER_STATUS_CHANGED", user_id=user.id, is_active=user.is_active, by=current_user.id)
    return success_response(
        UserListItem.model_validate(user),
        f"User {'activated' if user.is_active else 'deactivated'} successfully",
    )


@router.put("/users/{user_id}/role")
def update_user_role(
    user_id: str,
    payload: UserRoleUpdate,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    user = _get_user(db, user_id)
    if user.id == current_user.id:
        raise BadRequestError("Cannot change your own role")

    user.role = payload.role
    db.commit()
    db.refresh(user)

    log_business("USER_ROLE_CHANGED", user_id=user.id, role=user.role.value, by=current_user.id)
    return success_response(UserListItem.model_validate(user), f"User role updated to {user.role.value}")


@router.delete("/users/{user_id}")
def delete_user(user_id: str, current_user: User = Depends(require_admin()), db: Session = Depends(get_db)):
    user = _get_user(db, user_id)
    if user.id == current_user.id:
        raise BadRequestError("Cannot delete your own account")
    if user.role == UserRole.ADMIN:
        raise BadRequestError("Cannot delete admin accounts")

    # Soft delete keeps bookings and payments intact
    user.deleted_at = datetime.utcnow()
    user.is_active = False
    db.query(RefreshToken).filter(
        RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None)
    ).update({"revoked_at": datetime.utcnow()}, synchronize_session=False)
    db.commit()

    log_business("USER_DELETED", user_id=user.id, by=current_user.id)
    return success_response(message="User deleted successfully")


# =====================================================
# LAWYER VERIFICATION
# =====================================================

@router.get("/lawyers/pending")
def pending_lawyers(pagination: Pagination = Depends(pagination_params), db: Session = Depends(get_db)):
    query = db.query(Lawyer).options(joinedload(Lawyer.user)).filter(
        Lawyer.verification_status.in_([VerificationStatus.PENDING, VerificationStatus.UNDER_REVIEW])
    )
    total = query.count()
    lawyers = query.order_by(Lawyer.created_at.asc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_admin_lawyer(l) for l in lawyers], total, pagination.page, pagination.limit)


@router.get("/lawyers")
def list_lawyers(
    status: Optional[VerificationStatus] = None,
    search: Optional[str] = None,
    pagination: Pagination = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    query = db.query(Lawyer).join(User, Lawyer.user_id == User.id).options(joinedload(Lawyer.user))
    if status:
        query = query.filter(Lawyer.verification_status == status)
    if search:
        query = query.filter(or_(
            User.first_name.ilike(f"%{search}%"),
            User.last_name.ilike(f"%{search}%"),
            User.email.ilike(f"%{search}%"),
            Lawyer.bar_council_id.ilike(f"%{search}%"),
        ))

    total = query.count()
    lawyers = query.order_by(Lawyer.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_admin_lawyer(l) for l in lawyers], total, pagination.page, pagination.limit)


@router.put("/lawyers/{lawyer_id}/verify")
def verify_lawyer(
    lawyer_id: str,
    payload: LawyerVerification,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    if payload.action == "reject" and not (payload.rejection_reason or "").strip():
        raise BadRequestError("Rejection reason is required")

    lawyer = db.query(Lawyer).options(joinedload(Lawyer.user)).filter(Lawyer.id == lawyer_id).first()
    if not lawyer:
        raise NotFoundError("Lawyer", lawyer_id)

    approved = payload.action == "approve"
    lawyer.verification_status = VerificationStatus.VERIFIED if approved else VerificationStatus.REJECTED
    lawyer.verified_at = datetime.utcnow() if approved else None
    lawyer.verified_by = current_user.id
    lawyer.rejection_reason = None if approved else payload.rejection_reason.strip()
    db.commit()

    background_tasks.add_task(
        notify_in_background,
        user_id=lawyer.user_id,
        type=NotificationType.PROFILE_VERIFIED,
        title="Profile Verified" if approved else "Profile Verification Rejected",
        message="Your lawyer profile has been verified. Clients can now book consultations with you."
        if approved else f"Your lawyer profile was not approved. Reason: {lawyer.rejection_reason}",
        action_url="/lawyer/profile",
        metadata={"lawyer_id": lawyer.id, "action": payload.action},
    )

    log_business("LAWYER_VERIFICATION", lawyer_id=lawyer.id, action=payload.action, verified_by=current_user.id)
    return success_response(
        {
            "id": lawyer.id,
            "verification_status": lawyer.verification_status,
            "lawyer": lawyer.user.full_name,
        },
        f"Lawyer {'verified' if approved else 'rejected'} successfully",
    )


# =====================================================
# BOOKINGS, PAYMENTS & REVENUE
# =====================================================

@router.get("/bookings")
def list_bookings(
    status: Optional[BookingStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    pagination: Pagination = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    query = db.query(Booking).options(
        joinedload(Booking.client),
        joinedload(Booking.lawyer).joinedload(Lawyer.user),
        joinedload(Booking.payment),
    )
    if status:
        query = query.filter(Booking.status == status)
    if start_date:
        query = query.filter(Booking.scheduled_date >= start_date)
    if end_date:
        query = query.filter(Booking.scheduled_date <= end_date)

    total = query.count()
    bookings = query.order_by(Booking.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_booking(b) for b in bookings], total, pagination.page, pagination.limit)


@router.get("/payments")
def list_payments(
    status: Optional[PaymentStatus] = None,
    pagination: Pagination = Depends(pagination_params),
    db: Session = Depends(get_db)
):
    query = db.query(Payment).options(joinedload(Payment.user), joinedload(Payment.booking))
    if status:
        query = query.filter(Payment.status == status)

    total = query.count()
    payments = query.order_by(Payment.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    data = [
        dict(
            serialize_payment(p),
            booking_number=p.booking.booking_number if p.booking else None,
            user={"id": p.user.id, "name": p.user.full_name, "email": p.user.email},
        )
        for p in payments
    ]
    return paginated_response(data, total, pagination.page, pagination.limit)


def _revenue_bucket(moment: datetime, group_by: str) -> str:
    if group_by == "month":
        return moment.strftime("%Y-%m")
    if group_by == "week":
        # Weeks start on Sunday
        week_start = moment.date() - timedelta(days=(moment.weekday() + 1) % 7)
        return week_start.isoformat()
    return moment.date().isoformat()


@router.get("/revenue")
def revenue(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    group_by: Literal["day", "week", "month"] = "day",
    db: Session = Depends(get_db)
):
    end = end_date or datetime.utcnow()
    start = start_date or end - timedelta(days=30)

    payments = db.query(Payment.amount, Payment.processed_at).filter(
        Payment.status == PaymentStatus.COMPLETED,
        Payment.processed_at >= start,
        Payment.processed_at <= end,
    ).order_by(Payment.processed_at.asc()).all()

    grouped = {}
    for amount, processed_at in payments:
        key = _revenue_bucket(processed_at, group_by)
        bucket = grouped.setdefault(key, {"date": key, "revenue": Decimal("0"), "count": 0})
        bucket["revenue"] += Decimal(str(amount))
        bucket["count"] += 1

    series = sorted(grouped.values(), key=lambda b: b["date"])
    total_revenue = sum((b["revenue"] for b in series), Decimal("0"))
    total_transactions = sum(b["count"] for b in series)

    return success_response({
        "time_series": series,
        "summary": {
            "total_revenue": total_revenue,
            "total_transactions": total_transactions,
            "average_transaction_value": (
                (total_revenue / total_transactions).quantize(Decimal("0.01")) if total_transactions else 0
            ),
            "period": {"start": start, "end": end},
        },
    })


# =====================================================
# PRACTICE AREAS
# =====================================================

@router.get("/practice-areas")
def list_practice_areas(db: Session = Depends(get_db)):
    counts = dict(
        db.query(LawyerSpecialization.practice_area_id, func.count(LawyerSpecialization.id))
        .group_by(LawyerSpecialization.practice_area_id).all()
    )
    areas = db.query(PracticeArea).order_by(PracticeArea.display_order, PracticeArea.name).all()
    return success_response([
        dict(
            PracticeAreaResponse.model_validate(a).model_dump(),
            display_order=a.display_order,
            is_active=a.is_active,
            lawyer_count=counts.get(a.id, 0),
        )
        for a in areas
    ])


@router.post("/practice-areas", status_code=status.HTTP_201_CREATED)
def create_practice_area(payload: PracticeAreaCreate, db: Session = Depends(get_db)):
    slug = slugify(payload.name)
    if db.query(PracticeArea.id).filter(or_(PracticeArea.name == payload.name, PracticeArea.slug == slug)).first():
        raise ConflictError("A practice area with this name already exists")

    area = PracticeArea(
        name=payload.name.strip(),
        slug=slug,
        description=payload.description,
        icon=payload.icon,
        display_order=payload.display_order,
    )
    db.add(area)
    db.commit()
    db.refresh(area)
    return success_response(PracticeAreaResponse.model_validate(area), "Practice area created successfully")


@router.put("/practice-areas/{area_id}")
def update_practice_area(area_id: str, payload: PracticeAreaUpdate, db: Session = Depends(get_db)):
    area = db.query(PracticeArea).filter(PracticeArea.id == area_id).first()
    if not area:
        raise NotFoundError("Practice area", area_id)

    update_data = payload.dict(exclude_unset=True)
    if update_data.get("name"):
        update_data["slug"] = slugify(update_data["name"])
    for field, value in update_data.items():
        if value is not None:
            setattr(area, field, value)
    db.commit()
    db.refresh(area)
    return success_response(PracticeAreaResponse.model_validate(area), "Practice area updated successfully")


@router.delete("/practice-areas/{area_id}")
def delete_practice_area(area_id: str, db: Session = Depends(get_db)):
    area = db.query(PracticeArea).filter(PracticeArea.id == area_id).first()
    if not area:
        raise NotFoundError("Practice area", area_id)

    in_use = db.query(func.count(LawyerSpecialization.id)).filter(
        LawyerSpecialization.practice_area_id == area_id
    ).scalar()
    if in_use:
        raise BadRequestError(f"Cannot delete: {in_use} lawyers are using this practice area")

    db.delete(area)
    db.commit()
    return success_response(message="Practice area deleted successfully")


# =====================================================
# SYSTEM
# =====================================================

@router.get("/system/health")
def system_health():
    database_ok = check_database_health()
    storage_ok = check_storage_health()
    return success_response({
        "status": "healthy" if database_ok and storage_ok else "degraded",
        "components": {
            "database": "healthy" if database_ok else "unhealthy",
            "storage": "healthy" if storage_ok else "unhealthy",
        },
        "uptime": round(time.monotonic() - STARTED_AT, 2),
        "timestamp": datetime.utcnow(),
    })
