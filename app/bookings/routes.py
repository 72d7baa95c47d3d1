import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user, get_lawyer_profile, require_verified_lawyer
from app.bookings.schemas import BookingCancel, BookingComplete, BookingConfirm, BookingCreate
from app.constants import ACTIVE_BOOKING_STATUSES
from app.database import get_db
from app.errors import BookingError, ForbiddenError, NotFoundError
from app.logging_config import log_business
from app.models import Booking, BookingStatus, Lawyer, NotificationType, User, UserRole
from app.services import email_service
from app.services.booking_service import BookingService, serialize_booking
from app.services.notification_service import notify_in_background
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

CLOSED_BOOKING_STATUSES = [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW]


def _booking_query(db: Session):
    return db.query(Booking).options(
        joinedload(Booking.lawyer).joinedload(Lawyer.user),
        joinedload(Booking.client),
        joinedload(Booking.payment),
    )


def _get_booking(db: Session, booking_id: str) -> Booking:
    booking = _booking_query(db).filter(Booking.id == booking_id).first()
    if not booking:
        raise NotFoundError("Booking", booking_id)
    return booking


def _is_booking_lawyer(booking: Booking, user: User) -> bool:
    return booking.lawyer is not None and booking.lawyer.user_id == user.id


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_booking(
    booking_data: BookingCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = BookingService(db)
    booking, _ = service.create_booking(
        client=current_user,
        lawyer_id=booking_data.lawyer_id,
        scheduled_date=booking_data.scheduled_date,
        scheduled_time=booking_data.scheduled_time,
        duration=booking_data.duration,
        meeting_type=booking_data.meeting_type,
        client_notes=booking_data.client_notes,
    )
    service.schedule_creation_side_effects(background_tasks, booking, paid=False)
    return success_response(serialize_booking(booking), "Booking created successfully")


@router.get("/")
def my_bookings(
    status: Optional[BookingStatus] = None,
    upcoming: Optional[bool] = None,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = _booking_query(db).filter(Booking.client_id == current_user.id)
    if status:
        query = query.filter(Booking.status == status)
    if upcoming:
        query = query.filter(
            Booking.scheduled_date >= datetime.utcnow().date(),
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        ).order_by(Booking.scheduled_date.asc(), Booking.scheduled_time.asc())
    else:
        query = query.order_by(Booking.scheduled_date.desc(), Booking.scheduled_time.desc())

    total = query.count()
    bookings = query.offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_booking(b) for b in bookings], total, pagination.page, pagination.limit)


@router.get("/lawyer")
def lawyer_bookings(
    status: Optional[BookingStatus] = None,
    date: Optional[date] = None,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(require_verified_lawyer()),
    db: Session = Depends(get_db)
):
    lawyer = get_lawyer_profile(db, current_user)
    query = _booking_query(db).filter(Booking.lawyer_id == lawyer.id)
    if status:
        query = query.filter(Booking.status == status)
    if date:
        query = query.filter(Booking.scheduled_date == date)

    total = query.count()
    bookings = query.order_by(
        Booking.scheduled_date.desc(), Booking.scheduled_time.desc()
    ).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([serialize_booking(b) for b in bookings], total, pagination.page, pagination.limit)


@router.get("/{booking_id}")
def get_booking(booking_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    booking = _get_booking(db, booking_id)
    if (
        booking.client_id != current_user.id
        and not _is_booking_lawyer(booking, current_user)
        and current_user.role != UserRole.ADMIN
    ):
        raise ForbiddenError("You do not have access to this booking")
    return success_response(serialize_booking(booking))


@router.put("/{booking_id}/confirm")
def confirm_booking(
    booking_id: str,
    payload: BookingConfirm,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = _get_booking(db, booking_id)
    if not _is_booking_lawyer(booking, current_user):
        raise ForbiddenError("Only the assigned lawyer can confirm this booking")
    if booking.status != BookingStatus.PENDING:
        raise BookingError.generic(f"Cannot confirm a booking that is {booking.status.value.lower()}")

    booking.status = BookingStatus.CONFIRMED
    booking.confirmed_at = datetime.utcnow()
    if payload.meeting_link:
        booking.meeting_link = payload.meeting_link
    if payload.lawyer_notes:
        booking.lawyer_notes = payload.lawyer_notes
    db.commit()

    background_tasks.add_task(
        notify_in_background,
        user_id=booking.client_id,
        type=NotificationType.BOOKING_CONFIRMED,
        title="Booking Confirmed",
        message=f"{current_user.full_name} confirmed your consultation on "
                f"{booking.scheduled_date.isoformat()} at {booking.scheduled_time}.",
        action_url="/user/appointments",
        action_label="View Booking",
        metadata={"booking_id": booking.id},
    )

    log_business("BOOKING_CONFIRMED", booking_id=booking.id, lawyer_id=booking.lawyer_id)
    booking = _get_booking(db, booking_id)
    return success_response(serialize_booking(booking), "Booking confirmed")


@router.put("/{booking_id}/cancel")
def cancel_booking(
    booking_id: str,
    payload: BookingCancel,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = _get_booking(db, booking_id)
    is_client = booking.client_id == current_user.id
    is_lawyer = _is_booking_lawyer(booking, current_user)
    if not (is_client or is_lawyer or current_user.role == UserRole.ADMIN):
        raise ForbiddenError("You do not have access to this booking")
    if booking.status in CLOSED_BOOKING_STATUSES:
        raise BookingError.already_cancelled()

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = datetime.utcnow()
    booking.cancelled_by = current_user.id
    booking.cancellation_reason = payload.reason
    db.commit()

    if is_client:
        recipients = [booking.lawyer.user]
    elif is_lawyer:
        recipients = [booking.client]
    else:
        recipients = [booking.client, booking.lawyer.user]

    when = f"{booking.scheduled_date.isoformat()} at {booking.scheduled_time}"
    for recipient in recipients:
        background_tasks.add_task(
            notify_in_background,
            user_id=recipient.id,
            type=NotificationType.BOOKING_CANCELLED,
            title="Booking Cancelled",
            message=f"Booking {booking.booking_number} for {when} was cancelled."
                    + (f" Reason: {payload.reason}" if payload.reason else ""),
            action_url="/lawyer/appointments" if recipient.role == UserRole.LAWYER else "/user/appointments",
            metadata={"booking_id": booking.id, "cancelled_by": current_user.id},
        )
        background_tasks.add_task(
            email_service.send_in_background,
            email_service.send_booking_cancellation_email,
            recipient.email,
            recipient.first_name,
            booking.booking_number,
            payload.reason,
        )

    log_business("BOOKING_CANCELLED", booking_id=booking.id, cancelled_by=current_user.id)
    booking = _get_booking(db, booking_id)
    return success_response(serialize_booking(booking), "Booking cancelled")


@router.put("/{booking_id}/complete")
def complete_booking(
    booking_id: str,
    payload: Optional[BookingComplete] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    booking = _get_booking(db, booking_id)
    if not _is_booking_lawyer(booking, current_user):
        raise ForbiddenError("Only the assigned lawyer can complete this booking")
    if booking.status == BookingStatus.COMPLETED:
        raise BookingError.already_completed()
    if booking.status != BookingStatus.CONFIRMED:
        raise BookingError.generic("Only confirmed bookings can be marked as completed")

    booking.status = BookingStatus.COMPLETED
    booking.completed_at = datetime.utcnow()
    if payload and payload.lawyer_notes:
        booking.lawyer_notes = payload.lawyer_notes
    db.query(Lawyer).filter(Lawyer.id == booking.lawyer_id).update({
        Lawyer.completed_bookings: Lawyer.completed_bookings + 1,
        Lawyer.total_earnings: Lawyer.total_earnings + booking.amount,
    }, synchronize_session=False)
    db.commit()

    log_business("BOOKING_COMPLETED", booking_id=booking.id, lawyer_id=booking.lawyer_id, amount=str(booking.amount))
    db.expire_all()
    booking = _get_booking(db, booking_id)
    return success_response(serialize_booking(booking), "Booking marked as completed")
