"""
Booking creation shared by the unpaid booking route and the checkout route.

Both paths validate the lawyer, price the slot from the lawyer's stored
hourly rate, and then run the conflict checks and inserts inside a single
SERIALIZABLE transaction. The unique (lawyer, date, time) index backs up the
conflict check, so a lost race surfaces as a 409 rather than a double booking.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, joinedload

from app.constants import ACTIVE_BOOKING_STATUSES, DEFAULT_TIMEZONE
from app.database import serializable
from app.errors import BadRequestError, BookingError, NotFoundError
from app.logging_config import log_business
from app.models import (
    Booking, BookingStatus, Lawyer, MeetingType, NotificationType, Payment, PaymentMethod, PaymentStatus, User,
    VerificationStatus,
)
from app.services import email_service
from app.services.notification_service import notify_in_background
from app.utils.identifiers import generate_booking_number, simulated_gateway_id

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"


def compute_amount(hourly_rate, duration: int) -> Decimal:
    """Price of a slot: hourly rate pro-rated by minutes, rounded to paise."""
    amount = Decimal(str(hourly_rate)) * Decimal(duration) / Decimal(60)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def is_past_slot(scheduled_date: date, scheduled_time: str) -> bool:
    hour, minute = (int(part) for part in scheduled_time.split(":"))
    now = datetime.now(ZoneInfo(DEFAULT_TIMEZONE)).replace(tzinfo=None)
    slot = datetime(scheduled_date.year, scheduled_date.month, scheduled_date.day, hour, minute)
    return slot <= now


def _is_serialization_failure(error: OperationalError) -> bool:
    return getattr(error.orig, "pgcode", None) == SERIALIZATION_FAILURE


class BookingService:
    def __init__(self, db: Session):
        self.db = db

    def get_bookable_lawyer(self, lawyer_id: str, client: User) -> Lawyer:
        lawyer = self.db.query(Lawyer).options(joinedload(Lawyer.user)).filter(Lawyer.id == lawyer_id).first()
        if not lawyer:
            raise NotFoundError("Lawyer", lawyer_id)
        if lawyer.verification_status != VerificationStatus.VERIFIED or not lawyer.is_available:
            raise BookingError.lawyer_unavailable()
        if lawyer.user_id == client.id:
            raise BadRequestError("You cannot book a consultation with yourself")
        return lawyer

    def create_booking(
        self,
        client: User,
        lawyer_id: str,
        scheduled_date: date,
        scheduled_time: str,
        duration: int,
        meeting_type: MeetingType = MeetingType.VIDEO,
        client_notes: Optional[str] = None,
        paid: bool = False,
        payment_method: PaymentMethod = PaymentMethod.CARD,
    ) -> tuple[Booking, Optional[Payment]]:
        """Create a booking, plus a completed simulated payment when ``paid``."""
        client_id = client.id
        lawyer = self.get_bookable_lawyer(lawyer_id, client)

        if is_past_slot(scheduled_date, scheduled_time):
            raise BadRequestError("Cannot book a time slot in the past")

        amount = compute_amount(lawyer.hourly_rate, duration)

        serializable(self.db)
        try:
            slot_taken = self.db.query(Booking.id).filter(
                Booking.lawyer_id == lawyer_id,
                Booking.scheduled_date == scheduled_date,
                Booking.scheduled_time == scheduled_time,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            ).first()
            if slot_taken:
                raise BookingError.slot_unavailable()

            client_busy = self.db.query(Booking.id).filter(
                Booking.client_id == client_id,
                Booking.scheduled_date == scheduled_date,
                Booking.scheduled_time == scheduled_time,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            ).first()
            if client_busy:
                raise BookingError.already_booked()

            now = datetime.utcnow()
            booking = Booking(
                booking_number=generate_booking_number(),
                client_id=client_id,
                lawyer_id=lawyer_id,
                scheduled_date=scheduled_date,
                scheduled_time=scheduled_time,
                duration=duration,
                meeting_type=meeting_type,
                client_notes=client_notes,
                amount=amount,
                currency=lawyer.currency or "INR",
                status=BookingStatus.CONFIRMED if paid else BookingStatus.PENDING,
                confirmed_at=now if paid else None,
            )
            self.db.add(booking)
            self.db.flush()

            payment = None
            if paid:
                payment = Payment(
                    booking_id=booking.id,
                    user_id=client_id,
                    amount=amount,
                    currency=booking.currency,
                    status=PaymentStatus.COMPLETED,
                    method=payment_method,
                    gateway_order_id=simulated_gateway_id("sim_order"),
                    gateway_payment_id=simulated_gateway_id("sim_pay"),
                    processed_at=now,
                    payment_metadata={"simulated": True},
                )
                self.db.add(payment)

            self.db.query(Lawyer).filter(Lawyer.id == lawyer_id).update(
                {Lawyer.total_bookings: Lawyer.total_bookings + 1}, synchronize_session=False
            )
            self.db.commit()
        except BookingError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Slot conflict on insert for lawyer {lawyer_id} {scheduled_date} {scheduled_time}: {e.orig}")
            raise BookingError.slot_unavailable()
        except OperationalError as e:
            self.db.rollback()
            if _is_serialization_failure(e):
                logger.warning(f"Serialization failure booking lawyer {lawyer_id}; reporting slot unavailable")
                raise BookingError.slot_unavailable()
            raise

        log_business("BOOKING_CREATED", booking_id=booking.id, client_id=client_id, lawyer_id=lawyer_id, paid=paid)

        booking = self.db.query(Booking).options(
            joinedload(Booking.lawyer).joinedload(Lawyer.user),
            joinedload(Booking.client),
            joinedload(Booking.payment),
        ).filter(Booking.id == booking.id).first()
        return booking, booking.payment

    def schedule_creation_side_effects(self, background_tasks: BackgroundTasks, booking: Booking, paid: bool):
        """Queue notifications and emails; none of them can fail the request."""
        client = booking.client
        lawyer_user = booking.lawyer.user
        when = f"{booking.scheduled_date.isoformat()} at {booking.scheduled_time}"
        metadata = {"booking_id": booking.id, "client_id": client.id}

        if paid:
            background_tasks.add_task(
                notify_in_background,
                user_id=client.id,
                type=NotificationType.BOOKING_CONFIRMED,
                title="Booking Confirmed",
                message=f"Your consultation with {lawyer_user.full_name} on {when} is confirmed.",
                action_url="/user/appointments",
                action_label="View Booking",
                metadata=metadata,
            )

        background_tasks.add_task(
            notify_in_background,
            user_id=lawyer_user.id,
            type=NotificationType.BOOKING_CREATED,
            title="New Booking" if paid else "New Booking Request",
            message=f"You have a new consultation booking for {when}.",
            action_url="/lawyer/appointments",
            action_label="View Appointments",
            metadata=metadata,
        )

        for recipient, name, counterpart in (
            (client.email, client.first_name, lawyer_user.full_name),
            (lawyer_user.email, lawyer_user.first_name, client.full_name),
        ):
            background_tasks.add_task(
                email_service.send_in_background,
                email_service.send_booking_confirmation_email,
                recipient,
                name,
                booking.booking_number,
                counterpart,
                booking.scheduled_date.isoformat(),
                booking.scheduled_time,
                booking.duration,
            )


def serialize_booking(booking: Booking, include_payment: bool = True) -> dict:
    lawyer = booking.lawyer
    client = booking.client
    data = {
        "id": booking.id,
        "booking_number": booking.booking_number,
        "scheduled_date": booking.scheduled_date,
        "scheduled_time": booking.scheduled_time,
        "duration": booking.duration,
        "timezone": booking.timezone,
        "status": booking.status,
        "meeting_type": booking.meeting_type,
        "meeting_link": booking.meeting_link,
        "amount": booking.amount,
        "currency": booking.currency,
        "client_notes": booking.client_notes,
        "lawyer_notes": booking.lawyer_notes,
        "confirmed_at": booking.confirmed_at,
        "completed_at": booking.completed_at,
        "cancelled_at": booking.cancelled_at,
        "cancellation_reason": booking.cancellation_reason,
        "created_at": booking.created_at,
        "lawyer": {
            "id": lawyer.id,
            "name": lawyer.user.full_name,
            "avatar": lawyer.user.avatar,
            "headline": lawyer.headline,
            "slug": lawyer.slug,
        } if lawyer else None,
        "client": {
            "id": client.id,
            "name": client.full_name,
            "email": client.email,
            "avatar": client.avatar,
        } if client else None,
    }
    if include_payment:
        data["payment"] = serialize_payment(booking.payment) if booking.payment else None
    return data


def serialize_payment(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "booking_id": payment.booking_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "status": payment.status,
        "method": payment.method,
        "gateway_order_id": payment.gateway_order_id,
        "gateway_payment_id": payment.gateway_payment_id,
        "failure_reason": payment.failure_reason,
        "processed_at": payment.processed_at,
        "refund_amount": payment.refund_amount,
        "refunded_at": payment.refunded_at,
        "created_at": payment.created_at,
    }
