import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user, get_lawyer_profile, require_admin, require_lawyer
from app.config import RAZORPAY_KEY_ID
from app.database import get_db
from app.errors import BadRequestError, BookingError, ExternalServiceError, ForbiddenError, NotFoundError, PaymentError
from app.logging_config import log_business
from app.models import (
    Booking, BookingStatus, Lawyer, NotificationType, Payment, PaymentStatus, User, UserRole,
)
from app.payments.schemas import CheckoutRequest, CreateOrderRequest, RefundRequest, VerifyPaymentRequest
from app.rate_limiter import payment_limiter
from app.services import razorpay_client
from app.services.booking_service import BookingService, serialize_booking, serialize_payment
from app.services.notification_service import notify_in_background
from app.services.payment_service import process_webhook_event
from app.utils.identifiers import simulated_gateway_id
from app.utils.pagination import Pagination, pagination_params
from app.utils.response import paginated_response, success_response
from app.webhook_security import verify_payment_signature, verify_razorpay_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _payment_query(db: Session):
    return db.query(Payment).options(
        joinedload(Payment.booking).joinedload(Booking.lawyer).joinedload(Lawyer.user),
        joinedload(Payment.booking).joinedload(Booking.client),
    )


def _serialize_with_booking(payment: Payment) -> dict:
    data = serialize_payment(payment)
    data["booking"] = serialize_booking(payment.booking, include_payment=False) if payment.booking else None
    return data


@router.post("/checkout", status_code=status.HTTP_201_CREATED)
def checkout(
    checkout_data: CheckoutRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(payment_limiter),
):
    if checkout_data.amount is not None:
        logger.debug(f"Ignoring client-supplied amount {checkout_data.amount} at checkout")

    service = BookingService(db)
    booking, payment = service.create_booking(
        client=current_user,
        lawyer_id=checkout_data.lawyer_id,
        scheduled_date=checkout_data.scheduled_date,
        scheduled_time=checkout_data.scheduled_time,
        duration=checkout_data.duration,
        meeting_type=checkout_data.meeting_type,
        client_notes=checkout_data.client_notes,
        paid=True,
        payment_method=checkout_data.payment_method,
    )
    service.schedule_creation_side_effects(background_tasks, booking, paid=True)

    return success_response(
        {"booking": serialize_booking(booking, include_payment=False), "payment": serialize_payment(payment)},
        "Booking confirmed and payment completed",
    )


@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    body = await request.body()
    verify_razorpay_webhook(body, x_razorpay_signature)

    try:
        payload = json.loads(body)
    except ValueError:
        raise BadRequestError("Invalid webhook payload")
    if not isinstance(payload, dict):
        raise BadRequestError("Invalid webhook payload")

    process_webhook_event(db, payload)
    return {"status": "ok"}


@router.post("/create-order", status_code=status.HTTP_201_CREATED)
def create_order(
    order_data: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    _: None = Depends(payment_limiter),
):
    booking = db.query(Booking).options(joinedload(Booking.payment)).filter(
        Booking.id == order_data.booking_id
    ).first()
    if not booking:
        raise NotFoundError("Booking", order_data.booking_id)
    if booking.client_id != current_user.id:
        raise ForbiddenError("Not authorized to pay for this booking")
    if booking.payment and booking.payment.status == PaymentStatus.COMPLETED:
        raise PaymentError.already_paid()
    if booking.status != BookingStatus.PENDING:
        raise BookingError.generic("Only pending bookings can be paid for")

    amount_paise = int(round(booking.amount * 100))
    order = razorpay_client.create_order(
        amount_paise,
        receipt=booking.booking_number,
        notes={"booking_id": booking.id, "user_id": current_user.id},
        currency=booking.currency or "INR",
    )

    payment = booking.payment
    if payment:
        payment.gateway_order_id = order["id"]
        payment.status = PaymentStatus.PENDING
    else:
        payment = Payment(
            booking_id=booking.id,
            user_id=current_user.id,
            amount=booking.amount,
            currency=booking.currency,
            status=PaymentStatus.PENDING,
            gateway_order_id=order["id"],
        )
        db.add(payment)
    db.commit()

    log_business("PAYMENT_ORDER_CREATED", booking_id=booking.id, order_id=order["id"], amount=str(booking.amount))
    return success_response({
        "order_id": order["id"],
        "amount": order.get("amount", amount_paise),
        "currency": order.get("currency", booking.currency),
        "key_id": RAZORPAY_KEY_ID,
        "booking": {
            "id": booking.id,
            "booking_number": booking.booking_number,
            "amount": booking.amount,
        },
    }, "Payment order created")


@router.post("/verify")
def verify_payment(
    verify_data: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not verify_payment_signature(
        verify_data.razorpay_order_id, verify_data.razorpay_payment_id, verify_data.razorpay_signature
    ):
        raise PaymentError.failed()

    payment = _payment_query(db).filter(Payment.gateway_order_id == verify_data.razorpay_order_id).first()
    if not payment:
        raise NotFoundError("Payment", verify_data.razorpay_order_id)
    if payment.booking.client_id != current_user.id:
        raise ForbiddenError("Not authorized")

    if payment.status == PaymentStatus.COMPLETED:
        return success_response(_serialize_with_booking(payment), "Payment already verified")

    now = datetime.utcnow()
    payment.status = PaymentStatus.COMPLETED
    payment.gateway_payment_id = verify_data.razorpay_payment_id
    payment.gateway_signature = verify_data.razorpay_signature
    payment.processed_at = now
    payment.booking.status = BookingStatus.CONFIRMED
    payment.booking.confirmed_at = now
    db.commit()

    log_business("PAYMENT_COMPLETED", payment_id=payment.id, booking_id=payment.booking_id, amount=str(payment.amount))
    background_tasks.add_task(
        notify_in_background,
        user_id=payment.booking.lawyer.user_id,
        type=NotificationType.PAYMENT_RECEIVED,
        title="Payment Received",
        message=f"Payment received for booking {payment.booking.booking_number}.",
        action_url="/lawyer/appointments",
        metadata={"booking_id": payment.booking_id, "payment_id": payment.id},
    )

    db.refresh(payment)
    return success_response(_serialize_with_booking(payment), "Payment verified successfully")


@router.get("/earnings-summary")
def earnings_summary(current_user: User = Depends(require_lawyer()), db: Session = Depends(get_db)):
    lawyer = get_lawyer_profile(db, current_user)
    month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    this_month = db.query(func.coalesce(func.sum(Booking.amount), 0)).filter(
        Booking.lawyer_id == lawyer.id,
        Booking.status == BookingStatus.COMPLETED,
        Booking.completed_at >= month_start,
    ).scalar()
    pending_payouts = db.query(func.count(Booking.id)).join(Payment, Payment.booking_id == Booking.id).filter(
        Booking.lawyer_id == lawyer.id,
        Booking.status == BookingStatus.CONFIRMED,
        Payment.status == PaymentStatus.COMPLETED,
    ).scalar()

    return success_response({
        "total_earnings": lawyer.total_earnings,
        "completed_bookings": lawyer.completed_bookings,
        "this_month_earnings": this_month,
        "pending_payouts": pending_payouts,
        "currency": lawyer.currency,
    })


@router.get("/")
def my_payments(
    status: Optional[PaymentStatus] = None,
    pagination: Pagination = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = _payment_query(db).filter(Payment.user_id == current_user.id)
    if status:
        query = query.filter(Payment.status == status)

    total = query.count()
    payments = query.order_by(Payment.created_at.desc()).offset(pagination.skip).limit(pagination.limit).all()
    return paginated_response([_serialize_with_booking(p) for p in payments], total, pagination.page, pagination.limit)


@router.post("/{payment_id}/refund")
def refund_payment(
    payment_id: str,
    refund_data: RefundRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin()),
    db: Session = Depends(get_db)
):
    payment = _payment_query(db).filter(Payment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment", payment_id)
    if payment.status != PaymentStatus.COMPLETED:
        raise PaymentError.not_refundable()

    amount = refund_data.amount if refund_data.amount is not None else payment.amount
    if amount > payment.amount:
        raise BadRequestError("Refund amount cannot exceed the payment amount")

    if payment.gateway_payment_id and not payment.gateway_payment_id.startswith("sim_"):
        try:
            refund = razorpay_client.refund_payment(
                payment.gateway_payment_id,
                int(round(amount * 100)),
                notes={"reason": refund_data.reason or "", "refunded_by": current_user.id},
            )
        except ExternalServiceError as e:
            logger.error(f"Gateway refund failed for payment {payment.id}: {e.message}")
            raise PaymentError.refund_failed()
        refund_id = refund.get("id")
    else:
        refund_id = simulated_gateway_id("sim_rfnd")

    payment.status = PaymentStatus.REFUNDED if amount >= payment.amount else PaymentStatus.PARTIALLY_REFUNDED
    payment.refund_amount = amount
    payment.refund_reason = refund_data.reason
    payment.gateway_refund_id = refund_id
    payment.refunded_at = datetime.utcnow()
    db.commit()

    log_business("PAYMENT_REFUNDED", payment_id=payment.id, amount=str(amount), by=current_user.id)
    background_tasks.add_task(
        notify_in_background,
        user_id=payment.user_id,
        type=NotificationType.PAYMENT_REFUNDED,
        title="Payment Refunded",
        message=f"A refund of ₹{amount} for booking {payment.booking.booking_number} has been processed.",
        action_url="/user/payments",
        metadata={"payment_id": payment.id, "amount": str(amount)},
    )

    db.refresh(payment)
    return success_response(_serialize_with_booking(payment), "Refund processed successfully")


@router.get("/{payment_id}")
def get_payment(payment_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payment = _payment_query(db).filter(Payment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment", payment_id)

    booking = payment.booking
    is_client = booking.client_id == current_user.id
    is_lawyer = booking.lawyer is not None and booking.lawyer.user_id == current_user.id
    if not (is_client or is_lawyer or current_user.role == UserRole.ADMIN):
        raise ForbiddenError("You do not have access to this payment")

    return success_response(_serialize_with_booking(payment))
