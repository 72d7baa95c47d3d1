"""
Lawyer-initiated payment requests on a case.

A lawyer asks the client for an amount (entered in rupees, stored in paise);
the client either denies it or pays it through the same simulated gateway
used by booking checkout.
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session, joinedload

from app.auth.dependencies import get_current_user
from app.case_payments.schemas import PaymentRequestCreate
from app.database import get_db
from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.logging_config import log_business
from app.models import (
    AuditAction, Case, CasePayment, CasePaymentStatus, Lawyer, NotificationType, User, UserRole,
)
from app.services.audit_service import record_audit
from app.services.case_service import TERMINAL_CASE_STATUSES, CaseService
from app.services.notification_service import notify_in_background, notify_many_in_background
from app.utils.identifiers import format_paise, simulated_gateway_id
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/case-payments", tags=["Case Payments"])


def serialize_case_payment(payment: CasePayment) -> dict:
    case = payment.case
    return {
        "id": payment.id,
        "case_id": payment.case_id,
        "amount_in_paise": payment.amount_in_paise,
        "amount": Decimal(payment.amount_in_paise) / 100,
        "formatted_amount": format_paise(payment.amount_in_paise),
        "currency": payment.currency,
        "status": payment.status,
        "description": payment.description,
        "requested_by_lawyer_id": payment.requested_by_lawyer_id,
        "razorpay_order_id": payment.razorpay_order_id,
        "razorpay_payment_id": payment.razorpay_payment_id,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
        "case": {
            "id": case.id,
            "case_number": case.case_number,
            "title": case.title,
            "status": case.status,
        } if case else None,
    }


def _get_payment_for_client(db: Session, payment_id: str, user: User) -> CasePayment:
    payment = db.query(CasePayment).options(
        joinedload(CasePayment.case).joinedload(Case.lawyer).joinedload(Lawyer.user),
        joinedload(CasePayment.case).joinedload(Case.client),
    ).filter(CasePayment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment request", payment_id)
    if payment.case.client_id != user.id:
        raise ForbiddenError("Only the case client can respond to payment requests")
    return payment


@router.get("/my-payments")
def my_case_payments(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    query = db.query(CasePayment).options(joinedload(CasePayment.case))
    if current_user.role == UserRole.LAWYER:
        query = query.join(Lawyer, CasePayment.requested_by_lawyer_id == Lawyer.id).filter(
            Lawyer.user_id == current_user.id
        )
    else:
        query = query.join(Case, CasePayment.case_id == Case.id).filter(Case.client_id == current_user.id)

    payments = query.order_by(CasePayment.created_at.desc()).all()
    return success_response([serialize_case_payment(p) for p in payments])


@router.post("/cases/{case_id}/request", status_code=status.HTTP_201_CREATED)
def request_payment(
    case_id: str,
    request_data: PaymentRequestCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = CaseService(db).get_case(case_id)
    if not CaseService.is_assigned_lawyer(case, current_user):
        raise ForbiddenError("Only the assigned lawyer can perform this action")
    if case.status in TERMINAL_CASE_STATUSES:
        raise BadRequestError(f"Cannot request payment on a {case.status.value.lower()} case")

    amount_in_paise = int((request_data.amount * 100).to_integral_value())
    payment = CasePayment(
        case_id=case.id,
        amount_in_paise=amount_in_paise,
        description=request_data.description,
        requested_by_lawyer_id=case.lawyer_id,
        status=CasePaymentStatus.REQUESTED,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)

    background_tasks.add_task(
        notify_in_background,
        user_id=case.client_id,
        type=NotificationType.PAYMENT_REQUEST_RECEIVED,
        title="Payment Requested",
        message=f'{current_user.full_name} has requested a payment of {format_paise(amount_in_paise)} '
                f'for case "{case.title}"',
        action_url=f"/user/cases/{case.id}",
        action_label="View Request",
        metadata={"case_id": case.id, "case_payment_id": payment.id},
    )

    log_business("CASE_PAYMENT_REQUESTED", case_id=case.id, payment_id=payment.id, amount_in_paise=amount_in_paise)
    return success_response(serialize_case_payment(payment), "Payment request sent to client")


@router.get("/cases/{case_id}")
def case_payments(case_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    CaseService(db).get_case_for_user(case_id, current_user)
    payments = db.query(CasePayment).options(joinedload(CasePayment.case)).filter(
        CasePayment.case_id == case_id
    ).order_by(CasePayment.created_at.desc()).all()
    return success_response([serialize_case_payment(p) for p in payments])


@router.put("/{payment_id}/deny")
def deny_payment(
    payment_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    payment = _get_payment_for_client(db, payment_id, current_user)
    if payment.status != CasePaymentStatus.REQUESTED:
        raise BadRequestError(f'Cannot deny a payment with status "{payment.status.value}"')

    payment.status = CasePaymentStatus.DENIED
    db.commit()

    background_tasks.add_task(
        notify_in_background,
        user_id=payment.case.lawyer.user_id,
        type=NotificationType.PAYMENT_REQUESTED,
        title="Payment Request Denied",
        message=f"{current_user.full_name} has denied your payment request of "
                f'{format_paise(payment.amount_in_paise)} for case "{payment.case.title}"',
        action_url=f"/lawyer/cases/{payment.case_id}",
        metadata={"case_id": payment.case_id, "case_payment_id": payment.id},
    )

    db.refresh(payment)
    return success_response(serialize_case_payment(payment), "Payment request denied")


@router.post("/{payment_id}/pay")
def pay_payment(
    payment_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    payment = _get_payment_for_client(db, payment_id, current_user)
    if payment.status not in (CasePaymentStatus.REQUESTED, CasePaymentStatus.PROCESSING):
        raise BadRequestError(f'Cannot pay a payment with status "{payment.status.value}"')

    payment.status = CasePaymentStatus.COMPLETED
    payment.razorpay_order_id = simulated_gateway_id("case_order")
    payment.razorpay_payment_id = simulated_gateway_id("case_pay")
    db.query(Lawyer).filter(Lawyer.id == payment.requested_by_lawyer_id).update(
        {Lawyer.total_earnings: Lawyer.total_earnings + Decimal(payment.amount_in_paise) / 100},
        synchronize_session=False,
    )
    record_audit(
        db,
        AuditAction.PAYMENT_MADE,
        entity_type="CasePayment",
        entity_id=payment.id,
        user_id=current_user.id,
        case_id=payment.case_id,
        details={"amount_in_paise": payment.amount_in_paise},
    )
    db.commit()

    amount = format_paise(payment.amount_in_paise)
    lawyer_user = payment.case.lawyer.user
    background_tasks.add_task(notify_many_in_background, [
        {
            "user_id": lawyer_user.id,
            "type": NotificationType.PAYMENT_RECEIVED,
            "title": "Payment Received",
            "message": f'{current_user.full_name} has paid {amount} for case "{payment.case.title}"',
            "action_url": f"/lawyer/cases/{payment.case_id}",
            "metadata": {"case_id": payment.case_id, "case_payment_id": payment.id},
        },
        {
            "user_id": current_user.id,
            "type": NotificationType.PAYMENT_RECEIVED,
            "title": "Payment Successful",
            "message": f'Your payment of {amount} to {lawyer_user.full_name} for case "{payment.case.title}" was successful',
            "action_url": f"/user/cases/{payment.case_id}",
            "metadata": {"case_id": payment.case_id, "case_payment_id": payment.id},
        },
    ])

    log_business("CASE_PAYMENT_COMPLETED", payment_id=payment.id, case_id=payment.case_id)
    db.refresh(payment)
    return success_response(serialize_case_payment(payment), "Payment successful!")


@router.get("/{payment_id}")
def get_case_payment(payment_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    payment = db.query(CasePayment).options(
        joinedload(CasePayment.case).joinedload(Case.lawyer),
    ).filter(CasePayment.id == payment_id).first()
    if not payment:
        raise NotFoundError("Payment request", payment_id)
    if current_user.role != UserRole.ADMIN and not CaseService.is_participant(payment.case, current_user.id):
        raise ForbiddenError("Not authorized")
    return success_response(serialize_case_payment(payment))
