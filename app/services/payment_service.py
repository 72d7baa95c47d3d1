"""
Razorpay webhook processing.

Each handler is idempotent: a replayed event finds the row already in its
final state and returns without writing. Unknown orders and payments are
logged and acknowledged so Razorpay stops retrying.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.logging_config import log_business
from app.models import Booking, BookingStatus, Payment, PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)

GATEWAY_METHODS = {
    "card": PaymentMethod.CARD,
    "upi": PaymentMethod.UPI,
    "netbanking": PaymentMethod.NET_BANKING,
    "wallet": PaymentMethod.WALLET,
}


def map_gateway_method(method: str) -> PaymentMethod:
    return GATEWAY_METHODS.get((method or "").lower(), PaymentMethod.CARD)


def paise_to_rupees(paise) -> Decimal:
    return (Decimal(int(paise or 0)) / Decimal(100)).quantize(Decimal("0.01"))


def _entity(payload: dict, name: str) -> dict:
    return ((payload.get("payload") or {}).get(name) or {}).get("entity") or {}


def handle_payment_captured(db: Session, entity: dict) -> None:
    order_id = entity.get("order_id")
    payment = db.query(Payment).filter(Payment.gateway_order_id == order_id).first() if order_id else None
    if not payment:
        logger.warning(f"payment.captured for unknown order {order_id}; acknowledging")
        return
    if payment.status == PaymentStatus.COMPLETED:
        logger.info(f"payment.captured replay for payment {payment.id}; already completed")
        return

    now = datetime.utcnow()
    payment.status = PaymentStatus.COMPLETED
    payment.gateway_payment_id = entity.get("id")
    payment.method = map_gateway_method(entity.get("method"))
    payment.processed_at = now
    db.query(Booking).filter(Booking.id == payment.booking_id).update(
        {Booking.status: BookingStatus.CONFIRMED, Booking.confirmed_at: now}, synchronize_session=False
    )
    db.commit()
    log_business("PAYMENT_CAPTURED", payment_id=payment.id, booking_id=payment.booking_id)


def handle_payment_failed(db: Session, entity: dict) -> None:
    order_id = entity.get("order_id")
    payment = db.query(Payment).filter(Payment.gateway_order_id == order_id).first() if order_id else None
    if not payment:
        logger.warning(f"payment.failed for unknown order {order_id}; acknowledging")
        return
    if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.FAILED):
        return

    payment.status = PaymentStatus.FAILED
    payment.failure_reason = entity.get("error_description")
    db.commit()
    log_business("PAYMENT_FAILED", payment_id=payment.id, reason=payment.failure_reason)


def handle_refund_processed(db: Session, entity: dict) -> None:
    payment_id = entity.get("payment_id")
    payment = db.query(Payment).filter(Payment.gateway_payment_id == payment_id).first() if payment_id else None
    if not payment:
        logger.warning(f"refund.processed for unknown payment {payment_id}; acknowledging")
        return
    refund_id = entity.get("id")
    refund_amount = paise_to_rupees(entity.get("amount"))
    if payment.status == PaymentStatus.REFUNDED:
        return
    if payment.status == PaymentStatus.PARTIALLY_REFUNDED and (
        (refund_id and payment.gateway_refund_id == refund_id) or payment.refund_amount == refund_amount
    ):
        logger.info(f"refund.processed replay for payment {payment.id}; already recorded")
        return

    payment.status = PaymentStatus.REFUNDED if refund_amount >= payment.amount else PaymentStatus.PARTIALLY_REFUNDED
    payment.refund_amount = refund_amount
    payment.gateway_refund_id = refund_id
    payment.refunded_at = datetime.utcnow()
    db.commit()
    log_business("PAYMENT_REFUNDED", payment_id=payment.id, amount=str(refund_amount), status=payment.status.value)


def process_webhook_event(db: Session, payload: dict[str, Any]) -> None:
    event = payload.get("event")
    if event == "payment.captured":
        handle_payment_captured(db, _entity(payload, "payment"))
    elif event == "payment.failed":
        handle_payment_failed(db, _entity(payload, "payment"))
    elif event == "refund.processed":
        handle_refund_processed(db, _entity(payload, "refund"))
    else:
        logger.info(f"Ignoring unhandled Razorpay webhook event: {event}")
