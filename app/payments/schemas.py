from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal

from app.bookings.schemas import BookingCreate
from app.models import PaymentMethod


class CheckoutRequest(BookingCreate):
    payment_method: PaymentMethod = PaymentMethod.CARD
    # Accepted for client compatibility; the server always prices the slot itself
    amount: Optional[Decimal] = None


class CreateOrderRequest(BaseModel):
    booking_id: str


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=1000)
