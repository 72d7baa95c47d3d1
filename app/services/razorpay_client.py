import logging
from typing import Any, Optional

import httpx

from app.config import RAZORPAY_API_URL, RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET
from app.errors import ExternalServiceError

logger = logging.getLogger(__name__)


def _post(path: str, payload: dict) -> dict[str, Any]:
    if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
        raise ExternalServiceError("Razorpay", "Payment gateway is not configured")

    try:
        with httpx.Client(timeout=30.0) as http_client:
            response = http_client.post(
                f"{RAZORPAY_API_URL}{path}",
                json=payload,
                auth=(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET),
                headers={"Content-Type": "application/json"},
            )
    except httpx.HTTPError as e:
        logger.error(f"Razorpay request to {path} failed: {e}")
        raise ExternalServiceError("Razorpay", "Payment gateway unreachable")

    if response.status_code not in [200, 201]:
        logger.error(f"Razorpay API error on {path}: {response.status_code} {response.text}")
        raise ExternalServiceError("Razorpay", "Payment gateway rejected the request")

    return response.json()


def create_order(amount_paise: int, receipt: str, notes: Optional[dict] = None, currency: str = "INR") -> dict[str, Any]:
    order = _post("/orders", {
        "amount": amount_paise,
        "currency": currency,
        "receipt": receipt,
        "notes": notes or {},
    })
    logger.info(f"Razorpay order created: {order.get('id')} for receipt {receipt}")
    return order


def refund_payment(payment_id: str, amount_paise: int, notes: Optional[dict] = None) -> dict[str, Any]:
    refund = _post(f"/payments/{payment_id}/refund", {
        "amount": amount_paise,
        "notes": notes or {},
    })
    logger.info(f"Razorpay refund {refund.get('id')} issued for payment {payment_id}")
    return refund
