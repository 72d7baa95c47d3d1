"""
Razorpay signature verification.

Both checks use constant-time comparison:
- webhook callbacks sign the raw request body with the webhook secret
- checkout callbacks sign "{order_id}|{payment_id}" with the key secret
"""

import hashlib
import hmac
import logging
from typing import Optional

from app.config import RAZORPAY_KEY_SECRET, RAZORPAY_WEBHOOK_SECRET
from app.errors import BadRequestError, InternalError

logger = logging.getLogger(__name__)


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_razorpay_webhook(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> None:
    """Raise unless ``signature`` matches the HMAC of the raw body."""
    secret = secret if secret is not None else RAZORPAY_WEBHOOK_SECRET
    if not secret:
        logger.error("RAZORPAY_WEBHOOK_SECRET is not configured; rejecting webhook")
        raise InternalError("Webhook secret not configured")

    if not signature:
        logger.warning("Razorpay webhook received without signature header")
        raise BadRequestError("Invalid webhook signature")

    expected = compute_hmac_sha256(secret, body)
    if not constant_time_compare(expected, signature):
        logger.warning("Razorpay webhook signature mismatch")
        raise BadRequestError("Invalid webhook signature")


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: Optional[str] = None) -> bool:
    secret = secret if secret is not None else RAZORPAY_KEY_SECRET
    if not secret:
        return False
    expected = compute_hmac_sha256(secret, f"{order_id}|{payment_id}".encode("utf-8"))
    return constant_time_compare(expected, signature)
