"""
Payment Callback Security Module

Signature verification for payment gateway callbacks:
- Constant-time signature comparison (prevents timing attacks)
- Timestamp validation for signed webhooks (prevents replay attacks)
- Raw request body used for signature verification
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import Request

from .errors import UnauthorizedError

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def razorpay_payment_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Signature Razorpay sends with a completed checkout: HMAC over ``order_id|payment_id``"""
    return compute_hmac_sha256(secret, f"{order_id}|{payment_id}".encode("utf-8"))


def verify_razorpay_signature(
    secret: str, order_id: Optional[str], payment_id: Optional[str], signature: Optional[str]
) -> bool:
    """Recompute the checkout signature and compare it with the one supplied by the client"""
    if not secret or not order_id or not payment_id or not signature:
        logger.warning("🚫 Razorpay callback missing order id, payment id or signature")
        return False

    expected = razorpay_payment_signature(secret, order_id, payment_id)
    if not constant_time_compare(expected, signature):
        logger.warning(f"🚫 Razorpay signature mismatch for order {order_id}")
        return False

    logger.debug(f"✅ Razorpay signature verified for order {order_id}")
    return True


def stripe_signature(secret: str, timestamp: str, payload: bytes) -> str:
    """Stripe signs the bytes ``timestamp.payload``"""
    return compute_hmac_sha256(secret, timestamp.encode("utf-8") + b"." + payload)


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Prevents replay attacks by rejecting old webhooks.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        current_time = int(time.time())
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


async def verify_stripe_webhook(request: Request, secret: str) -> bytes:
    """
    Verify Stripe webhook signature.

    Stripe uses:
    - Header: 'Stripe-Signature' (format: "t=<timestamp>,v1=<signature>")

    Returns:
        The raw request body once the signature checks out

    Raises:
        UnauthorizedError: missing, malformed, stale or mismatched signature
    """
    raw_body = await request.body()
    signature_header = request.headers.get("Stripe-Signature", "")

    logger.debug("📥 Stripe webhook received")

    if not signature_header:
        logger.warning("🚫 Stripe webhook missing signature header")
        raise UnauthorizedError("Missing webhook signature", status_code=401)

    # Parse Stripe signature header; several v1 entries appear while a secret is rotated
    timestamp = None
    signatures = []
    for item in signature_header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)

    if not timestamp or not signatures:
        logger.warning("🚫 Stripe webhook invalid signature format")
        raise UnauthorizedError("Invalid signature format", status_code=401)

    if not verify_timestamp(timestamp):
        raise UnauthorizedError("Webhook timestamp expired", status_code=401)

    expected_signature = stripe_signature(secret, timestamp, raw_body)

    if not any(constant_time_compare(expected_signature, signature) for signature in signatures):
        logger.warning("🚫 Stripe webhook signature mismatch")
        raise UnauthorizedError("Invalid webhook signature", status_code=401)

    logger.debug("✅ Stripe webhook signature verified")
    return raw_body

