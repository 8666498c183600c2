"""Payment gateway signature verification.

After checkout the payment widget hands the browser an order id, a payment id
and a signature. The signature is HMAC-SHA256 over "<order_id>|<payment_id>"
keyed with the merchant key secret, hex encoded. Only a matching signature
proves the payment was captured for that order.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any

from flask import Blueprint, abort, jsonify, request

from .logging import get_logger

log = get_logger(__name__)

_REQUIRED_FIELDS = ("razorpay_order_id", "razorpay_payment_id", "razorpay_signature")


def expected_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of ``order_id|payment_id`` under ``secret``."""
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Constant-time check of a checkout signature."""
    if not secret:
        raise ValueError("Payment key secret is not configured")
    expected = expected_signature(order_id, payment_id, secret)
    # bytes: compare_digest rejects non-ASCII str arguments
    return hmac.compare_digest(expected.encode(), signature.encode())


def create_payments_blueprint(key_secret: str | None) -> Blueprint:
    """Blueprint exposing ``POST /payments/verify``.

    Args:
        key_secret: Merchant key secret; when None the endpoint answers 500.
    """
    bp = Blueprint("payments", __name__)

    @bp.post("/payments/verify")
    def verify_payment():
        body: Any = request.get_json(silent=True)
        if not isinstance(body, dict) or not all(body.get(f) for f in _REQUIRED_FIELDS):
            abort(400, description="Missing required payment verification parameters")

        if not key_secret:
            log.error("payment_secret_missing")
            abort(500, description="Payment verification not configured")

        order_id, payment_id, signature = (str(body[f]) for f in _REQUIRED_FIELDS)

        if not verify_payment_signature(order_id, payment_id, signature, key_secret):
            log.warning("payment_signature_mismatch", order_id=order_id)
            abort(400, description="Payment verification failed")

        log.info("payment_verified", order_id=order_id, payment_id=payment_id)
        return jsonify({"success": True, "message": "Payment verified successfully"})

    return bp
