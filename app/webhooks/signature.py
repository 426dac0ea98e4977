# app/webhooks/signature.py
from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger("campuseats.webhooks")

SIGNATURE_HEADER = "x-paystack-signature"


def _as_bytes(payload: str | bytes) -> bytes:
    return payload if isinstance(payload, bytes) else payload.encode("utf-8")


def sign(payload: str | bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), _as_bytes(payload), hashlib.sha512).hexdigest()


def verify(payload: str | bytes, signature: str | None, secret: str) -> bool:
    """
    HMAC-SHA512 of the raw payload, lowercase hex, compared in constant time.

    Any failure (missing signature, no secret, undecodable input) means "not verified".
    """
    if not secret or not signature:
        return False
    try:
        expected = sign(payload, secret)
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("ascii"))
    except (TypeError, ValueError) as exc:
        logger.warning("signature_check_error error=%s", type(exc).__name__)
        return False
