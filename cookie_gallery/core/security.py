"""HMAC-SHA256 signatures shared by payment confirmation and webhook checks."""

import hashlib
import hmac


def compute_signature(secret: str | bytes, message: bytes) -> str:
    """Lowercase hex HMAC-SHA256 of `message` under `secret`."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def verify_signature(secret: str | bytes, message: bytes, provided: str | None) -> bool:
    """Constant-time comparison of the expected digest against `provided`. Never raises on mismatch."""
    if not provided or not isinstance(provided, str):
        return False
    expected = compute_signature(secret, message)
    # compare_digest rejects non-ASCII str; compare as bytes instead
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))


def payment_confirmation_message(order_id: str, payment_id: str) -> bytes:
    """Canonical bytes signed by the gateway for a checkout: `order_id|payment_id`."""
    return f"{order_id}|{payment_id}".encode("utf-8")


def bearer_token(authorization: str | None) -> str | None:
    """Return the token from `Authorization: Bearer <token>`, or None."""
    parts = (authorization or "").split(" ")
    if len(parts) == 2 and parts[0] == "Bearer" and parts[1]:
        return parts[1]
    return None
