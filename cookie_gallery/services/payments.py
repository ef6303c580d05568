"""Razorpay payment verification: client confirmations and webhook events.

Both paths share one HMAC primitive but use different secrets and canonical
messages. Neither path writes anything; they produce a `StatusTransition` that
the caller hands to the persistence gateway.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from cookie_gallery.core.exceptions import ConfigurationError, MissingFieldsError
from cookie_gallery.core.logging import get_logger
from cookie_gallery.core.security import payment_confirmation_message, verify_signature

log = get_logger(__name__)

EVENT_PAYMENT_CAPTURED = "payment.captured"
EVENT_PAYMENT_FAILED = "payment.failed"
EVENT_PAYMENT_VERIFIED = "payment.verified"  # client confirmation, not a gateway event

_EVENT_STATUS = {
    EVENT_PAYMENT_CAPTURED: "captured",
    EVENT_PAYMENT_FAILED: "failed",
}


class StatusTransition(BaseModel):
    """Intent to move one order to a new payment status."""
    order_id: str
    status: str  # verified | captured | failed
    event_type: str
    payment_id: str | None = None
    amount: int | None = None  # minor units
    currency: str | None = None
    source: str = "webhook"  # webhook | confirmation


class VerificationResult(str, Enum):
    VERIFIED = "verified"
    INVALID_SIGNATURE = "invalid_signature"


class IngestStatus(str, Enum):
    ACCEPTED = "accepted"
    IGNORED = "ignored"
    REJECTED = "rejected"


@dataclass(frozen=True)
class IngestResult:
    status: IngestStatus
    event_type: str | None = None
    transition: StatusTransition | None = None


def confirm_payment(
    order_id: str | None,
    payment_id: str | None,
    signature: str | None,
    secret: str | None,
) -> VerificationResult:
    """Check the checkout signature over `order_id|payment_id` with the key secret."""
    if not order_id or not payment_id or not signature or not secret:
        if not secret:
            log.error("razorpay_key_secret_missing")
        raise MissingFieldsError("Missing required verification data.")
    message = payment_confirmation_message(order_id, payment_id)
    if verify_signature(secret, message, signature):
        log.info("payment_signature_verified", order_id=order_id, payment_id=payment_id)
        return VerificationResult.VERIFIED
    log.warning("payment_signature_invalid", order_id=order_id, payment_id=payment_id)
    return VerificationResult.INVALID_SIGNATURE


def verified_transition(order_id: str, payment_id: str) -> StatusTransition:
    return StatusTransition(
        order_id=order_id,
        status="verified",
        event_type=EVENT_PAYMENT_VERIFIED,
        payment_id=payment_id,
        source="confirmation",
    )


def _payment_entity(data: Any) -> dict[str, Any]:
    payload = data.get("payload") if isinstance(data, dict) else None
    payment = payload.get("payment") if isinstance(payload, dict) else None
    entity = payment.get("entity") if isinstance(payment, dict) else None
    return entity if isinstance(entity, dict) else {}


def ingest_webhook_event(raw_body: bytes, signature_header: str | None, secret: str | None) -> IngestResult:
    """Verify a webhook over the raw body bytes, then map it to a status transition.

    Unknown event types and bodies without a payment entity are accepted and
    ignored. Only a bad signature rejects the delivery.
    """
    if not secret:
        log.error("razorpay_webhook_secret_missing")
        raise ConfigurationError("Webhook secret not configured.", status_code=500)
    if not verify_signature(secret, raw_body, signature_header):
        log.warning("webhook_signature_invalid", body_bytes=len(raw_body))
        return IngestResult(status=IngestStatus.REJECTED)

    try:
        data = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        log.warning("webhook_body_unparseable", body_bytes=len(raw_body))
        return IngestResult(status=IngestStatus.IGNORED)
    event = data.get("event") if isinstance(data, dict) else None
    if not isinstance(event, str):
        event = None
    status = _EVENT_STATUS.get(event)
    if status is None:
        log.info("webhook_event_ignored", event_type=event)
        return IngestResult(status=IngestStatus.IGNORED, event_type=event)

    payment = _payment_entity(data)
    order_id = payment.get("order_id")
    if not order_id:
        log.warning("webhook_event_without_order", event_type=event, payment_id=payment.get("id"))
        return IngestResult(status=IngestStatus.IGNORED, event_type=event)
    amount = payment.get("amount")
    transition = StatusTransition(
        order_id=str(order_id),
        status=status,
        event_type=event,
        payment_id=str(payment["id"]) if payment.get("id") else None,
        amount=amount if isinstance(amount, int) and not isinstance(amount, bool) else None,
        currency=payment.get("currency") if isinstance(payment.get("currency"), str) else None,
    )
    log.info("webhook_event_accepted", event_type=event, order_id=transition.order_id, payment_id=transition.payment_id)
    return IngestResult(status=IngestStatus.ACCEPTED, event_type=event, transition=transition)
