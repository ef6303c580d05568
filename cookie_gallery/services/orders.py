"""Razorpay order intents: validate the request, convert to paise, create with the gateway."""

import re
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from cookie_gallery.core.exceptions import BadRequestError, ConfigurationError, UpstreamError
from cookie_gallery.core.logging import get_logger
from cookie_gallery.services.gateway import PaymentGatewayClient

log = get_logger(__name__)

MINOR_UNITS_PER_MAJOR = 100
RECEIPT_PREFIX = "receipt_order_"
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True)
class OrderIntent:
    id: str
    amount: int  # minor units
    currency: str
    receipt: str
    capture_mode: str = "auto"  # auto | manual
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


def to_minor_units(amount: Any) -> int:
    """Major units -> minor units (x100). Raises BadRequestError for anything not a positive amount."""
    if amount is None or isinstance(amount, bool):
        raise BadRequestError("Amount and currency are required.")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise BadRequestError("Amount must be a number.") from e
    if not value.is_finite() or value <= 0:
        raise BadRequestError("Amount and currency are required.")
    minor = value * MINOR_UNITS_PER_MAJOR
    if minor != minor.to_integral_value():
        raise BadRequestError("Amount is finer than the smallest currency unit.")
    return int(minor)


def normalize_currency(currency: Any) -> str:
    if not isinstance(currency, str) or not currency.strip():
        raise BadRequestError("Amount and currency are required.")
    code = currency.strip().upper()
    if not _CURRENCY_RE.match(code):
        raise BadRequestError(f"Unsupported currency: {currency}")
    return code


class OrderIntentService:
    def __init__(self, gateway: PaymentGatewayClient | None, capture_mode: str = "auto"):
        self.gateway = gateway
        self.capture_mode = capture_mode

    def _receipt(self) -> str:
        return f"{RECEIPT_PREFIX}{int(time.time() * 1000)}"

    async def create_order(self, amount: Any, currency: Any) -> OrderIntent:
        """Create a gateway order for `amount` major units. Nothing is persisted locally."""
        if self.gateway is None:
            raise ConfigurationError("Payments not configured on server.")
        amount_minor = to_minor_units(amount)
        code = normalize_currency(currency)
        payload = {
            "amount": amount_minor,
            "currency": code,
            "receipt": self._receipt(),
            "payment_capture": 1 if self.capture_mode == "auto" else 0,
        }
        try:
            order = await self.gateway.create_order(payload)
        except Exception as e:
            log.exception("gateway_create_order_failed", amount=amount_minor, currency=code)
            raise UpstreamError("Failed to create Razorpay order.", error=str(e)) from e
        if not order or not order.get("id"):
            log.error("gateway_create_order_empty", amount=amount_minor, currency=code)
            raise UpstreamError("Error creating order with Razorpay.")
        log.info("order_intent_created", order_id=order["id"], amount=amount_minor, currency=code)
        return OrderIntent(
            id=order["id"],
            amount=int(order.get("amount", amount_minor)),
            currency=order.get("currency", code),
            receipt=order.get("receipt", payload["receipt"]),
            capture_mode=self.capture_mode,
            raw=dict(order),
        )
