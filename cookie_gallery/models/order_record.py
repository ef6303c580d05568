from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field

# Ordered by precedence: a write only lands if it does not lower the rank.
# failed -> captured is allowed (a later attempt on the same order succeeded);
# captured is final.
PAYMENT_STATUS_RANK = {
    "pending": 0,
    "verified": 1,
    "failed": 2,
    "captured": 3,
}


def can_transition(current: str | None, new: str) -> bool:
    """True if moving from `current` to `new` does not downgrade the order."""
    if current is None:
        return True
    return PAYMENT_STATUS_RANK[new] >= PAYMENT_STATUS_RANK.get(current, -1)


class OrderRecord(Document):
    order_id: Indexed(str, unique=True)
    user_id: str | None = None  # lower-cased email; None until the client save step lands
    items: Any = Field(default_factory=list)
    payment_status: str = "pending"  # pending | verified | failed | captured
    client_payment_status: str | None = None  # what the browser claimed; informational only
    payment_id: str | None = None
    amount: float | None = None  # major units, as submitted by the client
    currency: str = "INR"
    captured_amount: int | None = None  # minor units, from the gateway
    applied_events: list[str] = Field(default_factory=list)
    capture_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "orders"
        indexes = [[("user_id", 1), ("created_at", -1)]]
