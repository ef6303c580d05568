from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class AuditLog(Document):
    user_id: str | None = None  # None for gateway events on orders not yet saved by the client
    event_type: str  # order_saved | payment_verified | payment_captured | payment_failed | user_saved
    entity_type: str  # order | user
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "audit_logs"
        indexes = [
            [("entity_type", 1), ("entity_id", 1)],
            [("event_type", 1), ("created_at", -1)],
        ]
