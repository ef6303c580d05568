"""Dead-letter: transition writes that exhausted their retries."""

from datetime import datetime
from typing import Any

from beanie import Document
from pydantic import Field


class FailedJob(Document):
    job_name: str
    job_id: str
    order_id: str | None = None  # lets operators find every stuck write for an order
    args: list[Any] = Field(default_factory=list)
    reason: str = ""
    retries: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "failed_jobs"
        indexes = [[("order_id", 1)], [("created_at", -1)]]
