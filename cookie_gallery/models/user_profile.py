from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field


class UserProfile(Document):
    """Storefront customer, keyed by lower-cased email."""
    uid: Indexed(str, unique=True)  # the email, not the identity provider subject
    auth_uid: str | None = None
    email: str
    display_name: str | None = None
    phone_number: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
