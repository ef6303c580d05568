"""Firebase ID token verification. Only the verified caller identity leaves this module."""

from dataclasses import dataclass
from typing import Protocol

from fastapi.concurrency import run_in_threadpool
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from cookie_gallery.core.exceptions import UnauthorizedError
from cookie_gallery.core.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    subject: str
    email: str | None = None


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> CallerIdentity: ...


class FirebaseIdentityVerifier:
    def __init__(self, project_id: str):
        self.project_id = project_id
        self._request = google_requests.Request()

    def _verify_sync(self, token: str) -> dict:
        return id_token.verify_firebase_token(token, self._request, audience=self.project_id)

    async def verify(self, token: str) -> CallerIdentity:
        """Verify signature, audience and expiry (fetches Google's public certs)."""
        try:
            claims = await run_in_threadpool(self._verify_sync, token)
        except Exception as e:
            log.warning("id_token_rejected", reason=str(e))
            raise UnauthorizedError("Unauthorized: invalid ID token", error=str(e)) from e
        subject = (claims or {}).get("sub") or (claims or {}).get("user_id")
        if not subject:
            raise UnauthorizedError("Unauthorized: token has no subject")
        return CallerIdentity(subject=subject, email=claims.get("email"))
