from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cookie_gallery.core.exceptions import BadRequestError
from cookie_gallery.deps import get_current_identity, get_persistence
from cookie_gallery.services.identity import CallerIdentity
from cookie_gallery.services.persistence import PersistenceGateway, ProfileSubmission

router = APIRouter()


class SaveUserRequest(BaseModel):
    displayName: str | None = None
    phoneNumber: str | None = None


@router.post("/save-user")
async def save_user(
    body: SaveUserRequest | None = None,
    identity: CallerIdentity = Depends(get_current_identity),
    persistence: PersistenceGateway = Depends(get_persistence),
):
    """Upsert the signed-in customer's profile, keyed by email."""
    body = body or SaveUserRequest()
    if not identity.email:
        raise BadRequestError("Authenticated email not available on token.")
    await persistence.save_user_profile(
        ProfileSubmission(
            email=identity.email.lower(),
            auth_uid=identity.subject,
            display_name=body.displayName or None,
            phone_number=body.phoneNumber or None,
        )
    )
    return {"success": True, "message": "User saved."}
