from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cookie_gallery.core.exceptions import BadRequestError, MissingFieldsError
from cookie_gallery.deps import get_current_identity, get_persistence
from cookie_gallery.services.identity import CallerIdentity
from cookie_gallery.services.persistence import OrderSubmission, PersistenceGateway

router = APIRouter()


class SaveOrderRequest(BaseModel):
    orderId: str | None = None
    items: Any = None
    paymentStatus: str | None = None
    paymentAmount: float | None = None
    paymentCurrency: str | None = None


@router.post("/save-order-data")
async def save_order_data(
    body: SaveOrderRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    persistence: PersistenceGateway = Depends(get_persistence),
):
    """Save the customer's order after checkout. The claimed payment status is recorded, not trusted."""
    if not body.orderId or not body.items or not body.paymentStatus:
        raise MissingFieldsError("Missing required order data.")
    if not identity.email:
        raise BadRequestError("Authenticated email not available on token.")
    await persistence.save_order(
        OrderSubmission(
            order_id=body.orderId,
            user_id=identity.email.lower(),
            items=body.items,
            client_payment_status=body.paymentStatus,
            amount=body.paymentAmount,
            currency=body.paymentCurrency or "INR",
        )
    )
    return {"success": True, "message": "Order data saved successfully."}
