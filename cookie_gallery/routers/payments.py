from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import ORJSONResponse, PlainTextResponse
from pydantic import BaseModel

from cookie_gallery.core.exceptions import ConfigurationError
from cookie_gallery.deps import get_services
from cookie_gallery.services import payments as payments_service
from cookie_gallery.services.orders import OrderIntentService
from cookie_gallery.services.registry import Services
from cookie_gallery.services.transitions import record_transition

router = APIRouter()


class CreateOrderRequest(BaseModel):
    amount: float | None = None  # major units, e.g. 250 for ₹250
    currency: str | None = None


class VerifySignatureRequest(BaseModel):
    order_id: str | None = None
    razorpay_payment_id: str | None = None
    razorpay_signature: str | None = None


@router.post("/create-order")
async def create_order(body: CreateOrderRequest, services: Services = Depends(get_services)):
    """Create Razorpay order; the browser opens checkout with the returned order id."""
    intent = await OrderIntentService(services.gateway).create_order(body.amount, body.currency)
    return intent.raw


@router.post("/verify-signature")
async def verify_signature(body: VerifySignatureRequest, services: Services = Depends(get_services)):
    """Checkout handler callback. A valid signature alone is a success, whether or not the status write lands."""
    result = payments_service.confirm_payment(
        body.order_id,
        body.razorpay_payment_id,
        body.razorpay_signature,
        services.settings.razorpay_key_secret,
    )
    if result is payments_service.VerificationResult.INVALID_SIGNATURE:
        return ORJSONResponse(status_code=400, content={"success": False, "message": "Invalid signature"})
    await record_transition(
        services.persistence,
        services.enqueue_transition,
        payments_service.verified_transition(body.order_id, body.razorpay_payment_id),
    )
    return {"success": True, "message": "Payment has been verified"}


@router.post("/api/razorpay-webhook", response_class=PlainTextResponse)
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None, alias="X-Razorpay-Signature"),
    services: Services = Depends(get_services),
):
    """Razorpay webhook: payment.captured / payment.failed -> order status (idempotent)."""
    body = await request.body()
    try:
        result = payments_service.ingest_webhook_event(
            body, x_razorpay_signature, services.settings.razorpay_webhook_secret
        )
    except ConfigurationError as e:
        return PlainTextResponse(e.message, status_code=e.status_code)
    if result.status is payments_service.IngestStatus.REJECTED:
        return PlainTextResponse("Invalid signature", status_code=403)
    if result.transition is not None:
        await record_transition(services.persistence, services.enqueue_transition, result.transition)
    return PlainTextResponse("Webhook received and processed.")
