"""Razorpay client wrapper. The SDK is synchronous; calls run in the threadpool."""

from typing import Any, Protocol

from fastapi.concurrency import run_in_threadpool


class PaymentGatewayClient(Protocol):
    async def create_order(self, payload: dict[str, Any]) -> dict[str, Any] | None: ...


class RazorpayGatewayClient:
    def __init__(self, key_id: str, key_secret: str):
        import razorpay
        self.key_id = key_id
        self._client = razorpay.Client(auth=(key_id, key_secret))

    async def create_order(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        return await run_in_threadpool(self._client.order.create, data=payload)
