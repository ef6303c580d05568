import hashlib
import hmac
import os
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Collaborators are injected per test; nothing external is configured.
os.environ["MONGODB_URI"] = ""
os.environ["REDIS_URL"] = ""
os.environ["FIREBASE_PROJECT_ID"] = ""
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = ""
os.environ["RAZORPAY_WEBHOOK_SECRET"] = ""

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"


def sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class FakeGateway:
    def __init__(self, response=None, error: Exception | None = None, empty: bool = False):
        self.calls: list[dict] = []
        self.response = response
        self.error = error
        self.empty = empty

    async def create_order(self, payload):
        self.calls.append(payload)
        if self.error:
            raise self.error
        if self.empty:
            return None
        return self.response or {
            "id": "order_test123",
            "entity": "order",
            "amount": payload["amount"],
            "currency": payload["currency"],
            "receipt": payload["receipt"],
            "status": "created",
        }


class InMemoryPersistence:
    """Mirrors MongoPersistence semantics on plain dicts."""

    def __init__(self, failures: int = 0):
        self.orders: dict[str, dict] = {}
        self.users: dict[str, dict] = {}
        self.failed_jobs: list[dict] = []
        self.failures = failures

    def _maybe_fail(self):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("document store unavailable")

    def _doc(self, order_id: str) -> dict:
        return self.orders.setdefault(
            order_id,
            {"order_id": order_id, "payment_status": None, "applied_events": [], "capture_count": 0, "items": []},
        )

    async def save_order(self, submission):
        self._maybe_fail()
        doc = self._doc(submission.order_id)
        doc.update(
            user_id=submission.user_id,
            items=submission.items,
            amount=submission.amount,
            currency=submission.currency,
            client_payment_status=submission.client_payment_status,
        )
        if doc["payment_status"] is None:
            doc["payment_status"] = "pending"

    async def apply_transition(self, transition):
        from cookie_gallery.services.persistence import resolve_transition

        self._maybe_fail()
        doc = self._doc(transition.order_id)
        outcome = resolve_transition(doc["payment_status"], doc["applied_events"], transition)
        if outcome.applied:
            doc["payment_status"] = transition.status
            if transition.payment_id:
                doc["payment_id"] = transition.payment_id
        if outcome.first_delivery:
            doc["applied_events"].append(transition.event_type)
            if transition.event_type == "payment.captured":
                doc["capture_count"] += 1
        return outcome

    async def get_order(self, order_id):
        doc = self.orders.get(order_id)
        return SimpleNamespace(**doc) if doc else None

    async def save_user_profile(self, profile):
        self._maybe_fail()
        self.users[profile.email] = profile.model_dump()

    async def record_failed_job(self, job_name, job_id, args, reason, retries):
        self.failed_jobs.append(
            {"job_name": job_name, "job_id": job_id, "args": args, "reason": reason, "retries": retries}
        )


class FakeIdentity:
    def __init__(self, tokens: dict | None = None):
        from cookie_gallery.services.identity import CallerIdentity

        self.tokens = tokens or {
            "good-token": CallerIdentity(subject="uid-1", email="Cookie.Lover@Example.com"),
            "no-email-token": CallerIdentity(subject="uid-2", email=None),
        }

    async def verify(self, token):
        from cookie_gallery.core.exceptions import UnauthorizedError

        if token not in self.tokens:
            raise UnauthorizedError("Unauthorized: invalid ID token")
        return self.tokens[token]


class RecordingQueue:
    def __init__(self):
        self.enqueued = []

    async def __call__(self, transition):
        self.enqueued.append(transition)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def services(gateway, persistence, queue):
    from cookie_gallery.core.config import Settings
    from cookie_gallery.services.registry import Services

    settings = Settings(
        RAZORPAY_KEY_ID="rzp_test_key",
        RAZORPAY_KEY_SECRET=KEY_SECRET,
        RAZORPAY_WEBHOOK_SECRET=WEBHOOK_SECRET,
    )
    return Services(
        settings=settings,
        gateway=gateway,
        persistence=persistence,
        identity=FakeIdentity(),
        enqueue_transition=queue,
    )


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    from cookie_gallery.deps import get_services
    from cookie_gallery.main import app

    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
