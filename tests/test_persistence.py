"""Order status precedence and the MongoDB upserts that enforce it.

The MongoDB tests need a reachable server (MONGODB_TEST_URI, default
localhost) and are skipped otherwise.
"""

import asyncio
import os
import uuid
from datetime import datetime

import pytest
import pytest_asyncio

from cookie_gallery.models.order_record import can_transition
from cookie_gallery.services.payments import StatusTransition, verified_transition
from cookie_gallery.services.persistence import (
    OrderSubmission,
    resolve_transition,
    transition_pipeline,
)


def captured(order_id: str = "order_abc", payment_id: str = "pay_123") -> StatusTransition:
    return StatusTransition(
        order_id=order_id, status="captured", event_type="payment.captured", payment_id=payment_id, amount=25000
    )


def failed(order_id: str = "order_abc") -> StatusTransition:
    return StatusTransition(order_id=order_id, status="failed", event_type="payment.failed", payment_id="pay_x")


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        (None, "verified", True),
        ("pending", "verified", True),
        ("verified", "captured", True),
        ("failed", "captured", True),
        ("captured", "captured", True),
        ("captured", "verified", False),
        ("captured", "failed", False),
        ("failed", "verified", False),
        ("verified", "pending", False),
    ],
)
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_resolve_transition_reports_duplicates():
    outcome = resolve_transition("captured", ["payment.captured"], captured())
    assert outcome.applied is True
    assert outcome.first_delivery is False
    assert outcome.payment_status == "captured"


def test_pipeline_wraps_values_as_literals():
    pipeline = transition_pipeline(captured(order_id="$where"), datetime(2024, 1, 1))
    assert pipeline[1]["$set"]["order_id"] == {"$literal": "$where"}
    assert pipeline[-1] == {"$unset": ["_advance", "_seen"]}


@pytest_asyncio.fixture
async def mongo():
    from beanie import init_beanie
    from motor.motor_asyncio import AsyncIOMotorClient

    from cookie_gallery.db.init import DOCUMENT_MODELS
    from cookie_gallery.services.persistence import MongoPersistence

    client = AsyncIOMotorClient(
        os.environ.get("MONGODB_TEST_URI", "mongodb://localhost:27017"), serverSelectionTimeoutMS=500
    )
    try:
        await client.admin.command("ping")
    except Exception:
        client.close()
        pytest.skip("MongoDB not reachable")
    db_name = f"cookie_gallery_test_{uuid.uuid4().hex[:8]}"
    await init_beanie(database=client[db_name], document_models=DOCUMENT_MODELS)
    yield MongoPersistence()
    await client.drop_database(db_name)
    client.close()


@pytest.mark.asyncio
async def test_duplicate_capture_is_counted_once(mongo):
    await mongo.apply_transition(captured())
    second = await mongo.apply_transition(captured())
    assert second.first_delivery is False
    order = await mongo.get_order("order_abc")
    assert order.payment_status == "captured"
    assert order.capture_count == 1
    assert order.captured_amount == 25000


@pytest.mark.asyncio
async def test_terminal_status_is_not_downgraded(mongo):
    await mongo.apply_transition(captured())
    outcome = await mongo.apply_transition(verified_transition("order_abc", "pay_123"))
    assert outcome.applied is False
    await mongo.apply_transition(failed())
    order = await mongo.get_order("order_abc")
    assert order.payment_status == "captured"
    assert order.payment_id == "pay_123"


@pytest.mark.asyncio
async def test_client_save_does_not_promote_status(mongo):
    await mongo.save_order(
        OrderSubmission(
            order_id="order_abc",
            user_id="cookie.lover@example.com",
            items=[{"id": "choco-cookie", "quantity": 2}],
            client_payment_status="captured",
            amount=140,
        )
    )
    order = await mongo.get_order("order_abc")
    assert order.payment_status == "pending"
    await mongo.apply_transition(captured())
    await mongo.save_order(
        OrderSubmission(
            order_id="order_abc",
            user_id="cookie.lover@example.com",
            items=[{"id": "choco-cookie", "quantity": 2}],
            client_payment_status="verified",
        )
    )
    order = await mongo.get_order("order_abc")
    assert order.payment_status == "captured"
    assert order.user_id == "cookie.lover@example.com"


@pytest.mark.asyncio
async def test_concurrent_paths_settle_on_captured(mongo):
    await asyncio.gather(
        mongo.apply_transition(verified_transition("order_race", "pay_123")),
        mongo.apply_transition(captured(order_id="order_race")),
        mongo.apply_transition(captured(order_id="order_race")),
    )
    order = await mongo.get_order("order_race")
    assert order.payment_status == "captured"
    assert order.capture_count == 1


class FakeOrdersCollection:
    """Stands in for the Motor collection: returns a canned `before` document."""

    def __init__(self, before=None, duplicate_key_errors: int = 0):
        self.before = before
        self.duplicate_key_errors = duplicate_key_errors
        self.calls = []

    async def find_one_and_update(self, filter, update, **kwargs):
        from pymongo.errors import DuplicateKeyError

        self.calls.append((filter, update, kwargs))
        if self.duplicate_key_errors:
            self.duplicate_key_errors -= 1
            raise DuplicateKeyError("E11000 duplicate key error")
        return self.before


@pytest.fixture
def audit_events(monkeypatch):
    from cookie_gallery.services import persistence as persistence_module

    events = []

    async def fake_log_event(user_id, event_type, entity_type, entity_id=None, metadata=None):
        events.append((user_id, event_type, entity_id))

    monkeypatch.setattr(persistence_module, "log_event", fake_log_event)
    return events


def use_collection(monkeypatch, collection: FakeOrdersCollection) -> None:
    from cookie_gallery.models.order_record import OrderRecord

    monkeypatch.setattr(OrderRecord, "get_motor_collection", lambda: collection)


@pytest.mark.asyncio
async def test_first_capture_on_new_order(monkeypatch, audit_events):
    from cookie_gallery.services.persistence import MongoPersistence

    collection = FakeOrdersCollection(before=None)
    use_collection(monkeypatch, collection)
    outcome = await MongoPersistence().apply_transition(captured())
    assert outcome.applied is True
    assert outcome.first_delivery is True
    assert outcome.payment_status == "captured"
    filter, pipeline, kwargs = collection.calls[0]
    assert filter == {"order_id": "order_abc"}
    assert kwargs["upsert"] is True
    assert pipeline[1]["$set"]["capture_count"]["$add"][1] == {"$cond": ["$_seen", 0, 1]}
    assert audit_events == [(None, "payment_captured", "order_abc")]


@pytest.mark.asyncio
async def test_duplicate_capture_is_not_audited_again(monkeypatch, audit_events):
    from cookie_gallery.services.persistence import MongoPersistence

    before = {"order_id": "order_abc", "user_id": "a@b.c", "payment_status": "captured",
              "applied_events": ["payment.captured"], "capture_count": 1}
    use_collection(monkeypatch, FakeOrdersCollection(before=before))
    outcome = await MongoPersistence().apply_transition(captured())
    assert outcome.payment_status == "captured"
    assert outcome.first_delivery is False
    assert audit_events == []


@pytest.mark.asyncio
async def test_downgrade_attempt_reports_stored_status(monkeypatch, audit_events):
    from cookie_gallery.services.persistence import MongoPersistence

    before = {"order_id": "order_abc", "payment_status": "captured", "applied_events": ["payment.captured"]}
    use_collection(monkeypatch, FakeOrdersCollection(before=before))
    outcome = await MongoPersistence().apply_transition(verified_transition("order_abc", "pay_123"))
    assert outcome.applied is False
    assert outcome.payment_status == "captured"
    assert audit_events == []


@pytest.mark.asyncio
async def test_concurrent_insert_is_retried(monkeypatch, audit_events):
    from cookie_gallery.services.persistence import MongoPersistence

    collection = FakeOrdersCollection(before={"payment_status": "verified", "applied_events": []},
                                      duplicate_key_errors=1)
    use_collection(monkeypatch, collection)
    outcome = await MongoPersistence().apply_transition(captured())
    assert len(collection.calls) == 2
    assert outcome.applied is True


@pytest.mark.asyncio
async def test_save_order_survives_audit_failure(monkeypatch):
    from cookie_gallery.services import persistence as persistence_module
    from cookie_gallery.services.persistence import MongoPersistence

    async def broken_log_event(*args, **kwargs):
        raise RuntimeError("audit collection unavailable")

    monkeypatch.setattr(persistence_module, "log_event", broken_log_event)
    collection = FakeOrdersCollection(before=None)
    use_collection(monkeypatch, collection)
    await MongoPersistence().save_order(
        OrderSubmission(
            order_id="order_abc",
            user_id="cookie.lover@example.com",
            items=[{"id": "choco-cookie", "quantity": 2}],
            client_payment_status="captured",
        )
    )
    stage = collection.calls[0][1][0]["$set"]
    assert stage["payment_status"] == {"$ifNull": ["$payment_status", "pending"]}
    assert stage["client_payment_status"] == {"$literal": "captured"}
