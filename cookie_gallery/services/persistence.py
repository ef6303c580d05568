"""Order persistence in MongoDB.

Status writes are single-document pipeline upserts keyed by `order_id`; the
stored status only moves up `PAYMENT_STATUS_RANK`, so the confirmation path and
the webhook path can race without a read-modify-write and a terminal status is
never downgraded.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from beanie.operators import Set
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from cookie_gallery.core.audit import log_event
from cookie_gallery.core.logging import get_logger
from cookie_gallery.models.failed_job import FailedJob
from cookie_gallery.models.order_record import PAYMENT_STATUS_RANK, OrderRecord, can_transition
from cookie_gallery.models.user_profile import UserProfile
from cookie_gallery.services.payments import EVENT_PAYMENT_CAPTURED, StatusTransition

log = get_logger(__name__)

_UPSERT_ATTEMPTS = 2


class OrderSubmission(BaseModel):
    """Client save step after checkout."""
    order_id: str
    user_id: str
    items: Any
    client_payment_status: str
    amount: float | None = None
    currency: str = "INR"


class ProfileSubmission(BaseModel):
    email: str
    auth_uid: str | None = None
    display_name: str | None = None
    phone_number: str | None = None


@dataclass(frozen=True)
class TransitionOutcome:
    order_id: str
    payment_status: str
    applied: bool  # False when a higher-ranked status was already stored
    first_delivery: bool  # False when this event type was already applied to the order


def resolve_transition(
    current_status: str | None,
    applied_events: list[str] | None,
    transition: StatusTransition,
) -> TransitionOutcome:
    """Outcome of `transition` against a stored order state (None when the order does not exist yet)."""
    applied = can_transition(current_status, transition.status)
    return TransitionOutcome(
        order_id=transition.order_id,
        payment_status=transition.status if applied else current_status,
        applied=applied,
        first_delivery=transition.event_type not in (applied_events or []),
    )


class PersistenceGateway(Protocol):
    async def save_order(self, submission: OrderSubmission) -> None: ...

    async def apply_transition(self, transition: StatusTransition) -> TransitionOutcome: ...

    async def get_order(self, order_id: str) -> OrderRecord | None: ...

    async def save_user_profile(self, profile: ProfileSubmission) -> None: ...

    async def record_failed_job(
        self, job_name: str, job_id: str, args: list[Any], reason: str, retries: int
    ) -> None: ...


def _lit(value: Any) -> dict[str, Any]:
    return {"$literal": value}


def _rank_of_stored_status() -> dict[str, Any]:
    return {
        "$switch": {
            "branches": [
                {"case": {"$eq": ["$payment_status", status]}, "then": rank}
                for status, rank in PAYMENT_STATUS_RANK.items()
            ],
            "default": -1,
        }
    }


def transition_pipeline(transition: StatusTransition, now: datetime) -> list[dict[str, Any]]:
    is_capture = transition.event_type == EVENT_PAYMENT_CAPTURED
    fields: dict[str, Any] = {
        "order_id": _lit(transition.order_id),
        "payment_status": {"$cond": ["$_advance", _lit(transition.status), "$payment_status"]},
        "currency": {"$ifNull": ["$currency", _lit(transition.currency or "INR")]},
        "items": {"$ifNull": ["$items", []]},
        "applied_events": {
            "$setUnion": [{"$ifNull": ["$applied_events", []]}, [_lit(transition.event_type)]],
        },
        "capture_count": {
            "$add": [
                {"$ifNull": ["$capture_count", 0]},
                {"$cond": ["$_seen", 0, 1]} if is_capture else 0,
            ]
        },
        "created_at": {"$ifNull": ["$created_at", now]},
        "updated_at": now,
    }
    if transition.payment_id:
        fields["payment_id"] = {"$cond": ["$_advance", _lit(transition.payment_id), "$payment_id"]}
    if is_capture and transition.amount is not None:
        fields["captured_amount"] = {"$cond": ["$_advance", _lit(transition.amount), "$captured_amount"]}
    return [
        {
            "$set": {
                "_advance": {"$gte": [PAYMENT_STATUS_RANK[transition.status], _rank_of_stored_status()]},
                "_seen": {"$in": [_lit(transition.event_type), {"$ifNull": ["$applied_events", []]}]},
            }
        },
        {"$set": fields},
        {"$unset": ["_advance", "_seen"]},
    ]


def save_order_pipeline(submission: OrderSubmission, now: datetime) -> list[dict[str, Any]]:
    return [
        {
            "$set": {
                "order_id": _lit(submission.order_id),
                "user_id": _lit(submission.user_id),
                "items": _lit(submission.items),
                "amount": _lit(submission.amount),
                "currency": _lit(submission.currency),
                "client_payment_status": _lit(submission.client_payment_status),
                "payment_status": {"$ifNull": ["$payment_status", "pending"]},
                "applied_events": {"$ifNull": ["$applied_events", []]},
                "capture_count": {"$ifNull": ["$capture_count", 0]},
                "created_at": {"$ifNull": ["$created_at", now]},
                "updated_at": now,
            }
        }
    ]


async def _audit(
    user_id: str | None,
    event_type: str,
    entity_type: str,
    entity_id: str | None,
    metadata: dict[str, Any],
) -> None:
    """Audit after a write has landed; a failure here must not turn the write into an error."""
    try:
        await log_event(user_id, event_type, entity_type, entity_id, metadata)
    except Exception:
        log.exception("audit_write_failed", audit_event=event_type, entity_id=entity_id)


class MongoPersistence:
    """PersistenceGateway over the Beanie models; requires init_db() to have run."""

    async def _upsert(self, order_id: str, pipeline: list[dict[str, Any]]) -> dict[str, Any] | None:
        collection = OrderRecord.get_motor_collection()
        for attempt in range(_UPSERT_ATTEMPTS):
            try:
                return await collection.find_one_and_update(
                    {"order_id": order_id},
                    pipeline,
                    upsert=True,
                    return_document=ReturnDocument.BEFORE,
                )
            except DuplicateKeyError:
                # Two upserts inserted concurrently; the retry matches the winner's document.
                if attempt == _UPSERT_ATTEMPTS - 1:
                    raise
        return None

    async def save_order(self, submission: OrderSubmission) -> None:
        await self._upsert(submission.order_id, save_order_pipeline(submission, datetime.utcnow()))
        log.info("order_saved", order_id=submission.order_id, user_id=submission.user_id)
        await _audit(
            submission.user_id,
            "order_saved",
            "order",
            submission.order_id,
            {"client_payment_status": submission.client_payment_status, "amount": submission.amount},
        )

    async def apply_transition(self, transition: StatusTransition) -> TransitionOutcome:
        before = await self._upsert(transition.order_id, transition_pipeline(transition, datetime.utcnow()))
        before = before or {}
        outcome = resolve_transition(before.get("payment_status"), before.get("applied_events"), transition)
        log.info(
            "order_transition",
            order_id=transition.order_id,
            event_type=transition.event_type,
            status=outcome.payment_status,
            applied=outcome.applied,
            first_delivery=outcome.first_delivery,
        )
        if outcome.applied and outcome.first_delivery:
            await _audit(
                before.get("user_id"),
                transition.event_type.replace(".", "_"),
                "order",
                transition.order_id,
                {"payment_id": transition.payment_id, "amount": transition.amount, "source": transition.source},
            )
        return outcome

    async def get_order(self, order_id: str) -> OrderRecord | None:
        return await OrderRecord.find_one(OrderRecord.order_id == order_id)

    async def save_user_profile(self, profile: ProfileSubmission) -> None:
        now = datetime.utcnow()
        await UserProfile.find_one(UserProfile.uid == profile.email).upsert(
            Set(
                {
                    UserProfile.auth_uid: profile.auth_uid,
                    UserProfile.email: profile.email,
                    UserProfile.display_name: profile.display_name,
                    UserProfile.phone_number: profile.phone_number,
                    UserProfile.updated_at: now,
                }
            ),
            on_insert=UserProfile(
                uid=profile.email,
                auth_uid=profile.auth_uid,
                email=profile.email,
                display_name=profile.display_name,
                phone_number=profile.phone_number,
            ),
        )
        log.info("user_saved", email=profile.email)
        await _audit(profile.email, "user_saved", "user", profile.email, {"auth_uid": profile.auth_uid})

    async def record_failed_job(
        self, job_name: str, job_id: str, args: list[Any], reason: str, retries: int
    ) -> None:
        order_id = args[0].get("order_id") if args and isinstance(args[0], dict) else None
        await FailedJob(
            job_name=job_name,
            job_id=job_id,
            order_id=order_id,
            args=args,
            reason=reason[:2000],
            retries=retries,
        ).insert()
