"""Apply verified status transitions; hand failed writes to the retry queue."""

from typing import Awaitable, Callable

from cookie_gallery.core.logging import get_logger
from cookie_gallery.services.payments import StatusTransition
from cookie_gallery.services.persistence import PersistenceGateway, TransitionOutcome

log = get_logger(__name__)

TransitionEnqueuer = Callable[[StatusTransition], Awaitable[None]]


async def log_only_enqueuer(transition: StatusTransition) -> None:
    log.error(
        "transition_dropped",
        reason="retry queue not configured",
        order_id=transition.order_id,
        event_type=transition.event_type,
        status=transition.status,
    )


async def record_transition(
    persistence: PersistenceGateway | None,
    enqueue: TransitionEnqueuer,
    transition: StatusTransition,
) -> TransitionOutcome | None:
    """Best-effort write. Never raises: the caller has already answered the payment outcome."""
    if persistence is None:
        log.warning("transition_not_persisted", reason="persistence not configured", order_id=transition.order_id)
        return None
    try:
        return await persistence.apply_transition(transition)
    except Exception:
        log.exception("transition_persist_failed", order_id=transition.order_id, event_type=transition.event_type)
    try:
        await enqueue(transition)
        log.info("transition_enqueued", order_id=transition.order_id, event_type=transition.event_type)
    except Exception:
        log.exception("transition_enqueue_failed", order_id=transition.order_id, event_type=transition.event_type)
    return None
