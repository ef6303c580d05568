"""ARQ jobs: retry status transitions whose inline write failed."""

import uuid
from typing import Any

from arq import Retry, create_pool
from arq.connections import RedisSettings

from cookie_gallery.core.config import get_settings
from cookie_gallery.core.logging import configure_logging, get_logger
from cookie_gallery.services.payments import StatusTransition

log = get_logger(__name__)


async def _run_with_dlq(
    job_name: str,
    ctx: dict[str, Any],
    args: list[Any],
    coro,
) -> None:
    """Run coroutine; retry with back-off, and after the last try persist to FailedJob then re-raise."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None
    job_try = ctx.get("job_try") or 1
    settings = get_settings()
    try:
        await coro
    except Exception as e:
        if job_try < settings.transition_max_tries:
            log.warning("job_retry", job=job_name, job_id=job_id, job_try=job_try, reason=str(e))
            raise Retry(defer=job_try * settings.transition_retry_delay_seconds) from e
        fid = job_id or str(uuid.uuid4())
        await ctx["persistence"].record_failed_job(job_name, fid, args, str(e), job_try)
        log.exception("job_failed", job=job_name, job_id=fid, reason=str(e))
        raise


async def apply_order_transition(ctx: dict[str, Any], transition: dict[str, Any]) -> None:
    """Re-apply a verified status transition. Safe to repeat: the store ignores duplicates and downgrades."""
    t = StatusTransition.model_validate(transition)

    async def _run() -> None:
        log.info("job_start", job="apply_order_transition", order_id=t.order_id, event_type=t.event_type)
        outcome = await ctx["persistence"].apply_transition(t)
        log.info("job_done", job="apply_order_transition", order_id=t.order_id, status=outcome.payment_status)

    await _run_with_dlq("apply_order_transition", ctx, [transition], _run())


async def startup(ctx: dict) -> None:
    from cookie_gallery.db.init import init_db
    from cookie_gallery.services.persistence import MongoPersistence
    configure_logging(debug=get_settings().debug)
    await init_db()
    ctx["persistence"] = MongoPersistence()


async def shutdown(ctx: dict) -> None:
    pass


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/") or 0) if u.path else 0,
    )


async def enqueue_order_transition(transition: StatusTransition) -> None:
    """Enqueue apply_order_transition (call from API)."""
    redis = await create_pool(get_redis_settings())
    try:
        await redis.enqueue_job("apply_order_transition", transition.model_dump(mode="json"))
    finally:
        await redis.aclose()


class WorkerSettings:
    functions = [apply_order_transition]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    max_tries = get_settings().transition_max_tries
