"""Collaborators built once from settings and injected into the routers."""

from dataclasses import dataclass, field

from cookie_gallery.core.config import Settings
from cookie_gallery.core.logging import get_logger
from cookie_gallery.services.gateway import PaymentGatewayClient, RazorpayGatewayClient
from cookie_gallery.services.identity import FirebaseIdentityVerifier, IdentityVerifier
from cookie_gallery.services.persistence import MongoPersistence, PersistenceGateway
from cookie_gallery.services.transitions import TransitionEnqueuer, log_only_enqueuer

log = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    gateway: PaymentGatewayClient | None = None
    persistence: PersistenceGateway | None = None
    identity: IdentityVerifier | None = None
    enqueue_transition: TransitionEnqueuer = field(default=log_only_enqueuer)


def build_services(settings: Settings) -> Services:
    """Missing credentials leave the collaborator unset; the routes that need it answer 503."""
    services = Services(settings=settings)
    if settings.payments_enabled:
        services.gateway = RazorpayGatewayClient(settings.razorpay_key_id, settings.razorpay_key_secret)
        log.info("startup", msg="Razorpay enabled")
    else:
        log.warning("startup", msg="Razorpay credentials missing; /create-order disabled")
    if settings.mongodb_uri:
        services.persistence = MongoPersistence()
    else:
        log.warning("startup", msg="MONGODB_URI not set; order and user storage disabled")
    if settings.firebase_project_id:
        services.identity = FirebaseIdentityVerifier(settings.firebase_project_id)
    else:
        log.warning("startup", msg="FIREBASE_PROJECT_ID not set; authenticated routes disabled")
    if settings.redis_url:
        from cookie_gallery.worker.tasks import enqueue_order_transition
        services.enqueue_transition = enqueue_order_transition
    if not settings.razorpay_webhook_secret:
        log.warning("startup", msg="RAZORPAY_WEBHOOK_SECRET not set; webhooks will be refused")
    return services
