import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from cookie_gallery.core.config import get_settings
from cookie_gallery.models.audit_log import AuditLog
from cookie_gallery.models.failed_job import FailedJob
from cookie_gallery.models.order_record import OrderRecord
from cookie_gallery.models.user_profile import UserProfile

DOCUMENT_MODELS = [
    OrderRecord,
    UserProfile,
    AuditLog,
    FailedJob,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db() -> None:
    settings = get_settings()
    uri = settings.mongodb_uri
    kwargs = {}
    if _use_tls(uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
