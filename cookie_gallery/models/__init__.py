from cookie_gallery.models.audit_log import AuditLog
from cookie_gallery.models.failed_job import FailedJob
from cookie_gallery.models.order_record import OrderRecord
from cookie_gallery.models.user_profile import UserProfile

__all__ = [
    "AuditLog",
    "FailedJob",
    "OrderRecord",
    "UserProfile",
]
