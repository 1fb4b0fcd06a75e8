from auth_service.models.user import User
from auth_service.models.refresh_token import RefreshToken
from auth_service.models.reset_token import ResetToken
from auth_service.models.audit_log import AuditLog

__all__ = [
    "User",
    "RefreshToken",
    "ResetToken",
    "AuditLog",
]
