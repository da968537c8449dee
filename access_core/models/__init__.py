from .base import Base
from .audit_log import AccessAuditLog

__all__ = [
    "Base",
    "AccessAuditLog",
]
