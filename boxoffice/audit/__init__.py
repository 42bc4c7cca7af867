from .models import (
    Actor,
    ActorType,
    AuditAction,
    AuditLogEntry,
    AuditQuery,
    RequestContext,
    clamp_pagination,
)
from .repository import AuditRepository
from .service import AuditService

__all__ = [
    "Actor",
    "ActorType",
    "AuditAction",
    "AuditLogEntry",
    "AuditQuery",
    "AuditRepository",
    "AuditService",
    "RequestContext",
    "clamp_pagination",
]
