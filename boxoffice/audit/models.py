from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class AuditAction(str, Enum):
    """Action identifiers written to the audit log."""

    CREATE_STOCK = "create_stock"
    UPDATE_STOCK = "update_stock"
    CREATE_ORDER = "create_order"
    APPROVE_ORDER = "approve_order"
    REJECT_ORDER = "reject_order"
    REMOVE_ORDER = "remove_order"
    UPDATE_ORDER_EMAIL = "update_order_email"
    RESEND_ORDER_EMAIL = "resend_order_email"


class ActorType(str, Enum):
    ADMIN = "admin"
    POS_USER = "pos_user"


@dataclass(frozen=True, slots=True)
class Actor:
    """Verified identity performing a mutating action."""

    type: ActorType
    id: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Provenance of the HTTP request that triggered an action."""

    ip_address: str = "unknown"
    user_agent: str | None = None


@dataclass(slots=True)
class AuditLogEntry:
    id: str
    action: str
    performed_by_type: str
    performed_by_id: str
    performed_by_email: str | None
    pos_outlet_id: str | None
    target_type: str
    target_id: str
    details: Mapping[str, Any]
    ip_address: str | None
    user_agent: str | None
    created_at: datetime


@dataclass(slots=True)
class AuditQuery:
    """Filters and pagination for reading the audit log."""

    action: str | None = None
    performed_by_id: str | None = None
    target_type: str | None = None
    target_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        self.limit, self.offset = clamp_pagination(self.limit, self.offset)


def clamp_pagination(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Clamp ``limit`` to ``[1, MAX_PAGE_SIZE]`` and ``offset`` to ``>= 0``."""

    limit = max(1, min(MAX_PAGE_SIZE, int(limit or DEFAULT_PAGE_SIZE)))
    offset = max(0, int(offset or 0))
    return limit, offset
