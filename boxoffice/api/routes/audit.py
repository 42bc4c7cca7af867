from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict

from boxoffice.api.params import parse_time_bound
from boxoffice.audit.models import AuditQuery
from boxoffice.dependencies.auth import AdminUser
from boxoffice.dependencies.services import AuditServiceDep

router = APIRouter(prefix="/audit-log", tags=["audit"])


class AuditLogEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    performed_by_type: str
    performed_by_id: str
    performed_by_email: str | None
    pos_outlet_id: str | None
    target_type: str
    target_id: str
    details: dict[str, Any]
    ip_address: str | None
    user_agent: str | None
    created_at: datetime


@router.get("", response_model=list[AuditLogEntryResponse])
async def list_audit_log(
    service: AuditServiceDep,
    _: AdminUser,
    action: str | None = Query(default=None),
    performed_by_id: str | None = Query(default=None),
    target_type: str | None = Query(default=None),
    target_id: str | None = Query(default=None),
    created_from: str | None = Query(default=None, alias="from"),
    created_to: str | None = Query(default=None, alias="to"),
    limit: int | None = Query(default=None),
    offset: int | None = Query(default=None),
) -> list[AuditLogEntryResponse]:
    query = AuditQuery(
        action=action,
        performed_by_id=performed_by_id,
        target_type=target_type,
        target_id=target_id,
        created_from=parse_time_bound(created_from, name="from"),
        created_to=parse_time_bound(created_to, name="to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    entries = await service.list_entries(query)
    return [AuditLogEntryResponse.model_validate(entry) for entry in entries]
