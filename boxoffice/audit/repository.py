from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from boxoffice.db import ensure_datetime
from packages.db.models import AuditLogTable

from .models import Actor, AuditAction, AuditLogEntry, AuditQuery, RequestContext


class AuditRepository:
    """Append-only access to ``pos_audit_log``.

    There is no update or delete method: entries are the durable
    record used to settle disputes.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        *,
        action: AuditAction,
        actor: Actor,
        target_type: str,
        target_id: str,
        details: Mapping[str, Any] | None = None,
        outlet_id: str | None = None,
        context: RequestContext | None = None,
    ) -> AuditLogEntry:
        context = context or RequestContext()
        row = AuditLogTable(
            action=action.value,
            performed_by_type=actor.type.value,
            performed_by_id=actor.id,
            performed_by_email=actor.email,
            pos_outlet_id=outlet_id,
            target_type=target_type,
            target_id=target_id,
            details=dict(details or {}),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            created_at=datetime.now(timezone.utc),
        )
        self._session.add(row)
        await self._session.flush()
        return self._table_to_entry(row)

    async def query(self, query: AuditQuery) -> list[AuditLogEntry]:
        statement = select(AuditLogTable)
        if query.action:
            statement = statement.where(AuditLogTable.action == query.action)
        if query.performed_by_id:
            statement = statement.where(AuditLogTable.performed_by_id == query.performed_by_id)
        if query.target_type:
            statement = statement.where(AuditLogTable.target_type == query.target_type)
        if query.target_id:
            statement = statement.where(AuditLogTable.target_id == query.target_id)
        if query.created_from is not None:
            statement = statement.where(AuditLogTable.created_at >= query.created_from)
        if query.created_to is not None:
            statement = statement.where(AuditLogTable.created_at <= query.created_to)
        statement = (
            statement.order_by(AuditLogTable.created_at.desc(), AuditLogTable.id.desc())
            .limit(query.limit)
            .offset(query.offset)
        )
        result = await self._session.execute(statement)
        return [self._table_to_entry(row) for row in result.scalars().all()]

    @staticmethod
    def _table_to_entry(row: AuditLogTable) -> AuditLogEntry:
        return AuditLogEntry(
            id=row.id,
            action=row.action,
            performed_by_type=row.performed_by_type,
            performed_by_id=row.performed_by_id,
            performed_by_email=row.performed_by_email,
            pos_outlet_id=row.pos_outlet_id,
            target_type=row.target_type,
            target_id=row.target_id,
            details=dict(row.details or {}),
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            created_at=ensure_datetime(row.created_at),
        )
