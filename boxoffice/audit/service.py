from __future__ import annotations

from typing import TYPE_CHECKING

from .models import AuditLogEntry, AuditQuery

if TYPE_CHECKING:
    from boxoffice.unit_of_work import UnitOfWorkFactory


class AuditService:
    """Read side of the audit log; writes happen inside the mutating services."""

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def list_entries(self, query: AuditQuery) -> list[AuditLogEntry]:
        async with self._uow_factory() as uow:
            return await uow.audit.query(query)
