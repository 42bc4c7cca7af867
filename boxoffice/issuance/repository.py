from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from boxoffice.db import ensure_datetime, optional_datetime
from packages.db.models import ScanRecordTable, TicketTable

from .models import ScanRecord, Ticket, TicketStatus


class TicketRepository:
    """Tickets and their scan projections.

    The two tables are always written and deleted together; a scan record is
    never touched on its own.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, ticket: Ticket, scan: ScanRecord) -> Ticket:
        self._session.add(
            TicketTable(
                id=ticket.id,
                order_id=ticket.order_id,
                order_line_id=ticket.order_line_id,
                unit_index=ticket.unit_index,
                secure_token=ticket.secure_token,
                qr_code_url=ticket.qr_code_url,
                status=ticket.status.value,
                generated_at=ticket.generated_at,
                delivered_at=ticket.delivered_at,
            )
        )
        # Parent row first so the scan record's foreign key is satisfied.
        await self._session.flush()
        self._session.add(
            ScanRecordTable(
                ticket_id=scan.ticket_id,
                order_id=scan.order_id,
                secure_token=scan.secure_token,
                source=scan.source,
                buyer_name=scan.buyer_name,
                buyer_phone=scan.buyer_phone,
                buyer_email=scan.buyer_email,
                buyer_city=scan.buyer_city,
                event_id=scan.event_id,
                event_name=scan.event_name,
                event_date=scan.event_date,
                event_venue=scan.event_venue,
                order_line_id=scan.order_line_id,
                pass_type=scan.pass_type,
                pass_price=scan.pass_price,
                ticket_status=scan.ticket_status,
                qr_code_url=scan.qr_code_url,
                generated_at=scan.generated_at,
            )
        )
        await self._session.flush()
        return ticket

    async def list_by_order(self, order_id: str) -> list[Ticket]:
        result = await self._session.execute(
            select(TicketTable)
            .where(TicketTable.order_id == order_id)
            .order_by(TicketTable.generated_at, TicketTable.order_line_id, TicketTable.unit_index)
            .execution_options(populate_existing=True)
        )
        return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def list_scan_records(self, order_id: str) -> list[ScanRecord]:
        result = await self._session.execute(
            select(ScanRecordTable).where(ScanRecordTable.order_id == order_id)
        )
        return [self._table_to_scan(row) for row in result.scalars().all()]

    async def has_unit(self, order_line_id: str, unit_index: int) -> bool:
        result = await self._session.execute(
            select(TicketTable.id).where(
                TicketTable.order_line_id == order_line_id,
                TicketTable.unit_index == unit_index,
            )
        )
        return result.first() is not None

    async def issued_units(self, order_id: str) -> set[tuple[str, int]]:
        result = await self._session.execute(
            select(TicketTable.order_line_id, TicketTable.unit_index).where(TicketTable.order_id == order_id)
        )
        return {(line_id, int(index)) for line_id, index in result.all()}

    async def delete_by_order(self, order_id: str) -> int:
        """Revoke every ticket of ``order_id``; returns the number of tickets deleted."""

        await self._session.execute(
            delete(ScanRecordTable)
            .where(ScanRecordTable.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(
            delete(TicketTable)
            .where(TicketTable.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def mark_delivered(self, ticket_ids: Sequence[str]) -> int:
        if not ticket_ids:
            return 0
        result = await self._session.execute(
            update(TicketTable)
            .where(TicketTable.id.in_(list(ticket_ids)))
            .values(status=TicketStatus.DELIVERED.value, delivered_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            order_id=row.order_id,
            order_line_id=row.order_line_id,
            secure_token=row.secure_token,
            qr_code_url=row.qr_code_url,
            status=TicketStatus(row.status),
            generated_at=ensure_datetime(row.generated_at),
            delivered_at=optional_datetime(row.delivered_at),
            unit_index=int(row.unit_index),
        )

    @staticmethod
    def _table_to_scan(row: ScanRecordTable) -> ScanRecord:
        return ScanRecord(
            ticket_id=row.ticket_id,
            order_id=row.order_id,
            secure_token=row.secure_token,
            buyer_name=row.buyer_name,
            buyer_phone=row.buyer_phone,
            buyer_email=row.buyer_email,
            buyer_city=row.buyer_city,
            event_id=row.event_id,
            event_name=row.event_name,
            event_date=optional_datetime(row.event_date),
            event_venue=row.event_venue,
            order_line_id=row.order_line_id,
            pass_type=row.pass_type,
            pass_price=float(row.pass_price),
            qr_code_url=row.qr_code_url,
            generated_at=ensure_datetime(row.generated_at),
            ticket_status=row.ticket_status,
            source=row.source,
        )
