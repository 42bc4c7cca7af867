from __future__ import annotations

from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from boxoffice.db import optional_datetime
from packages.db.models import EventPassTable, EventTable, OutletTable

from .models import Event, EventPass, Outlet


class CatalogRepository:
    """Read-only lookups of outlets, events and pass types."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_outlet_by_slug(self, slug: str) -> Outlet | None:
        result = await self._session.execute(
            select(OutletTable).where(OutletTable.slug == slug, OutletTable.is_active.is_(True))
        )
        row = result.scalars().first()
        return self._table_to_outlet(row) if row is not None else None

    async def get_event(self, event_id: str) -> Event | None:
        row = await self._session.get(EventTable, event_id)
        if row is None:
            return None
        return Event(
            id=row.id,
            name=row.name,
            date=optional_datetime(row.date),
            venue=row.venue,
            city=row.city,
        )

    async def get_passes(self, event_id: str, pass_ids: Iterable[str]) -> dict[str, EventPass]:
        """Return the active passes of ``event_id`` among ``pass_ids`` keyed by id."""

        wanted = list(dict.fromkeys(pass_ids))
        if not wanted:
            return {}
        result = await self._session.execute(
            select(EventPassTable).where(
                EventPassTable.event_id == event_id,
                EventPassTable.id.in_(wanted),
                EventPassTable.is_active.is_(True),
            )
        )
        return {
            row.id: EventPass(
                id=row.id,
                event_id=row.event_id,
                name=row.name,
                price=float(row.price),
                is_active=bool(row.is_active),
            )
            for row in result.scalars().all()
        }

    @staticmethod
    def _table_to_outlet(row: OutletTable) -> Outlet:
        return Outlet(id=row.id, name=row.name, slug=row.slug, is_active=bool(row.is_active))
