from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, case, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from boxoffice.db import ensure_datetime
from boxoffice.errors import Conflict, InvalidArgument, OutOfStock
from packages.db.models import EventPassTable, StockTable

from .models import StockEntry, StockKey, violates_capacity

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class StockLedger:
    """Sole authority on remaining inventory.

    Counters only move through :meth:`reserve` and :meth:`release`, each of
    which is a single conditional ``UPDATE`` so that concurrent sales against
    the same key can never push ``sold_quantity`` past ``max_quantity``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, entry_id: str) -> StockEntry | None:
        row = await self._session.get(StockTable, entry_id, populate_existing=True)
        if row is None:
            return None
        return self._table_to_entry(row)

    async def get_by_key(self, key: StockKey) -> StockEntry | None:
        result = await self._session.execute(
            select(StockTable)
            .where(self._key_clause(key))
            .execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return self._table_to_entry(row) if row is not None else None

    async def list_entries(
        self,
        *,
        outlet_id: str,
        event_id: str | None = None,
        active_only: bool = False,
    ) -> list[StockEntry]:
        statement = (
            select(StockTable, EventPassTable)
            .join(EventPassTable, EventPassTable.id == StockTable.pass_id, isouter=True)
            .where(StockTable.pos_outlet_id == outlet_id)
        )
        if event_id is not None:
            statement = statement.where(StockTable.event_id == event_id)
        if active_only:
            statement = statement.where(StockTable.is_active.is_(True), EventPassTable.is_active.is_(True))
        statement = statement.order_by(StockTable.event_id, EventPassTable.name)
        result = await self._session.execute(statement)
        entries: list[StockEntry] = []
        for stock_row, pass_row in result.all():
            entry = self._table_to_entry(stock_row)
            if pass_row is not None:
                entry.pass_name = pass_row.name
                entry.pass_price = float(pass_row.price)
            entries.append(entry)
        return entries

    async def add(self, key: StockKey, *, max_quantity: int | None, sold_quantity: int) -> StockEntry:
        if sold_quantity < 0:
            raise InvalidArgument("sold_quantity cannot be negative")
        if violates_capacity(max_quantity, sold_quantity):
            raise InvalidArgument("sold_quantity cannot exceed max_quantity")
        row = StockTable(
            pos_outlet_id=key.outlet_id,
            event_id=key.event_id,
            pass_id=key.pass_id,
            max_quantity=max_quantity,
            sold_quantity=sold_quantity,
            is_active=True,
            updated_at=datetime.now(timezone.utc),
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise Conflict(
                "This pass type already has stock for this outlet and event"
            ) from exc
        return self._table_to_entry(row)

    async def update(
        self,
        entry_id: str,
        *,
        max_quantity: int | None = _UNSET,
        sold_quantity: int = _UNSET,
        is_active: bool = _UNSET,
    ) -> bool:
        """Apply an administrative edit guarded by the capacity invariant.

        The invariant is checked in the ``WHERE`` clause against whichever
        side is not being changed, so the stored value that is compared is the
        one the database holds at write time. Returns ``False`` when no row
        matched (missing entry or violated invariant).
        """

        values: dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
        conditions = [StockTable.id == entry_id]
        max_given = max_quantity is not _UNSET
        sold_given = sold_quantity is not _UNSET

        if max_given:
            values["max_quantity"] = max_quantity
        if sold_given:
            if sold_quantity < 0:
                raise InvalidArgument("sold_quantity cannot be negative")
            values["sold_quantity"] = sold_quantity
        if is_active is not _UNSET:
            values["is_active"] = is_active

        if max_given and sold_given:
            if violates_capacity(max_quantity, sold_quantity):
                raise InvalidArgument("sold_quantity cannot exceed max_quantity")
        elif max_given and max_quantity is not None:
            conditions.append(StockTable.sold_quantity <= max_quantity)
        elif sold_given:
            conditions.append(
                or_(StockTable.max_quantity.is_(None), StockTable.max_quantity >= sold_quantity)
            )

        result = await self._session.execute(
            update(StockTable)
            .where(and_(*conditions))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def reserve(self, key: StockKey, quantity: int) -> None:
        """Atomically add ``quantity`` to the sold counter or raise ``OutOfStock``."""

        if quantity <= 0:
            raise InvalidArgument("quantity must be positive")
        result = await self._session.execute(
            update(StockTable)
            .where(
                self._key_clause(key),
                StockTable.is_active.is_(True),
                or_(
                    StockTable.max_quantity.is_(None),
                    StockTable.sold_quantity + quantity <= StockTable.max_quantity,
                ),
            )
            .values(
                sold_quantity=StockTable.sold_quantity + quantity,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise OutOfStock(f"Insufficient stock for pass {key.pass_id}")

    async def release(self, key: StockKey, quantity: int) -> bool:
        """Give ``quantity`` units back, clamping the sold counter at zero.

        Returns ``False`` when no entry exists for the key.
        """

        if quantity <= 0:
            return False
        decremented = StockTable.sold_quantity - quantity
        result = await self._session.execute(
            update(StockTable)
            .where(self._key_clause(key))
            .values(
                sold_quantity=case((decremented < 0, 0), else_=decremented),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("No stock entry to release %s units into for %s", quantity, key)
            return False
        return True

    @staticmethod
    def _key_clause(key: StockKey):
        return and_(
            StockTable.pos_outlet_id == key.outlet_id,
            StockTable.event_id == key.event_id,
            StockTable.pass_id == key.pass_id,
        )

    @staticmethod
    def _table_to_entry(row: StockTable) -> StockEntry:
        return StockEntry(
            id=row.id,
            outlet_id=row.pos_outlet_id,
            event_id=row.event_id,
            pass_id=row.pass_id,
            max_quantity=row.max_quantity,
            sold_quantity=row.sold_quantity,
            is_active=bool(row.is_active),
            updated_at=ensure_datetime(row.updated_at),
        )
