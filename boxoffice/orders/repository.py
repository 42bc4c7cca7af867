from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from boxoffice.db import ensure_datetime, optional_datetime
from packages.db.models import EventTable, OrderLineTable, OrderTable, OutletTable, TicketTable

from .models import (
    Customer,
    DailySales,
    Order,
    OrderLine,
    OrderQuery,
    OrderStatistics,
    OutletStatistics,
    SaleLine,
    StatusTotals,
)
from .state import OrderStatus


class OrderRepository:
    """Persistence for orders and their lines.

    Status changes go through :meth:`transition`, a conditional ``UPDATE``
    whose ``WHERE`` clause carries the expected source states. Two concurrent
    approvals therefore cannot both win: the loser matches zero rows.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        *,
        outlet_id: str,
        event_id: str,
        pos_user_id: str,
        customer: Customer,
        lines: Sequence[tuple[SaleLine, str, float]],
        status: OrderStatus,
    ) -> Order:
        """Insert an order with ``lines`` given as ``(sale_line, pass_type, unit_price)``."""

        now = datetime.now(timezone.utc)
        total = round(sum(sale.quantity * price for sale, _, price in lines), 2)
        order_row = OrderTable(
            status=status.value,
            pos_outlet_id=outlet_id,
            event_id=event_id,
            pos_user_id=pos_user_id,
            user_name=customer.full_name,
            user_phone=customer.phone,
            user_email=customer.email,
            city=customer.city,
            total_price=total,
            created_at=now,
            updated_at=now,
        )
        self._session.add(order_row)
        await self._session.flush()
        line_rows = [
            OrderLineTable(
                order_id=order_row.id,
                pass_id=sale.pass_id,
                pass_type=pass_type,
                quantity=sale.quantity,
                price=price,
            )
            for sale, pass_type, price in lines
        ]
        self._session.add_all(line_rows)
        await self._session.flush()
        order = self._table_to_order(order_row)
        order.lines = [self._table_to_line(row) for row in line_rows]
        return order

    async def get(self, order_id: str) -> Order | None:
        row = await self._session.get(OrderTable, order_id, populate_existing=True)
        if row is None:
            return None
        orders = await self._hydrate([row])
        return orders[0]

    async def list_orders(self, query: OrderQuery) -> list[Order]:
        statement = select(OrderTable)
        if query.status is not None:
            statement = statement.where(OrderTable.status == query.status.value)
        if query.event_id:
            statement = statement.where(OrderTable.event_id == query.event_id)
        if query.outlet_id:
            statement = statement.where(OrderTable.pos_outlet_id == query.outlet_id)
        if query.created_from is not None:
            statement = statement.where(OrderTable.created_at >= query.created_from)
        if query.created_to is not None:
            statement = statement.where(OrderTable.created_at <= query.created_to)
        statement = (
            statement.order_by(OrderTable.created_at.desc(), OrderTable.id.desc())
            .limit(query.limit)
            .offset(query.offset)
        )
        result = await self._session.execute(statement)
        return await self._hydrate(result.scalars().all())

    async def transition(
        self,
        order_id: str,
        *,
        from_statuses: Iterable[OrderStatus],
        to_status: OrderStatus,
        values: dict[str, Any] | None = None,
    ) -> bool:
        """Flip the status only if it is still one of ``from_statuses``."""

        allowed = [status.value for status in from_statuses]
        changes = dict(values or {})
        changes["status"] = to_status.value
        changes["updated_at"] = datetime.now(timezone.utc)
        result = await self._session.execute(
            update(OrderTable)
            .where(OrderTable.id == order_id, OrderTable.status.in_(allowed))
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def hold(self, order_id: str, *, status: OrderStatus) -> bool:
        """Lock the order row if it is still in ``status``.

        The lock lasts until the unit of work ends, so a concurrent
        :meth:`transition` of the same order waits for it or has already won.
        """

        result = await self._session.execute(
            update(OrderTable)
            .where(OrderTable.id == order_id, OrderTable.status == status.value)
            .values(updated_at=OrderTable.updated_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_email(self, order_id: str, email: str | None) -> bool:
        result = await self._session.execute(
            update(OrderTable)
            .where(OrderTable.id == order_id)
            .values(user_email=email, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def statistics(
        self,
        *,
        outlet_id: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> OrderStatistics:
        def scoped(statement):
            if outlet_id:
                statement = statement.where(OrderTable.pos_outlet_id == outlet_id)
            if created_from is not None:
                statement = statement.where(OrderTable.created_at >= created_from)
            if created_to is not None:
                statement = statement.where(OrderTable.created_at <= created_to)
            return statement

        order_rows = await self._session.execute(
            scoped(
                select(
                    OrderTable.pos_outlet_id,
                    OutletTable.name,
                    OrderTable.status,
                    func.count(OrderTable.id),
                    func.sum(OrderTable.total_price),
                )
                .join(OutletTable, OutletTable.id == OrderTable.pos_outlet_id)
                .group_by(OrderTable.pos_outlet_id, OutletTable.name, OrderTable.status)
            )
        )
        unit_rows = await self._session.execute(
            scoped(
                select(
                    OrderTable.pos_outlet_id,
                    OrderTable.status,
                    OrderLineTable.pass_type,
                    func.sum(OrderLineTable.quantity),
                )
                .join(OrderLineTable, OrderLineTable.order_id == OrderTable.id)
                .group_by(OrderTable.pos_outlet_id, OrderTable.status, OrderLineTable.pass_type)
            )
        )
        day = func.date(OrderTable.created_at)
        daily_rows = await self._session.execute(
            scoped(
                select(day, func.count(OrderTable.id), func.sum(OrderTable.total_price))
                .where(OrderTable.status == OrderStatus.PAID.value)
                .group_by(day)
                .order_by(day)
            )
        )

        stats = OrderStatistics()
        outlets: dict[str, OutletStatistics] = {}
        for outlet, outlet_name, status_value, count, revenue in order_rows.all():
            status = OrderStatus(status_value)
            totals = stats.by_status.setdefault(status, StatusTotals())
            totals.orders += int(count)
            totals.revenue = round(totals.revenue + float(revenue or 0), 2)
            per_outlet = outlets.setdefault(outlet, OutletStatistics(outlet_id=outlet, outlet_name=outlet_name))
            per_outlet.by_status[status.value] = int(count)
            if status is OrderStatus.PAID:
                per_outlet.paid_orders = int(count)
                per_outlet.paid_revenue = round(float(revenue or 0), 2)

        for outlet, status_value, pass_type, quantity in unit_rows.all():
            status = OrderStatus(status_value)
            stats.by_status.setdefault(status, StatusTotals()).tickets += int(quantity or 0)
            if status is not OrderStatus.PAID:
                continue
            stats.by_pass_type[pass_type] = stats.by_pass_type.get(pass_type, 0) + int(quantity or 0)
            per_outlet = outlets.get(outlet)
            if per_outlet is not None:
                per_outlet.by_pass_type[pass_type] = per_outlet.by_pass_type.get(pass_type, 0) + int(quantity or 0)

        stats.by_outlet = sorted(outlets.values(), key=lambda entry: (entry.outlet_name or "", entry.outlet_id))
        # date() yields text on SQLite and a date on PostgreSQL.
        stats.daily = [
            DailySales(
                date=value.isoformat() if hasattr(value, "isoformat") else str(value),
                orders=int(count),
                revenue=round(float(revenue or 0), 2),
            )
            for value, count, revenue in daily_rows.all()
        ]
        return stats

    async def _hydrate(self, rows: Sequence[OrderTable]) -> list[Order]:
        if not rows:
            return []
        order_ids = [row.id for row in rows]

        line_result = await self._session.execute(
            select(OrderLineTable).where(OrderLineTable.order_id.in_(order_ids)).order_by(OrderLineTable.id)
        )
        lines_by_order: dict[str, list[OrderLine]] = {}
        for line_row in line_result.scalars().all():
            lines_by_order.setdefault(line_row.order_id, []).append(self._table_to_line(line_row))

        outlet_result = await self._session.execute(
            select(OutletTable).where(OutletTable.id.in_({row.pos_outlet_id for row in rows}))
        )
        outlets = {outlet.id: outlet for outlet in outlet_result.scalars().all()}

        event_result = await self._session.execute(
            select(EventTable).where(EventTable.id.in_({row.event_id for row in rows}))
        )
        events = {event.id: event for event in event_result.scalars().all()}

        count_result = await self._session.execute(
            select(TicketTable.order_id, func.count(TicketTable.id))
            .where(TicketTable.order_id.in_(order_ids))
            .group_by(TicketTable.order_id)
        )
        ticket_counts = {order_id: int(count) for order_id, count in count_result.all()}

        orders: list[Order] = []
        for row in rows:
            order = self._table_to_order(row)
            order.lines = lines_by_order.get(row.id, [])
            order.ticket_count = ticket_counts.get(row.id, 0)
            outlet = outlets.get(row.pos_outlet_id)
            if outlet is not None:
                order.outlet_name = outlet.name
                order.outlet_slug = outlet.slug
            event = events.get(row.event_id)
            if event is not None:
                order.event_name = event.name
                order.event_date = optional_datetime(event.date)
                order.event_venue = event.venue
            orders.append(order)
        return orders

    @staticmethod
    def _table_to_order(row: OrderTable) -> Order:
        return Order(
            id=row.id,
            status=OrderStatus(row.status),
            outlet_id=row.pos_outlet_id,
            event_id=row.event_id,
            pos_user_id=row.pos_user_id,
            user_name=row.user_name,
            user_phone=row.user_phone,
            user_email=row.user_email,
            city=row.city,
            total_price=float(row.total_price),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
            approved_by=row.approved_by,
            approved_at=optional_datetime(row.approved_at),
            rejected_by=row.rejected_by,
            cancelled_by=row.cancelled_by,
            cancellation_reason=row.cancellation_reason,
            cancelled_at=optional_datetime(row.cancelled_at),
            removed_by=row.removed_by,
            removed_at=optional_datetime(row.removed_at),
        )

    @staticmethod
    def _table_to_line(row: OrderLineTable) -> OrderLine:
        return OrderLine(
            id=row.id,
            order_id=row.order_id,
            pass_id=row.pass_id,
            pass_type=row.pass_type,
            quantity=int(row.quantity),
            price=float(row.price),
        )
