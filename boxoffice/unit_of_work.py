"""Transaction boundary shared by every service.

A unit of work opens one session, exposes repositories bound to it and rolls
back on exit unless :meth:`AbstractUnitOfWork.commit` was awaited::

    async with uow:
        await uow.stock.reserve(key, 2)
        await uow.orders.add(...)
        await uow.commit()
"""

from __future__ import annotations

import abc
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.audit.repository import AuditRepository
from boxoffice.catalog.repository import CatalogRepository
from boxoffice.issuance.repository import TicketRepository
from boxoffice.orders.repository import OrderRepository
from boxoffice.stock.ledger import StockLedger


class AbstractUnitOfWork(abc.ABC):
    stock: StockLedger
    orders: OrderRepository
    tickets: TicketRepository
    audit: AuditRepository
    catalog: CatalogRepository

    async def __aenter__(self) -> AbstractUnitOfWork:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.rollback()

    async def commit(self) -> None:
        await self._commit()

    @abc.abstractmethod
    async def _commit(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def rollback(self) -> None:
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        if self.session is not None:
            raise RuntimeError("Unit of work is already in progress")
        session = self._session_factory()
        self.session = session
        self.stock = StockLedger(session)
        self.orders = OrderRepository(session)
        self.tickets = TicketRepository(session)
        self.audit = AuditRepository(session)
        self.catalog = CatalogRepository(session)
        await super().__aenter__()
        return self

    async def __aexit__(self, *args: object) -> None:
        try:
            await super().__aexit__(*args)
        finally:
            if self.session is not None:
                await self.session.close()
            self.session = None

    async def _commit(self) -> None:
        if self.session is None:
            raise RuntimeError("Unit of work is not active")
        await self.session.commit()

    async def rollback(self) -> None:
        if self.session is not None:
            await self.session.rollback()


UnitOfWorkFactory = Callable[[], AbstractUnitOfWork]


def unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    def _factory() -> AbstractUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return _factory
