from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

import pytest
import pytest_asyncio

from boxoffice.audit.models import Actor, ActorType, RequestContext
from boxoffice.db import create_engine, create_session_factory, ensure_schema
from boxoffice.issuance.issuer import TicketIssuer
from boxoffice.notifications.base import NotificationKind
from boxoffice.orders.models import Customer, SaleLine
from boxoffice.orders.service import OrderService
from boxoffice.orders.state import OrderStatus
from boxoffice.stock.service import StockService
from boxoffice.unit_of_work import unit_of_work_factory
from packages.db.models import EventPassTable, EventTable, OutletTable, StockTable


ADMIN = Actor(type=ActorType.ADMIN, id="admin-1", email="admin@boxoffice.local")
CASHIER = Actor(type=ActorType.POS_USER, id="pos-user-1", email="pos@boxoffice.local")
CONTEXT = RequestContext(ip_address="203.0.113.7", user_agent="pytest")


class MemoryArtifactStore:
    """In-memory artifact store.

    ``before_save`` maps a call number to a coroutine function awaited once
    before that save, to interleave other operations with an issuance run.
    """

    def __init__(self, *, fail_on: set[int] | None = None) -> None:
        self.saved: dict[str, bytes] = {}
        self.calls = 0
        self.before_save: dict[int, Callable[[], Awaitable[object]]] = {}
        self._fail_on = fail_on or set()

    async def save(self, path: str, content: bytes, *, content_type: str = "image/png") -> str:
        self.calls += 1
        call = self.calls
        hook = self.before_save.pop(call, None)
        if hook is not None:
            await hook()
        if call in self._fail_on:
            raise OSError("artifact storage unavailable")
        self.saved[path] = content
        return f"https://cdn.test/{path}"


class RecordingNotifier:
    def __init__(self, *, result: bool = True, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, NotificationKind, int]] = []
        self.result = result
        self.error = error

    async def notify(self, order, tickets, kind: NotificationKind) -> bool:
        if self.error is not None:
            raise self.error
        self.sent.append((order.id, kind, len(tickets)))
        return self.result


@dataclass
class Catalog:
    outlet_id: str
    outlet_slug: str
    event_id: str
    vip_pass_id: str
    standard_pass_id: str
    stock_ids: dict[str, str] = field(default_factory=dict)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'boxoffice.db'}")
    await ensure_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return unit_of_work_factory(session_factory)


async def seed_catalog(
    session_factory,
    *,
    vip_max: int | None = 10,
    standard_max: int | None = 100,
    vip_sold: int = 0,
    outlet_active: bool = True,
) -> Catalog:
    outlet = OutletTable(
        id=str(uuid.uuid4()), name="Main Gate", slug=f"main-gate-{uuid.uuid4().hex[:6]}", is_active=outlet_active
    )
    event = EventTable(
        id=str(uuid.uuid4()),
        name="Summer Festival",
        date=datetime(2026, 7, 14, 20, 0, tzinfo=timezone.utc),
        venue="Amphitheatre",
        city="Hammamet",
    )
    vip = EventPassTable(id=str(uuid.uuid4()), event_id=event.id, name="VIP", price=50.0, is_active=True)
    standard = EventPassTable(id=str(uuid.uuid4()), event_id=event.id, name="Standard", price=20.0, is_active=True)
    vip_stock = StockTable(
        pos_outlet_id=outlet.id, event_id=event.id, pass_id=vip.id, max_quantity=vip_max, sold_quantity=vip_sold
    )
    standard_stock = StockTable(
        pos_outlet_id=outlet.id, event_id=event.id, pass_id=standard.id, max_quantity=standard_max
    )
    async with session_factory() as session:
        session.add_all([outlet, event])
        await session.flush()
        session.add_all([vip, standard])
        await session.flush()
        session.add_all([vip_stock, standard_stock])
        await session.commit()
    return Catalog(
        outlet_id=outlet.id,
        outlet_slug=outlet.slug,
        event_id=event.id,
        vip_pass_id=vip.id,
        standard_pass_id=standard.id,
        stock_ids={vip.id: vip_stock.id, standard.id: standard_stock.id},
    )


@pytest_asyncio.fixture
async def catalog(session_factory) -> Catalog:
    return await seed_catalog(session_factory)


@pytest.fixture
def artifact_store():
    return MemoryArtifactStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def issuer(uow_factory, artifact_store):
    return TicketIssuer(uow_factory, artifact_store)


@pytest.fixture
def order_service(uow_factory, issuer, notifier):
    return OrderService(uow_factory, issuer, notifier)


@pytest.fixture
def stock_service(uow_factory):
    return StockService(uow_factory)


CUSTOMER = Customer(full_name=" Amira Ben Salem ", phone="22 123 456", email="amira@example.com", city="Tunis")


async def place_sale(service, catalog: Catalog, *, vip: int = 0, standard: int = 0, customer: Customer = CUSTOMER):
    lines = []
    if vip:
        lines.append(SaleLine(pass_id=catalog.vip_pass_id, quantity=vip))
    if standard:
        lines.append(SaleLine(pass_id=catalog.standard_pass_id, quantity=standard))
    return await service.place_order(
        outlet_slug=catalog.outlet_slug,
        event_id=catalog.event_id,
        customer=customer,
        lines=lines,
        actor=CASHIER,
        context=CONTEXT,
    )


async def mark_paid(uow_factory, order_id: str) -> None:
    async with uow_factory() as uow:
        assert await uow.orders.transition(
            order_id,
            from_statuses=(OrderStatus.PENDING_ADMIN_APPROVAL,),
            to_status=OrderStatus.PAID,
        )
        await uow.commit()
