from __future__ import annotations

import uuid

import pytest

from boxoffice.audit.models import AuditAction, AuditQuery
from boxoffice.errors import Conflict, Forbidden, InvalidArgument, NotFound
from boxoffice.stock.models import StockKey
from packages.db.models import EventPassTable

from conftest import ADMIN, CONTEXT, seed_catalog


async def _audit(uow_factory, action: AuditAction):
    async with uow_factory() as uow:
        return await uow.audit.query(AuditQuery(action=action.value))


async def _add_pass(session_factory, event_id: str, name: str = "Backstage") -> str:
    event_pass = EventPassTable(id=str(uuid.uuid4()), event_id=event_id, name=name, price=80.0)
    async with session_factory() as session:
        session.add(event_pass)
        await session.commit()
    return event_pass.id


@pytest.mark.asyncio
async def test_create_entry_persists_and_audits(stock_service, uow_factory, session_factory, catalog):
    pass_id = await _add_pass(session_factory, catalog.event_id)

    entry = await stock_service.create_entry(
        StockKey(catalog.outlet_id, catalog.event_id, pass_id),
        max_quantity=20,
        sold_quantity=2,
        actor=ADMIN,
        context=CONTEXT,
    )

    assert entry.remaining == 18
    entries = await _audit(uow_factory, AuditAction.CREATE_STOCK)
    assert len(entries) == 1
    assert entries[0].target_type == "pos_pass_stock"
    assert entries[0].target_id == entry.id
    assert entries[0].details == {
        "event_id": catalog.event_id,
        "pass_id": pass_id,
        "max_quantity": 20,
        "sold_quantity": 2,
    }
    assert entries[0].ip_address == "203.0.113.7"


@pytest.mark.asyncio
async def test_create_entry_rejects_sold_above_max(stock_service, session_factory, catalog):
    pass_id = await _add_pass(session_factory, catalog.event_id)

    with pytest.raises(InvalidArgument, match="sold_quantity cannot exceed max_quantity"):
        await stock_service.create_entry(
            StockKey(catalog.outlet_id, catalog.event_id, pass_id),
            max_quantity=1,
            sold_quantity=2,
            actor=ADMIN,
        )


@pytest.mark.asyncio
async def test_create_entry_for_existing_key_conflicts(stock_service, catalog):
    with pytest.raises(Conflict, match="Use Edit to update"):
        await stock_service.create_entry(
            StockKey(catalog.outlet_id, catalog.event_id, catalog.vip_pass_id),
            max_quantity=5,
            actor=ADMIN,
        )


@pytest.mark.asyncio
async def test_update_entry_below_sold_is_rejected(stock_service, uow_factory, session_factory):
    catalog = await seed_catalog(session_factory, vip_sold=7)
    entry_id = catalog.stock_ids[catalog.vip_pass_id]

    with pytest.raises(InvalidArgument, match=r"\(7 sold\)"):
        await stock_service.update_entry(entry_id, {"max_quantity": 5}, actor=ADMIN)

    assert await _audit(uow_factory, AuditAction.UPDATE_STOCK) == []


@pytest.mark.asyncio
async def test_update_entry_records_old_and_new(stock_service, uow_factory, catalog):
    entry_id = catalog.stock_ids[catalog.vip_pass_id]

    entry = await stock_service.update_entry(
        entry_id, {"max_quantity": None, "is_active": False}, actor=ADMIN, context=CONTEXT
    )

    assert entry.max_quantity is None
    assert entry.is_active is False
    entries = await _audit(uow_factory, AuditAction.UPDATE_STOCK)
    assert entries[0].details == {
        "old": {"max_quantity": 10, "sold_quantity": 0, "is_active": True},
        "new": {"max_quantity": None, "is_active": False},
    }


@pytest.mark.asyncio
async def test_update_entry_unknown_id_is_not_found(stock_service):
    with pytest.raises(NotFound):
        await stock_service.update_entry("missing", {"max_quantity": 3}, actor=ADMIN)


@pytest.mark.asyncio
async def test_update_entry_rejects_unknown_fields(stock_service, catalog):
    with pytest.raises(InvalidArgument, match="Unknown stock fields"):
        await stock_service.update_entry(
            catalog.stock_ids[catalog.vip_pass_id], {"price": 3}, actor=ADMIN
        )


@pytest.mark.asyncio
async def test_list_entries_requires_outlet(stock_service):
    with pytest.raises(InvalidArgument):
        await stock_service.list_entries(outlet_id="")


@pytest.mark.asyncio
async def test_list_sellable_hides_inactive_entries(stock_service, catalog):
    await stock_service.update_entry(
        catalog.stock_ids[catalog.standard_pass_id], {"is_active": False}, actor=ADMIN
    )

    entries = await stock_service.list_sellable(outlet_slug=catalog.outlet_slug, event_id=catalog.event_id)

    assert [entry.pass_id for entry in entries] == [catalog.vip_pass_id]


@pytest.mark.asyncio
async def test_list_sellable_checks_outlet(stock_service, session_factory, catalog):
    inactive = await seed_catalog(session_factory, outlet_active=False)

    with pytest.raises(NotFound):
        await stock_service.list_sellable(outlet_slug=inactive.outlet_slug, event_id=inactive.event_id)
    with pytest.raises(Forbidden):
        await stock_service.list_sellable(
            outlet_slug=catalog.outlet_slug, event_id=catalog.event_id, operator_outlet_id="other-outlet"
        )
