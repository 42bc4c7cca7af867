from __future__ import annotations

import io
from datetime import datetime, timezone

import png
import pytest

from boxoffice.issuance.artifacts import LocalArtifactStore, render_qr_png, ticket_artifact_path
from boxoffice.issuance.issuer import TicketIssuer, plan_units
from boxoffice.orders.models import OrderLine

from conftest import mark_paid, place_sale


def _line(line_id: str, quantity: int) -> OrderLine:
    return OrderLine(id=line_id, order_id="order-1", pass_id=f"pass-{line_id}", pass_type="VIP", quantity=quantity, price=50.0)


def test_plan_units_skips_already_issued_units():
    lines = [_line("a", 2), _line("b", 3)]

    units = plan_units(lines, {("a", 0), ("a", 1), ("b", 1)})

    assert [(unit.line.id, unit.index) for unit in units] == [("b", 0), ("b", 2)]
    assert len(plan_units(lines)) == 5


def test_render_qr_png_produces_png_image():
    content = render_qr_png("3f1c2d9e-token")

    width, height, _, _ = png.Reader(file=io.BytesIO(content)).read()
    assert content.startswith(b"\x89PNG")
    assert width == height


@pytest.mark.asyncio
async def test_local_artifact_store_writes_below_root(tmp_path):
    store = LocalArtifactStore(tmp_path, "https://tickets.test/artifacts/")

    url = await store.save(ticket_artifact_path("order-1", "tok"), b"data")

    assert url == "https://tickets.test/artifacts/tickets/order-1/tok.png"
    assert (tmp_path / "tickets" / "order-1" / "tok.png").read_bytes() == b"data"
    with pytest.raises(ValueError):
        await store.save("../escape.png", b"data")


@pytest.mark.asyncio
async def test_issue_denormalises_order_into_scan_records(order_service, uow_factory, artifact_store, catalog):
    order = await place_sale(order_service, catalog, vip=1, standard=1)
    await mark_paid(uow_factory, order.id)
    tokens = iter(["token-1", "token-2"])
    issuer = TicketIssuer(uow_factory, artifact_store, token_factory=lambda: next(tokens))
    async with uow_factory() as uow:
        event = await uow.catalog.get_event(catalog.event_id)

    report = await issuer.issue(order, event)

    assert report.complete
    assert [ticket.secure_token for ticket in report.tickets] == ["token-1", "token-2"]
    assert set(artifact_store.saved) == {
        f"tickets/{order.id}/token-1.png",
        f"tickets/{order.id}/token-2.png",
    }
    async with uow_factory() as uow:
        scans = {scan.secure_token: scan for scan in await uow.tickets.list_scan_records(order.id)}
    scan = scans["token-1"]
    assert scan.buyer_name == "Amira Ben Salem"
    assert scan.buyer_email == "amira@example.com"
    assert scan.event_name == "Summer Festival"
    assert scan.event_venue == "Amphitheatre"
    assert scan.event_date == datetime(2026, 7, 14, 20, 0, tzinfo=timezone.utc)
    assert {s.pass_type for s in scans.values()} == {"VIP", "Standard"}
    assert scan.qr_code_url == f"https://cdn.test/tickets/{order.id}/token-1.png"


@pytest.mark.asyncio
async def test_duplicate_token_fails_only_that_unit(order_service, uow_factory, artifact_store, catalog):
    order = await place_sale(order_service, catalog, vip=3)
    await mark_paid(uow_factory, order.id)
    tokens = iter(["same", "same", "other"])
    issuer = TicketIssuer(uow_factory, artifact_store, token_factory=lambda: next(tokens))

    report = await issuer.issue(order, None)

    assert report.issued == 2
    assert report.failed == 1
    assert not report.complete
    async with uow_factory() as uow:
        assert len(await uow.tickets.list_by_order(order.id)) == 2


@pytest.mark.asyncio
async def test_issue_numbers_units_within_each_line(order_service, uow_factory, issuer, catalog):
    order = await place_sale(order_service, catalog, vip=2, standard=1)
    await mark_paid(uow_factory, order.id)

    await issuer.issue(order, None)

    async with uow_factory() as uow:
        units = await uow.tickets.issued_units(order.id)
    vip_line, standard_line = sorted(order.lines, key=lambda line: line.pass_type, reverse=True)
    assert units == {(vip_line.id, 0), (vip_line.id, 1), (standard_line.id, 0)}


@pytest.mark.asyncio
async def test_issue_skips_units_another_run_already_issued(order_service, uow_factory, issuer, catalog):
    order = await place_sale(order_service, catalog, vip=2)
    await mark_paid(uow_factory, order.id)
    first = await issuer.issue(order, None)

    second = await issuer.issue(order, None)

    assert first.issued == 2
    assert second.issued == 0
    assert second.skipped == 2
    assert second.complete
    async with uow_factory() as uow:
        assert len(await uow.tickets.list_by_order(order.id)) == 2


@pytest.mark.asyncio
async def test_issue_writes_nothing_for_an_order_that_is_not_paid(order_service, uow_factory, issuer, catalog):
    order = await place_sale(order_service, catalog, vip=2)

    report = await issuer.issue(order, None)

    assert report.withdrawn
    assert report.issued == 0
    assert not report.complete
    async with uow_factory() as uow:
        assert await uow.tickets.list_by_order(order.id) == []
        assert await uow.tickets.list_scan_records(order.id) == []
