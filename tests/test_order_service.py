from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from boxoffice.audit.models import AuditAction, AuditQuery
from boxoffice.errors import Conflict, DependencyUnavailable, Forbidden, InvalidArgument, NotFound, OutOfStock
from boxoffice.issuance.issuer import TicketIssuer
from boxoffice.issuance.models import TicketStatus
from boxoffice.notifications.base import NotificationKind
from boxoffice.orders.models import Customer, OrderQuery, SaleLine
from boxoffice.orders.service import OrderService
from boxoffice.orders.state import OrderStatus
from boxoffice.stock.models import StockKey
from packages.db.models import OrderTable

from conftest import (
    ADMIN,
    CASHIER,
    CONTEXT,
    CUSTOMER,
    MemoryArtifactStore,
    RecordingNotifier,
    place_sale,
    seed_catalog,
)


async def _sold(uow_factory, catalog, pass_id: str) -> int:
    async with uow_factory() as uow:
        entry = await uow.stock.get_by_key(StockKey(catalog.outlet_id, catalog.event_id, pass_id))
    return entry.sold_quantity


async def _audit_for(uow_factory, target_id: str):
    async with uow_factory() as uow:
        return await uow.audit.query(AuditQuery(target_id=target_id))


async def _tickets(uow_factory, order_id: str):
    async with uow_factory() as uow:
        return await uow.tickets.list_by_order(order_id), await uow.tickets.list_scan_records(order_id)


@pytest.mark.asyncio
async def test_place_order_reserves_stock_and_prices_lines(order_service, uow_factory, notifier, catalog):
    order = await place_sale(order_service, catalog, vip=2, standard=3)

    assert order.status is OrderStatus.PENDING_ADMIN_APPROVAL
    assert order.total_price == 160.0
    assert order.user_name == "Amira Ben Salem"
    assert order.pos_user_id == CASHIER.id
    assert {line.pass_type: line.quantity for line in order.lines} == {"VIP": 2, "Standard": 3}
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 2
    assert await _sold(uow_factory, catalog, catalog.standard_pass_id) == 3
    assert notifier.sent == [(order.id, NotificationKind.ORDER_RECEIVED, 0)]

    entries = await _audit_for(uow_factory, order.id)
    assert [entry.action for entry in entries] == [AuditAction.CREATE_ORDER.value]
    assert entries[0].performed_by_type == "pos_user"


@pytest.mark.asyncio
async def test_place_order_merges_duplicate_lines(order_service, catalog):
    order = await order_service.place_order(
        outlet_slug=catalog.outlet_slug,
        event_id=catalog.event_id,
        customer=CUSTOMER,
        lines=[SaleLine(catalog.vip_pass_id, 1), SaleLine(catalog.vip_pass_id, 2)],
        actor=CASHIER,
    )

    assert [(line.pass_id, line.quantity) for line in order.lines] == [(catalog.vip_pass_id, 3)]


@pytest.mark.asyncio
async def test_tenth_sale_sells_out_and_eleventh_fails(order_service, uow_factory, catalog):
    for _ in range(10):
        order = await place_sale(order_service, catalog, vip=1)
        await order_service.approve(order.id, actor=ADMIN)

    async with uow_factory() as uow:
        entry = await uow.stock.get_by_key(StockKey(catalog.outlet_id, catalog.event_id, catalog.vip_pass_id))
    assert entry.sold_quantity == 10
    assert entry.remaining == 0

    with pytest.raises(OutOfStock, match="Insufficient POS stock for VIP"):
        await place_sale(order_service, catalog, vip=1)
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 10
    assert len(await order_service.list_orders(OrderQuery())) == 10


@pytest.mark.asyncio
async def test_failed_sale_reserves_nothing(order_service, uow_factory, session_factory):
    catalog = await seed_catalog(session_factory, vip_max=1)

    with pytest.raises(OutOfStock):
        await order_service.place_order(
            outlet_slug=catalog.outlet_slug,
            event_id=catalog.event_id,
            customer=CUSTOMER,
            lines=[SaleLine(catalog.standard_pass_id, 2), SaleLine(catalog.vip_pass_id, 2)],
            actor=CASHIER,
        )

    assert await _sold(uow_factory, catalog, catalog.standard_pass_id) == 0
    assert await order_service.list_orders(OrderQuery()) == []


@pytest.mark.asyncio
async def test_place_order_validates_references(order_service, session_factory, catalog):
    inactive = await seed_catalog(session_factory, outlet_active=False)

    with pytest.raises(NotFound, match="Outlet not found or inactive"):
        await place_sale(order_service, inactive, vip=1)
    with pytest.raises(InvalidArgument, match="At least one pass"):
        await place_sale(order_service, catalog)
    with pytest.raises(InvalidArgument, match="Pass unknown not found"):
        await order_service.place_order(
            outlet_slug=catalog.outlet_slug,
            event_id=catalog.event_id,
            customer=CUSTOMER,
            lines=[SaleLine("unknown", 1)],
            actor=CASHIER,
        )
    with pytest.raises(Forbidden):
        await order_service.place_order(
            outlet_slug=catalog.outlet_slug,
            event_id=catalog.event_id,
            customer=CUSTOMER,
            lines=[SaleLine(catalog.vip_pass_id, 1)],
            actor=CASHIER,
            operator_outlet_id="another-outlet",
        )


@pytest.mark.asyncio
async def test_approve_issues_one_ticket_per_unit(order_service, uow_factory, artifact_store, notifier, catalog):
    order = await place_sale(order_service, catalog, vip=2, standard=3)

    result = await order_service.approve(order.id, actor=ADMIN, context=CONTEXT)

    assert result.tickets_count == 5
    assert result.failed == 0
    stored = await order_service.get_order(order.id)
    assert stored.status is OrderStatus.PAID
    assert stored.approved_by == ADMIN.id
    assert stored.approved_at is not None
    assert stored.ticket_count == 5

    tickets, scans = await _tickets(uow_factory, order.id)
    assert len(tickets) == 5
    assert len({ticket.secure_token for ticket in tickets}) == 5
    assert all(ticket.status is TicketStatus.DELIVERED for ticket in tickets)
    assert {scan.secure_token for scan in scans} == {ticket.secure_token for ticket in tickets}
    assert all(scan.source == "point_de_vente" and scan.ticket_status == "VALID" for scan in scans)
    assert len(artifact_store.saved) == 5
    assert notifier.sent[-1] == (order.id, NotificationKind.TICKETS_READY, 5)

    actions = [entry.action for entry in await _audit_for(uow_factory, order.id)]
    assert actions.count(AuditAction.APPROVE_ORDER.value) == 1


@pytest.mark.asyncio
async def test_approve_or_reject_non_pending_conflicts_without_mutation(order_service, uow_factory, catalog):
    order = await place_sale(order_service, catalog, vip=1)
    await order_service.approve(order.id, actor=ADMIN)
    audit_before = await _audit_for(uow_factory, order.id)

    with pytest.raises(Conflict):
        await order_service.approve(order.id, actor=ADMIN)
    with pytest.raises(Conflict):
        await order_service.reject(order.id, reason="late", actor=ADMIN)

    stored = await order_service.get_order(order.id)
    assert stored.status is OrderStatus.PAID
    assert stored.ticket_count == 1
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 1
    assert len(await _audit_for(uow_factory, order.id)) == len(audit_before)


@pytest.mark.asyncio
async def test_approve_order_without_lines_is_invalid(order_service, session_factory, catalog):
    now = datetime.now(timezone.utc)
    row = OrderTable(
        id=str(uuid.uuid4()),
        status=OrderStatus.PENDING_ADMIN_APPROVAL.value,
        pos_outlet_id=catalog.outlet_id,
        event_id=catalog.event_id,
        pos_user_id=CASHIER.id,
        user_name="Empty",
        user_phone="20000000",
        total_price=0,
        created_at=now,
        updated_at=now,
    )
    async with session_factory() as session:
        session.add(row)
        await session.commit()

    with pytest.raises(InvalidArgument, match="No passes for this order"):
        await order_service.approve(row.id, actor=ADMIN)
    assert (await order_service.get_order(row.id)).status is OrderStatus.PENDING_ADMIN_APPROVAL


@pytest.mark.asyncio
async def test_reject_returns_stock(order_service, uow_factory, session_factory):
    catalog = await seed_catalog(session_factory, standard_max=4)
    order = await place_sale(order_service, catalog, standard=4)
    assert await _sold(uow_factory, catalog, catalog.standard_pass_id) == 4

    await order_service.reject(order.id, reason="Customer left", actor=ADMIN, context=CONTEXT)

    assert await _sold(uow_factory, catalog, catalog.standard_pass_id) == 0
    stored = await order_service.get_order(order.id)
    assert stored.status is OrderStatus.REJECTED
    assert stored.rejected_by == ADMIN.id
    assert stored.cancelled_by == "admin"
    assert stored.cancellation_reason == "Customer left"
    assert stored.cancelled_at is not None
    rejects = [e for e in await _audit_for(uow_factory, order.id) if e.action == AuditAction.REJECT_ORDER.value]
    assert len(rejects) == 1
    assert rejects[0].details == {"reason": "Customer left"}


@pytest.mark.asyncio
async def test_remove_paid_order_revokes_tickets_once(order_service, uow_factory, catalog):
    order = await place_sale(order_service, catalog, vip=3)
    await order_service.approve(order.id, actor=ADMIN)

    revoked = await order_service.remove(order.id, actor=ADMIN, context=CONTEXT)

    assert revoked == 3
    tickets, scans = await _tickets(uow_factory, order.id)
    assert tickets == [] and scans == []
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 0
    stored = await order_service.get_order(order.id)
    assert stored.status is OrderStatus.REMOVED_BY_ADMIN
    assert stored.removed_by == ADMIN.id

    with pytest.raises(Conflict, match="Stock was already returned"):
        await order_service.remove(order.id, actor=ADMIN)
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 0
    removals = [e for e in await _audit_for(uow_factory, order.id) if e.action == AuditAction.REMOVE_ORDER.value]
    assert len(removals) == 1
    assert removals[0].details == {"previous_status": "PAID", "revoked_tickets": 3}


@pytest.mark.asyncio
async def test_remove_rejected_order_conflicts(order_service, catalog):
    order = await place_sale(order_service, catalog, vip=1)
    await order_service.reject(order.id, reason=None, actor=ADMIN)

    with pytest.raises(Conflict):
        await order_service.remove(order.id, actor=ADMIN)


@pytest.mark.asyncio
async def test_unknown_order_is_not_found(order_service):
    with pytest.raises(NotFound):
        await order_service.approve("missing", actor=ADMIN)
    with pytest.raises(NotFound):
        await order_service.remove("missing", actor=ADMIN)


@pytest.mark.asyncio
async def test_partial_issuance_is_completed_on_resend(uow_factory, catalog):
    store = MemoryArtifactStore(fail_on={2})
    notifier = RecordingNotifier()
    service = OrderService(uow_factory, TicketIssuer(uow_factory, store), notifier)
    order = await place_sale(service, catalog, vip=3)

    result = await service.approve(order.id, actor=ADMIN)

    assert result.tickets_count == 2
    assert result.expected == 3
    assert result.failed == 1
    assert (await service.get_order(order.id)).status is OrderStatus.PAID

    count = await service.resend_tickets(order.id, actor=ADMIN, context=CONTEXT)

    assert count == 3
    tickets, scans = await _tickets(uow_factory, order.id)
    assert len(tickets) == 3 and len(scans) == 3
    assert notifier.sent[-1] == (order.id, NotificationKind.TICKETS_READY, 3)
    resends = [e for e in await _audit_for(uow_factory, order.id) if e.action == AuditAction.RESEND_ORDER_EMAIL.value]
    assert resends[0].details == {"type": "tickets", "completed_units": 1}


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_approval(uow_factory, artifact_store, catalog):
    notifier = RecordingNotifier(error=RuntimeError("smtp down"))
    service = OrderService(uow_factory, TicketIssuer(uow_factory, artifact_store), notifier)
    order = await place_sale(service, catalog, vip=2)

    result = await service.approve(order.id, actor=ADMIN)

    assert result.tickets_count == 2
    tickets, _ = await _tickets(uow_factory, order.id)
    assert all(ticket.status is TicketStatus.GENERATED for ticket in tickets)

    with pytest.raises(DependencyUnavailable, match="Failed to send tickets email"):
        await service.resend_tickets(order.id, actor=ADMIN)


@pytest.mark.asyncio
async def test_update_email_is_audited_at_any_status(order_service, uow_factory, catalog):
    order = await place_sale(order_service, catalog, vip=1)
    await order_service.reject(order.id, reason=None, actor=ADMIN)

    email = await order_service.update_email(order.id, "  new@example.com ", actor=ADMIN, context=CONTEXT)

    assert email == "new@example.com"
    stored = await order_service.get_order(order.id)
    assert stored.user_email == "new@example.com"
    assert stored.status is OrderStatus.REJECTED
    updates = [e for e in await _audit_for(uow_factory, order.id) if e.action == AuditAction.UPDATE_ORDER_EMAIL.value]
    assert updates[0].details == {"field": "user_email", "old": "amira@example.com", "new": "new@example.com"}

    assert await order_service.update_email(order.id, "   ", actor=ADMIN) is None
    with pytest.raises(InvalidArgument):
        await order_service.update_email(order.id, "not-an-email", actor=ADMIN)


@pytest.mark.asyncio
async def test_resend_order_received_guards(order_service, uow_factory, notifier, catalog):
    order = await place_sale(order_service, catalog, vip=1)
    no_email = await place_sale(order_service, catalog, vip=1, customer=Customer(full_name="Sami", phone="55111222"))

    await order_service.resend_order_received(order.id, actor=ADMIN, context=CONTEXT)

    assert notifier.sent[-1] == (order.id, NotificationKind.ORDER_RECEIVED, 0)
    with pytest.raises(InvalidArgument, match="No client email"):
        await order_service.resend_order_received(no_email.id, actor=ADMIN)

    await order_service.approve(order.id, actor=ADMIN)
    with pytest.raises(Conflict):
        await order_service.resend_order_received(order.id, actor=ADMIN)


@pytest.mark.asyncio
async def test_list_orders_filters_by_status(order_service, catalog):
    paid = await place_sale(order_service, catalog, vip=1)
    pending = await place_sale(order_service, catalog, standard=1)
    await order_service.approve(paid.id, actor=ADMIN)

    pending_orders = await order_service.list_orders(OrderQuery(status=OrderStatus.PENDING_ADMIN_APPROVAL))
    paid_orders = await order_service.list_orders(OrderQuery(status=OrderStatus.PAID, outlet_id=catalog.outlet_id))

    assert [order.id for order in pending_orders] == [pending.id]
    assert [order.id for order in paid_orders] == [paid.id]
    assert paid_orders[0].outlet_slug == catalog.outlet_slug
    assert paid_orders[0].event_name == "Summer Festival"


@pytest.mark.asyncio
async def test_every_successful_mutation_writes_one_audit_entry(order_service, uow_factory, catalog):
    first = await place_sale(order_service, catalog, vip=1)
    second = await place_sale(order_service, catalog, vip=1)
    await order_service.approve(first.id, actor=ADMIN)
    await order_service.reject(second.id, reason="duplicate", actor=ADMIN)
    await order_service.remove(first.id, actor=ADMIN)

    first_actions = [entry.action for entry in await _audit_for(uow_factory, first.id)]
    second_actions = [entry.action for entry in await _audit_for(uow_factory, second.id)]

    assert sorted(first_actions) == sorted(["create_order", "approve_order", "remove_order"])
    assert sorted(second_actions) == sorted(["create_order", "reject_order"])


@pytest.mark.asyncio
async def test_concurrent_approvals_only_one_wins(order_service, uow_factory, notifier, catalog):
    order = await place_sale(order_service, catalog, vip=2)

    results = await asyncio.gather(
        order_service.approve(order.id, actor=ADMIN),
        order_service.approve(order.id, actor=ADMIN),
        return_exceptions=True,
    )

    conflicts = [result for result in results if isinstance(result, Conflict)]
    approvals = [result for result in results if not isinstance(result, Exception)]
    assert len(conflicts) == 1 and len(approvals) == 1
    assert approvals[0].tickets_count == 2
    tickets, scans = await _tickets(uow_factory, order.id)
    assert len(tickets) == 2 and len(scans) == 2
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 2
    actions = [entry.action for entry in await _audit_for(uow_factory, order.id)]
    assert actions.count(AuditAction.APPROVE_ORDER.value) == 1
    assert [kind for _, kind, _ in notifier.sent].count(NotificationKind.TICKETS_READY) == 1


@pytest.mark.asyncio
async def test_concurrent_approve_and_reject_only_one_wins(order_service, uow_factory, catalog):
    order = await place_sale(order_service, catalog, vip=2)

    approved, rejected = await asyncio.gather(
        order_service.approve(order.id, actor=ADMIN),
        order_service.reject(order.id, reason="double booking", actor=ADMIN),
        return_exceptions=True,
    )

    assert [isinstance(approved, Conflict), isinstance(rejected, Conflict)].count(True) == 1
    stored = await order_service.get_order(order.id)
    tickets, _ = await _tickets(uow_factory, order.id)
    actions = [entry.action for entry in await _audit_for(uow_factory, order.id)]
    if isinstance(rejected, Conflict):
        assert stored.status is OrderStatus.PAID
        assert len(tickets) == 2
        assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 2
        assert AuditAction.REJECT_ORDER.value not in actions
    else:
        assert stored.status is OrderStatus.REJECTED
        assert tickets == []
        assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 0
        assert AuditAction.APPROVE_ORDER.value not in actions


@pytest.mark.asyncio
async def test_remove_during_issuance_leaves_no_valid_ticket(
    order_service, uow_factory, artifact_store, notifier, catalog
):
    order = await place_sale(order_service, catalog, vip=2, standard=3)
    artifact_store.before_save[2] = lambda: order_service.remove(order.id, actor=ADMIN)

    result = await order_service.approve(order.id, actor=ADMIN)

    assert result.tickets_count == 0
    stored = await order_service.get_order(order.id)
    assert stored.status is OrderStatus.REMOVED_BY_ADMIN
    assert stored.ticket_count == 0
    tickets, scans = await _tickets(uow_factory, order.id)
    assert tickets == [] and scans == []
    assert await _sold(uow_factory, catalog, catalog.vip_pass_id) == 0
    assert await _sold(uow_factory, catalog, catalog.standard_pass_id) == 0
    assert [kind for _, kind, _ in notifier.sent] == [NotificationKind.ORDER_RECEIVED]


@pytest.mark.asyncio
async def test_resend_during_issuance_issues_each_unit_once(
    order_service, uow_factory, artifact_store, notifier, catalog
):
    order = await place_sale(order_service, catalog, vip=2, standard=3)
    artifact_store.before_save[2] = lambda: order_service.resend_tickets(order.id, actor=ADMIN)

    result = await order_service.approve(order.id, actor=ADMIN)

    assert result.tickets_count == 5
    tickets, scans = await _tickets(uow_factory, order.id)
    assert len(tickets) == 5 and len(scans) == 5
    assert len({(ticket.order_line_id, ticket.unit_index) for ticket in tickets}) == 5
    assert (await order_service.get_order(order.id)).ticket_count == 5
    ready = [count for _, kind, count in notifier.sent if kind is NotificationKind.TICKETS_READY]
    assert ready == [5, 5]


@pytest.mark.asyncio
async def test_concurrent_resends_complete_a_partial_issuance_once(uow_factory, catalog):
    store = MemoryArtifactStore(fail_on={2})
    service = OrderService(uow_factory, TicketIssuer(uow_factory, store), RecordingNotifier())
    order = await place_sale(service, catalog, vip=3)
    await service.approve(order.id, actor=ADMIN)

    counts = await asyncio.gather(
        service.resend_tickets(order.id, actor=ADMIN),
        service.resend_tickets(order.id, actor=ADMIN),
    )

    assert counts == [3, 3]
    tickets, scans = await _tickets(uow_factory, order.id)
    assert len(tickets) == 3 and len(scans) == 3
    assert sorted(ticket.unit_index for ticket in tickets) == [0, 1, 2]
    resends = [e for e in await _audit_for(uow_factory, order.id) if e.action == AuditAction.RESEND_ORDER_EMAIL.value]
    assert sum(entry.details["completed_units"] for entry in resends) == 1
