from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Sequence

from opentelemetry import trace

from boxoffice.audit.models import Actor, AuditAction, RequestContext
from boxoffice.errors import Conflict, DependencyUnavailable, Forbidden, InvalidArgument, NotFound, OutOfStock
from boxoffice.notifications.base import NotificationDispatcher, NotificationKind
from boxoffice.notifications.dispatcher import SafeNotificationDispatcher
from boxoffice.stock.models import StockKey

from .models import ApprovalResult, Customer, Order, OrderQuery, OrderStatistics, SaleLine
from .state import OrderStateMachine, OrderStatus

if TYPE_CHECKING:
    from boxoffice.issuance.issuer import TicketIssuer
    from boxoffice.issuance.models import IssuanceReport
    from boxoffice.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)

ORDER_TARGET = "order"


class OrderService:
    """Order lifecycle: sale placement, approval, rejection, removal and resends.

    Every transition flips the status with a conditional update and, in the
    same unit of work, moves the stock ledger and appends one audit entry.
    Ticket issuance and notifications happen after that commit and never
    undo it.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        issuer: TicketIssuer,
        notifier: NotificationDispatcher,
    ) -> None:
        self._uow_factory = uow_factory
        self._issuer = issuer
        if not isinstance(notifier, SafeNotificationDispatcher):
            notifier = SafeNotificationDispatcher(notifier)
        self._notifier = notifier

    async def place_order(
        self,
        *,
        outlet_slug: str,
        event_id: str,
        customer: Customer,
        lines: Sequence[SaleLine],
        actor: Actor,
        operator_outlet_id: str | None = None,
        context: RequestContext | None = None,
    ) -> Order:
        merged = _merge_lines(lines)
        customer = _clean_customer(customer)

        with _tracer.start_as_current_span("orders.place") as span:
            span.set_attribute("order.event_id", event_id)
            async with self._uow_factory() as uow:
                outlet = await uow.catalog.get_outlet_by_slug(outlet_slug)
                if outlet is None:
                    raise NotFound("Outlet not found or inactive")
                if operator_outlet_id is not None and operator_outlet_id != outlet.id:
                    raise Forbidden("Operator is not assigned to this outlet")
                event = await uow.catalog.get_event(event_id)
                if event is None:
                    raise InvalidArgument("Event not found")

                passes = await uow.catalog.get_passes(event_id, [line.pass_id for line in merged])
                priced: list[tuple[SaleLine, str, float]] = []
                for line in merged:
                    event_pass = passes.get(line.pass_id)
                    if event_pass is None:
                        raise InvalidArgument(f"Pass {line.pass_id} not found")
                    entry = await uow.stock.get_by_key(StockKey(outlet.id, event_id, line.pass_id))
                    if entry is None or not entry.is_active:
                        raise InvalidArgument(f"No POS stock for pass {event_pass.name}")
                    priced.append((line, event_pass.name, event_pass.price))

                order = await uow.orders.add(
                    outlet_id=outlet.id,
                    event_id=event_id,
                    pos_user_id=actor.id,
                    customer=customer,
                    lines=priced,
                    status=OrderStateMachine.initial_state(),
                )
                for line, pass_name, _ in priced:
                    try:
                        await uow.stock.reserve(StockKey(outlet.id, event_id, line.pass_id), line.quantity)
                    except OutOfStock as exc:
                        raise OutOfStock(f"Insufficient POS stock for {pass_name}") from exc

                await uow.audit.append(
                    action=AuditAction.CREATE_ORDER,
                    actor=actor,
                    target_type=ORDER_TARGET,
                    target_id=order.id,
                    outlet_id=outlet.id,
                    details={
                        "event_id": event_id,
                        "total_price": order.total_price,
                        "passes": [{"pass_id": line.pass_id, "quantity": line.quantity} for line in merged],
                    },
                    context=context,
                )
                await uow.commit()
            span.set_attribute("order.id", order.id)

        order.outlet_name = outlet.name
        order.outlet_slug = outlet.slug
        order.event_name = event.name
        order.event_date = event.date
        order.event_venue = event.venue
        logger.info("Order %s placed at outlet %s by %s", order.id, outlet.slug, actor.id)
        await self._notifier.notify(order, [], NotificationKind.ORDER_RECEIVED)
        return order

    async def list_orders(self, query: OrderQuery) -> list[Order]:
        async with self._uow_factory() as uow:
            return await uow.orders.list_orders(query)

    async def get_order(self, order_id: str) -> Order:
        async with self._uow_factory() as uow:
            return await self._require(uow, order_id)

    async def statistics(
        self,
        *,
        outlet_id: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> OrderStatistics:
        if created_from is not None and created_to is not None and created_from > created_to:
            raise InvalidArgument("from must not be after to")
        async with self._uow_factory() as uow:
            return await uow.orders.statistics(
                outlet_id=outlet_id, created_from=created_from, created_to=created_to
            )

    async def approve(
        self, order_id: str, *, actor: Actor, context: RequestContext | None = None
    ) -> ApprovalResult:
        with _tracer.start_as_current_span("orders.approve") as span:
            span.set_attribute("order.id", order_id)
            async with self._uow_factory() as uow:
                order = await self._require(uow, order_id)
                if not OrderStateMachine.can_transition(order.status, OrderStatus.PAID):
                    raise Conflict("Order not in PENDING_ADMIN_APPROVAL")
                if not order.lines:
                    raise InvalidArgument("No passes for this order")
                now = datetime.now(timezone.utc)
                flipped = await uow.orders.transition(
                    order_id,
                    from_statuses=OrderStateMachine.sources_for(OrderStatus.PAID),
                    to_status=OrderStatus.PAID,
                    values={"approved_by": actor.id, "approved_at": now},
                )
                if not flipped:
                    raise Conflict("Order not in PENDING_ADMIN_APPROVAL")
                await uow.audit.append(
                    action=AuditAction.APPROVE_ORDER,
                    actor=actor,
                    target_type=ORDER_TARGET,
                    target_id=order_id,
                    outlet_id=order.outlet_id,
                    details={"expected_tickets": order.expected_ticket_count},
                    context=context,
                )
                event = await uow.catalog.get_event(order.event_id)
                await uow.commit()

            order.status = OrderStatus.PAID
            order.approved_by = actor.id
            order.approved_at = now
            report = await self._issuer.issue(order, event)
            span.set_attribute("order.tickets_issued", report.issued)

        if report.failed:
            logger.warning(
                "Order %s approved with %s of %s tickets; resend tickets to complete issuance",
                order_id,
                report.issued,
                report.expected,
            )
        if report.withdrawn:
            order.ticket_count = 0
        else:
            order.ticket_count = report.issued + report.skipped
            if order.ticket_count:
                await self._deliver(order)
        return ApprovalResult(
            order=order,
            tickets_count=order.ticket_count,
            expected=report.expected,
            failed=report.failed,
        )

    async def reject(
        self,
        order_id: str,
        *,
        reason: str | None,
        actor: Actor,
        context: RequestContext | None = None,
    ) -> None:
        with _tracer.start_as_current_span("orders.reject") as span:
            span.set_attribute("order.id", order_id)
            async with self._uow_factory() as uow:
                order = await self._require(uow, order_id)
                if not OrderStateMachine.can_transition(order.status, OrderStatus.REJECTED):
                    raise Conflict("Order not in PENDING_ADMIN_APPROVAL")
                now = datetime.now(timezone.utc)
                flipped = await uow.orders.transition(
                    order_id,
                    from_statuses=OrderStateMachine.sources_for(OrderStatus.REJECTED),
                    to_status=OrderStatus.REJECTED,
                    values={
                        "rejected_by": actor.id,
                        "cancelled_by": actor.type.value,
                        "cancellation_reason": reason,
                        "cancelled_at": now,
                    },
                )
                if not flipped:
                    raise Conflict("Order not in PENDING_ADMIN_APPROVAL")
                await self._release_stock(uow, order)
                await uow.audit.append(
                    action=AuditAction.REJECT_ORDER,
                    actor=actor,
                    target_type=ORDER_TARGET,
                    target_id=order_id,
                    outlet_id=order.outlet_id,
                    details={"reason": reason},
                    context=context,
                )
                await uow.commit()
        logger.info("Order %s rejected by %s", order_id, actor.id)

    async def remove(self, order_id: str, *, actor: Actor, context: RequestContext | None = None) -> int:
        """Take an order down and revoke its tickets; returns the number revoked."""

        with _tracer.start_as_current_span("orders.remove") as span:
            span.set_attribute("order.id", order_id)
            async with self._uow_factory() as uow:
                order = await self._require(uow, order_id)
                if not OrderStateMachine.can_transition(order.status, OrderStatus.REMOVED_BY_ADMIN):
                    raise Conflict("Order already rejected or removed. Stock was already returned.")
                flipped = await uow.orders.transition(
                    order_id,
                    from_statuses=OrderStateMachine.sources_for(OrderStatus.REMOVED_BY_ADMIN),
                    to_status=OrderStatus.REMOVED_BY_ADMIN,
                    values={"removed_by": actor.id, "removed_at": datetime.now(timezone.utc)},
                )
                if not flipped:
                    raise Conflict("Order already rejected or removed. Stock was already returned.")
                await self._release_stock(uow, order)
                revoked = await uow.tickets.delete_by_order(order_id)
                await uow.audit.append(
                    action=AuditAction.REMOVE_ORDER,
                    actor=actor,
                    target_type=ORDER_TARGET,
                    target_id=order_id,
                    outlet_id=order.outlet_id,
                    details={"previous_status": order.status.value, "revoked_tickets": revoked},
                    context=context,
                )
                await uow.commit()
        logger.info("Order %s removed by %s; %s tickets revoked", order_id, actor.id, revoked)
        return revoked

    async def update_email(
        self,
        order_id: str,
        email: str | None,
        *,
        actor: Actor,
        context: RequestContext | None = None,
    ) -> str | None:
        new_email = (email or "").strip() or None
        if new_email is not None and "@" not in new_email:
            raise InvalidArgument("user_email must be an email address or null")
        async with self._uow_factory() as uow:
            order = await self._require(uow, order_id)
            await uow.orders.update_email(order_id, new_email)
            await uow.audit.append(
                action=AuditAction.UPDATE_ORDER_EMAIL,
                actor=actor,
                target_type=ORDER_TARGET,
                target_id=order_id,
                outlet_id=order.outlet_id,
                details={"field": "user_email", "old": order.user_email, "new": new_email},
                context=context,
            )
            await uow.commit()
        return new_email

    async def resend_order_received(
        self, order_id: str, *, actor: Actor, context: RequestContext | None = None
    ) -> None:
        async with self._uow_factory() as uow:
            order = await self._require(uow, order_id)
        if order.status is not OrderStatus.PENDING_ADMIN_APPROVAL:
            raise Conflict("Only pending orders can resend order-received email")
        if not order.user_email:
            raise InvalidArgument("No client email")
        if not order.lines:
            raise InvalidArgument("No passes")

        if not await self._notifier.notify(order, [], NotificationKind.ORDER_RECEIVED):
            raise DependencyUnavailable("Failed to send order received email")

        async with self._uow_factory() as uow:
            await uow.audit.append(
                action=AuditAction.RESEND_ORDER_EMAIL,
                actor=actor,
                target_type=ORDER_TARGET,
                target_id=order_id,
                outlet_id=order.outlet_id,
                details={"type": "order_received"},
                context=context,
            )
            await uow.commit()

    async def complete_issuance(self, order_id: str) -> IssuanceReport:
        """Issue the units still owed on a paid order after a partial approval."""

        async with self._uow_factory() as uow:
            order = await self._require(uow, order_id)
            if order.status is not OrderStatus.PAID:
                raise Conflict("Only approved (PAID) orders can be issued tickets")
            issued = await uow.tickets.issued_units(order_id)
            event = await uow.catalog.get_event(order.event_id)
        report = await self._issuer.issue(order, event, issued=issued)
        if report.expected:
            logger.info(
                "Completed issuance for order %s: %s of %s missing tickets issued",
                order_id,
                report.issued,
                report.expected,
            )
        return report

    async def resend_tickets(
        self, order_id: str, *, actor: Actor, context: RequestContext | None = None
    ) -> int:
        """Re-send the tickets mail, first issuing any missing units; returns the ticket count."""

        async with self._uow_factory() as uow:
            order = await self._require(uow, order_id)
        if order.status is not OrderStatus.PAID:
            raise Conflict("Only approved (PAID) orders can resend tickets email")
        if not order.user_email:
            raise InvalidArgument("No client email")
        if not order.lines:
            raise InvalidArgument("No passes")

        report = await self.complete_issuance(order_id)

        async with self._uow_factory() as uow:
            tickets = await uow.tickets.list_by_order(order_id)
        if not tickets:
            raise InvalidArgument("No tickets generated for this order")

        if not await self._notifier.notify(order, tickets, NotificationKind.TICKETS_READY):
            raise DependencyUnavailable("Failed to send tickets email")

        async with self._uow_factory() as uow:
            await uow.tickets.mark_delivered([ticket.id for ticket in tickets])
            await uow.audit.append(
                action=AuditAction.RESEND_ORDER_EMAIL,
                actor=actor,
                target_type=ORDER_TARGET,
                target_id=order_id,
                outlet_id=order.outlet_id,
                details={"type": "tickets", "completed_units": report.issued},
                context=context,
            )
            await uow.commit()
        return len(tickets)

    async def _deliver(self, order: Order) -> None:
        """Send the tickets that still stand, unless the order left ``PAID`` meanwhile."""

        async with self._uow_factory() as uow:
            current = await uow.orders.get(order.id)
            tickets = await uow.tickets.list_by_order(order.id)
        if current is None or current.status is not OrderStatus.PAID or not tickets:
            logger.info("Skipping tickets notification for order %s; nothing left to deliver", order.id)
            return
        if not await self._notifier.notify(current, tickets, NotificationKind.TICKETS_READY):
            return
        async with self._uow_factory() as uow:
            await uow.tickets.mark_delivered([ticket.id for ticket in tickets])
            await uow.commit()

    @staticmethod
    async def _require(uow: AbstractUnitOfWork, order_id: str) -> Order:
        order = await uow.orders.get(order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    @staticmethod
    async def _release_stock(uow: AbstractUnitOfWork, order: Order) -> None:
        for line in order.lines:
            await uow.stock.release(StockKey(order.outlet_id, order.event_id, line.pass_id), line.quantity)


def _merge_lines(lines: Sequence[SaleLine]) -> list[SaleLine]:
    if not lines:
        raise InvalidArgument("At least one pass is required")
    totals: dict[str, int] = {}
    for line in lines:
        if line.quantity < 1:
            raise InvalidArgument("quantity must be at least 1")
        totals[line.pass_id] = totals.get(line.pass_id, 0) + line.quantity
    return [SaleLine(pass_id=pass_id, quantity=quantity) for pass_id, quantity in totals.items()]


def _clean_customer(customer: Customer) -> Customer:
    full_name = customer.full_name.strip()
    phone = customer.phone.strip()
    if not full_name or not phone:
        raise InvalidArgument("full_name and phone are required")
    return Customer(
        full_name=full_name,
        phone=phone,
        email=(customer.email or "").strip() or None,
        city=(customer.city or "").strip() or None,
    )
