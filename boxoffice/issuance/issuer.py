from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Collection, Sequence

from boxoffice.catalog.models import Event
from boxoffice.orders.models import Order, OrderLine
from boxoffice.orders.state import OrderStatus

from .artifacts import ArtifactStore, render_qr_png, ticket_artifact_path
from .models import IssuanceReport, ScanRecord, Ticket, TicketStatus

if TYPE_CHECKING:
    from boxoffice.unit_of_work import UnitOfWorkFactory

logger = logging.getLogger(__name__)


def _new_token() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class IssuanceUnit:
    line: OrderLine
    index: int


def plan_units(
    lines: Sequence[OrderLine], issued: Collection[tuple[str, int]] | None = None
) -> list[IssuanceUnit]:
    """Units still owed, given the ``(line id, unit index)`` pairs already ``issued``."""

    issued = issued or ()
    return [
        IssuanceUnit(line=line, index=index)
        for line in lines
        for index in range(line.quantity)
        if (line.id, index) not in issued
    ]


class OrderWithdrawn(Exception):
    """The order left ``PAID`` while its tickets were being issued."""


class TicketIssuer:
    """Mint one ticket and one scan record per purchased unit.

    Every unit is committed in its own unit of work, which first holds the
    order row and checks it is still ``PAID``. A removal racing the issuance
    therefore either revokes the unit or stops the run before it is written.
    Each ticket carries its position within the line and the pair is unique,
    so two runs over the same order never mint the same unit twice.

    A unit that fails (artifact storage, token clash, datastore hiccup) is
    logged and skipped; units already issued stay issued and the order keeps
    its status.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        artifact_store: ArtifactStore,
        *,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._artifact_store = artifact_store
        self._token_factory = token_factory or _new_token

    async def issue(
        self,
        order: Order,
        event: Event | None,
        *,
        issued: Collection[tuple[str, int]] | None = None,
    ) -> IssuanceReport:
        units = plan_units(order.lines, issued)
        tickets: list[Ticket] = []
        failed = 0
        skipped = 0
        withdrawn = False
        for unit in units:
            try:
                ticket = await self._issue_unit(order, event, unit)
            except OrderWithdrawn:
                withdrawn = True
                logger.warning(
                    "Order %s is no longer PAID; stopped issuing after %s of %s tickets",
                    order.id,
                    len(tickets),
                    len(units),
                )
                break
            except Exception:
                failed += 1
                logger.exception(
                    "Ticket issuance failed for order %s line %s unit %s",
                    order.id,
                    unit.line.id,
                    unit.index + 1,
                )
                continue
            if ticket is None:
                skipped += 1
                continue
            tickets.append(ticket)
        if failed:
            logger.warning(
                "Order %s issued %s of %s owed tickets", order.id, len(tickets), len(units)
            )
        return IssuanceReport(
            tickets=tickets,
            expected=len(units),
            failed=failed,
            skipped=skipped,
            withdrawn=withdrawn,
        )

    async def _issue_unit(self, order: Order, event: Event | None, unit: IssuanceUnit) -> Ticket | None:
        """Issue ``unit``; ``None`` means another run already issued it."""

        line = unit.line
        token = self._token_factory()
        image = await asyncio.to_thread(render_qr_png, token)
        url = await self._artifact_store.save(ticket_artifact_path(order.id, token), image)
        now = datetime.now(timezone.utc)
        ticket = Ticket(
            id=str(uuid.uuid4()),
            order_id=order.id,
            order_line_id=line.id,
            secure_token=token,
            qr_code_url=url,
            status=TicketStatus.GENERATED,
            generated_at=now,
            unit_index=unit.index,
        )
        scan = ScanRecord(
            ticket_id=ticket.id,
            order_id=order.id,
            secure_token=token,
            buyer_name=order.user_name,
            buyer_phone=order.user_phone,
            buyer_email=order.user_email,
            buyer_city=order.city,
            event_id=order.event_id,
            event_name=event.name if event else order.event_name,
            event_date=event.date if event else order.event_date,
            event_venue=event.venue if event else order.event_venue,
            order_line_id=line.id,
            pass_type=line.pass_type,
            pass_price=line.price,
            qr_code_url=url,
            generated_at=now,
        )
        async with self._uow_factory() as uow:
            if not await uow.orders.hold(order.id, status=OrderStatus.PAID):
                raise OrderWithdrawn(order.id)
            if await uow.tickets.has_unit(line.id, unit.index):
                return None
            await uow.tickets.add(ticket, scan)
            await uow.commit()
        return ticket
