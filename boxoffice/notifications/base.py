from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from boxoffice.issuance.models import Ticket
    from boxoffice.orders.models import Order


class NotificationKind(str, Enum):
    ORDER_RECEIVED = "order-received"
    TICKETS_READY = "tickets-ready"


class NotificationDispatcher(Protocol):
    async def notify(self, order: Order, tickets: Sequence[Ticket], kind: NotificationKind) -> bool:
        """Send the ``kind`` message for ``order``; ``True`` when it was handed to the transport."""
        ...


def order_reference(order: Order) -> str:
    return order.id[:8].upper()
