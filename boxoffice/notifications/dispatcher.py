from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Sequence

from .base import NotificationDispatcher, NotificationKind

if TYPE_CHECKING:
    from boxoffice.issuance.models import Ticket
    from boxoffice.orders.models import Order

logger = logging.getLogger(__name__)


class LoggingNotificationDispatcher:
    """Stand-in used when no transport is configured."""

    async def notify(self, order: Order, tickets: Sequence[Ticket], kind: NotificationKind) -> bool:
        logger.info(
            "Notification %s for order %s (%s tickets) not sent: no transport configured",
            kind.value,
            order.id,
            len(tickets),
        )
        return False


class SafeNotificationDispatcher:
    """Fan out to a primary channel and secondary channels; never raises.

    The result reflects only the primary channel, which is the one that
    carries the tickets. Secondary failures are logged and ignored.
    """

    def __init__(
        self,
        primary: NotificationDispatcher,
        *secondary: NotificationDispatcher,
        timeout: float = 15.0,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._timeout = timeout

    async def notify(self, order: Order, tickets: Sequence[Ticket], kind: NotificationKind) -> bool:
        delivered = await self._attempt(self._primary, order, tickets, kind)
        for channel in self._secondary:
            await self._attempt(channel, order, tickets, kind)
        return delivered

    async def _attempt(
        self,
        channel: NotificationDispatcher,
        order: Order,
        tickets: Sequence[Ticket],
        kind: NotificationKind,
    ) -> bool:
        name = type(channel).__name__
        try:
            return bool(await asyncio.wait_for(channel.notify(order, tickets, kind), timeout=self._timeout))
        except asyncio.TimeoutError:
            logger.warning("%s timed out sending %s for order %s", name, kind.value, order.id)
        except Exception:
            logger.exception("%s failed sending %s for order %s", name, kind.value, order.id)
        return False
