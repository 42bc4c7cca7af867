from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle states of a point-of-sale order."""

    PENDING_ADMIN_APPROVAL = "PENDING_ADMIN_APPROVAL"
    PAID = "PAID"
    REJECTED = "REJECTED"
    REMOVED_BY_ADMIN = "REMOVED_BY_ADMIN"


class OrderStateMachine:
    """Validate order lifecycle transitions.

    A transition to the current state is never allowed.
    """

    _TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.PENDING_ADMIN_APPROVAL: frozenset(
            {OrderStatus.PAID, OrderStatus.REJECTED, OrderStatus.REMOVED_BY_ADMIN}
        ),
        OrderStatus.PAID: frozenset({OrderStatus.REMOVED_BY_ADMIN}),
        OrderStatus.REJECTED: frozenset(),
        OrderStatus.REMOVED_BY_ADMIN: frozenset(),
    }

    @classmethod
    def initial_state(cls) -> OrderStatus:
        return OrderStatus.PENDING_ADMIN_APPROVAL

    @classmethod
    def can_transition(cls, current: OrderStatus, new: OrderStatus) -> bool:
        return new in cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def sources_for(cls, new: OrderStatus) -> tuple[OrderStatus, ...]:
        """States from which ``new`` may be entered, in declaration order."""

        return tuple(status for status, targets in cls._TRANSITIONS.items() if new in targets)
