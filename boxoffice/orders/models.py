from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from boxoffice.audit.models import DEFAULT_PAGE_SIZE, clamp_pagination

from .state import OrderStatus


@dataclass(slots=True)
class OrderLine:
    """Pass type, quantity and unit price; immutable once the order exists."""

    id: str
    order_id: str
    pass_id: str
    pass_type: str
    quantity: int
    price: float


@dataclass(slots=True)
class Customer:
    full_name: str
    phone: str
    email: str | None = None
    city: str | None = None


@dataclass(slots=True)
class Order:
    """Order aggregate: header fields plus its lines."""

    id: str
    status: OrderStatus
    outlet_id: str
    event_id: str
    pos_user_id: str
    user_name: str
    user_phone: str
    user_email: str | None
    city: str | None
    total_price: float
    created_at: datetime
    updated_at: datetime
    approved_by: str | None = None
    approved_at: datetime | None = None
    rejected_by: str | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    removed_by: str | None = None
    removed_at: datetime | None = None
    lines: Sequence[OrderLine] = field(default_factory=list)
    outlet_name: str | None = None
    outlet_slug: str | None = None
    event_name: str | None = None
    event_date: datetime | None = None
    event_venue: str | None = None
    ticket_count: int = 0

    @property
    def expected_ticket_count(self) -> int:
        return sum(line.quantity for line in self.lines)


@dataclass(slots=True)
class OrderQuery:
    """Filters and pagination for the operator order list."""

    status: OrderStatus | None = None
    event_id: str | None = None
    outlet_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self) -> None:
        self.limit, self.offset = clamp_pagination(self.limit, self.offset)


@dataclass(frozen=True, slots=True)
class SaleLine:
    """Requested pass and quantity at sale time."""

    pass_id: str
    quantity: int


@dataclass(slots=True)
class ApprovalResult:
    order: Order
    tickets_count: int
    expected: int
    failed: int = 0


@dataclass(slots=True)
class StatusTotals:
    orders: int = 0
    revenue: float = 0.0
    tickets: int = 0


@dataclass(slots=True)
class OutletStatistics:
    outlet_id: str
    outlet_name: str | None
    paid_orders: int = 0
    paid_revenue: float = 0.0
    by_status: dict[str, int] = field(default_factory=dict)
    by_pass_type: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class DailySales:
    date: str
    orders: int
    revenue: float


@dataclass(slots=True)
class OrderStatistics:
    """Sales totals over a period.

    ``by_status`` counts every order; revenue, pass counts per outlet and
    pass type, and the daily series cover ``PAID`` orders only.
    """

    by_status: dict[OrderStatus, StatusTotals] = field(default_factory=dict)
    by_outlet: list[OutletStatistics] = field(default_factory=list)
    by_pass_type: dict[str, int] = field(default_factory=dict)
    daily: list[DailySales] = field(default_factory=list)

    def totals(self, status: OrderStatus) -> StatusTotals:
        return self.by_status.get(status, StatusTotals())

    @property
    def total_orders(self) -> int:
        return sum(totals.orders for totals in self.by_status.values())

    @property
    def total_revenue(self) -> float:
        return self.totals(OrderStatus.PAID).revenue
