from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

SCAN_STATUS_VALID = "VALID"
SCAN_SOURCE = "point_de_vente"


class TicketStatus(str, Enum):
    GENERATED = "GENERATED"
    DELIVERED = "DELIVERED"


@dataclass(slots=True)
class Ticket:
    """One individually scannable unit of an order line."""

    id: str
    order_id: str
    order_line_id: str
    secure_token: str
    qr_code_url: str | None
    status: TicketStatus
    generated_at: datetime
    delivered_at: datetime | None = None
    unit_index: int = 0


@dataclass(slots=True)
class ScanRecord:
    """Gate-side projection of a ticket; rebuilt from the order, never edited."""

    ticket_id: str
    order_id: str
    secure_token: str
    buyer_name: str
    buyer_phone: str
    buyer_email: str | None
    buyer_city: str | None
    event_id: str
    event_name: str | None
    event_date: datetime | None
    event_venue: str | None
    order_line_id: str
    pass_type: str
    pass_price: float
    qr_code_url: str | None
    generated_at: datetime
    ticket_status: str = SCAN_STATUS_VALID
    source: str = SCAN_SOURCE


@dataclass(slots=True)
class IssuanceReport:
    """Outcome of an issuance run.

    ``skipped`` counts units another run had already issued; ``withdrawn`` is
    set when the order left ``PAID`` part-way and issuance stopped.
    """

    tickets: Sequence[Ticket] = field(default_factory=list)
    expected: int = 0
    failed: int = 0
    skipped: int = 0
    withdrawn: bool = False

    @property
    def issued(self) -> int:
        return len(self.tickets)

    @property
    def complete(self) -> bool:
        return self.failed == 0 and not self.withdrawn and self.issued + self.skipped == self.expected
