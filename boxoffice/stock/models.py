from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class StockKey:
    """Identity of a stock entry: one counter per outlet, event and pass type."""

    outlet_id: str
    event_id: str
    pass_id: str


@dataclass(slots=True)
class StockEntry:
    """Capacity (``None`` means unlimited) and units sold for one key."""

    id: str
    outlet_id: str
    event_id: str
    pass_id: str
    max_quantity: int | None
    sold_quantity: int
    is_active: bool
    updated_at: datetime
    pass_name: str | None = None
    pass_price: float | None = None

    @property
    def remaining(self) -> int | None:
        if self.max_quantity is None:
            return None
        return max(0, self.max_quantity - self.sold_quantity)


def violates_capacity(max_quantity: int | None, sold_quantity: int) -> bool:
    return max_quantity is not None and sold_quantity > max_quantity
