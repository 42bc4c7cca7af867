from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Outlet:
    id: str
    name: str
    slug: str
    is_active: bool


@dataclass(slots=True)
class Event:
    id: str
    name: str
    date: datetime | None
    venue: str | None
    city: str | None


@dataclass(slots=True)
class EventPass:
    """A sellable pass type of an event (VIP, Standard, ...)."""

    id: str
    event_id: str
    name: str
    price: float
    is_active: bool
