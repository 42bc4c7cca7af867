"""Read-only reference data: outlets, events and pass types."""

from .models import Event, EventPass, Outlet
from .repository import CatalogRepository

__all__ = ["CatalogRepository", "Event", "EventPass", "Outlet"]
