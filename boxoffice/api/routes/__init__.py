"""Route modules exposed by the API package."""

from . import audit, orders, ping, pos, stock

__all__ = ["audit", "orders", "ping", "pos", "stock"]
