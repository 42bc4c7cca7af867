"""Database models and utilities."""

from .models import (
    AuditLogTable,
    EventPassTable,
    EventTable,
    OrderLineTable,
    OrderTable,
    OutletTable,
    ScanRecordTable,
    StockTable,
    TicketTable,
)

__all__ = [
    "AuditLogTable",
    "EventPassTable",
    "EventTable",
    "OrderLineTable",
    "OrderTable",
    "OutletTable",
    "ScanRecordTable",
    "StockTable",
    "TicketTable",
]
