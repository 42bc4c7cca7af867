"""Per-outlet inventory ledger."""

from .models import StockEntry, StockKey
from .ledger import StockLedger
from .service import StockService

__all__ = ["StockEntry", "StockKey", "StockLedger", "StockService"]
