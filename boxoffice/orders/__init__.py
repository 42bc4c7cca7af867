"""Order aggregate: lifecycle state machine, persistence and orchestration."""

from .models import ApprovalResult, Customer, Order, OrderLine, OrderQuery, SaleLine
from .repository import OrderRepository
from .service import OrderService
from .state import OrderStateMachine, OrderStatus

__all__ = [
    "ApprovalResult",
    "Customer",
    "Order",
    "OrderLine",
    "OrderQuery",
    "OrderRepository",
    "OrderService",
    "OrderStateMachine",
    "OrderStatus",
    "SaleLine",
]
