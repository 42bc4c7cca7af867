from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from boxoffice.audit.service import AuditService
from boxoffice.orders.service import OrderService
from boxoffice.stock.service import StockService


def _service(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{label} service is not configured")
    return service


async def get_stock_service(request: Request) -> StockService:
    return _service(request, "stock_service", "Stock")


async def get_order_service(request: Request) -> OrderService:
    return _service(request, "order_service", "Order")


async def get_audit_service(request: Request) -> AuditService:
    return _service(request, "audit_service", "Audit")


StockServiceDep = Annotated[StockService, Depends(get_stock_service)]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
