from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field

from boxoffice.api.routes.orders import OrderResponse, to_order_response
from boxoffice.dependencies.auth import PosUser, RequestContextDep
from boxoffice.dependencies.services import OrderServiceDep, StockServiceDep
from boxoffice.orders.models import Customer, SaleLine

router = APIRouter(prefix="/pos/{outlet_slug}", tags=["point-of-sale"])


class CustomerPayload(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=1, max_length=50)
    email: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=255)


class SaleLinePayload(BaseModel):
    pass_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=100)


class SaleRequest(BaseModel):
    event_id: str = Field(..., min_length=1)
    customer: CustomerPayload
    passes: list[SaleLinePayload] = Field(..., min_length=1)


class SellablePassResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pass_id: str
    pass_name: str | None
    pass_price: float | None
    max_quantity: int | None
    sold_quantity: int
    remaining: int | None


@router.get("/events/{event_id}/passes", response_model=list[SellablePassResponse])
async def list_sellable_passes(
    outlet_slug: str,
    event_id: str,
    service: StockServiceDep,
    user: PosUser,
) -> list[SellablePassResponse]:
    entries = await service.list_sellable(
        outlet_slug=outlet_slug,
        event_id=event_id,
        operator_outlet_id=user.outlet_id,
    )
    return [SellablePassResponse.model_validate(entry) for entry in entries]


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    outlet_slug: str,
    payload: SaleRequest,
    service: OrderServiceDep,
    user: PosUser,
    context: RequestContextDep,
) -> OrderResponse:
    order = await service.place_order(
        outlet_slug=outlet_slug,
        event_id=payload.event_id,
        customer=Customer(
            full_name=payload.customer.full_name,
            phone=payload.customer.phone,
            email=payload.customer.email,
            city=payload.customer.city,
        ),
        lines=[SaleLine(pass_id=line.pass_id, quantity=line.quantity) for line in payload.passes],
        actor=user.as_actor(),
        operator_outlet_id=user.outlet_id,
        context=context,
    )
    return to_order_response(order)
