from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from boxoffice.dependencies.auth import AdminUser, RequestContextDep
from boxoffice.dependencies.services import StockServiceDep
from boxoffice.errors import InvalidArgument
from boxoffice.stock.models import StockEntry, StockKey

router = APIRouter(prefix="/stock", tags=["stock"])


class StockCreateRequest(BaseModel):
    outlet_id: str = Field(..., min_length=1, validation_alias=AliasChoices("outlet_id", "pos_outlet_id"))
    event_id: str = Field(..., min_length=1)
    pass_id: str = Field(..., min_length=1)
    max_quantity: int | None = Field(default=None, ge=0)
    sold_quantity: int = Field(default=0, ge=0)


class StockUpdateRequest(BaseModel):
    max_quantity: int | None = Field(default=None, ge=0)
    sold_quantity: int | None = Field(default=None, ge=0)
    is_active: bool | None = None

    @field_validator("sold_quantity", "is_active")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value

    def changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidArgument("No fields provided for update")
        return changes


class StockEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    outlet_id: str
    event_id: str
    pass_id: str
    pass_name: str | None = None
    pass_price: float | None = None
    max_quantity: int | None
    sold_quantity: int
    remaining: int | None
    is_active: bool
    updated_at: datetime


def _to_response(entry: StockEntry) -> StockEntryResponse:
    return StockEntryResponse.model_validate(entry)


@router.get("", response_model=list[StockEntryResponse])
async def list_stock(
    service: StockServiceDep,
    _: AdminUser,
    outlet_id: str = Query(..., min_length=1),
    event_id: str | None = Query(default=None),
) -> list[StockEntryResponse]:
    entries = await service.list_entries(outlet_id=outlet_id, event_id=event_id)
    return [_to_response(entry) for entry in entries]


@router.post("", response_model=StockEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_stock(
    payload: StockCreateRequest,
    service: StockServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> StockEntryResponse:
    entry = await service.create_entry(
        StockKey(outlet_id=payload.outlet_id, event_id=payload.event_id, pass_id=payload.pass_id),
        max_quantity=payload.max_quantity,
        sold_quantity=payload.sold_quantity,
        actor=user.as_actor(),
        context=context,
    )
    return _to_response(entry)


@router.patch("/{entry_id}", response_model=StockEntryResponse)
async def update_stock(
    entry_id: str,
    payload: StockUpdateRequest,
    service: StockServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> StockEntryResponse:
    entry = await service.update_entry(
        entry_id,
        payload.changes(),
        actor=user.as_actor(),
        context=context,
    )
    return _to_response(entry)
