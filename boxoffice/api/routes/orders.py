from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field

from boxoffice.api.params import parse_time_bound
from boxoffice.dependencies.auth import AdminUser, RequestContextDep
from boxoffice.dependencies.services import OrderServiceDep
from boxoffice.orders.models import Order, OrderQuery, OrderStatistics
from boxoffice.orders.state import OrderStatus

router = APIRouter(prefix="/orders", tags=["orders"])


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class EmailUpdateRequest(BaseModel):
    user_email: str | None = Field(..., max_length=255)


class OrderLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pass_id: str
    pass_type: str
    quantity: int
    price: float


class OutletSummary(BaseModel):
    id: str
    name: str | None = None
    slug: str | None = None


class EventSummary(BaseModel):
    id: str
    name: str | None = None
    date: datetime | None = None
    venue: str | None = None


class OrderResponse(BaseModel):
    id: str
    status: OrderStatus
    outlet_id: str
    event_id: str
    pos_user_id: str
    user_name: str
    user_phone: str
    user_email: str | None
    city: str | None
    total_price: float
    approved_by: str | None
    approved_at: datetime | None
    rejected_by: str | None
    cancelled_by: str | None
    cancellation_reason: str | None
    cancelled_at: datetime | None
    removed_by: str | None
    removed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    lines: list[OrderLineResponse]
    outlet: OutletSummary
    event: EventSummary
    ticket_count: int
    expected_ticket_count: int


class SuccessResponse(BaseModel):
    success: bool = True


class ApproveResponse(SuccessResponse):
    model_config = ConfigDict(populate_by_name=True)

    tickets_count: int = Field(alias="ticketsCount")


class EmailUpdateResponse(SuccessResponse):
    user_email: str | None


class StatusTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    orders: int
    revenue: float
    tickets: int


class OutletStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    outlet_id: str
    outlet_name: str | None
    paid_orders: int
    paid_revenue: float
    by_status: dict[str, int]
    by_pass_type: dict[str, int]


class DailySalesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: str
    orders: int
    revenue: float


class OrderStatisticsResponse(BaseModel):
    total_orders: int
    total_revenue: float
    by_status: dict[OrderStatus, StatusTotalsResponse]
    by_outlet: list[OutletStatisticsResponse]
    by_pass_type: dict[str, int]
    daily: list[DailySalesResponse]


def to_statistics_response(stats: OrderStatistics) -> OrderStatisticsResponse:
    return OrderStatisticsResponse(
        total_orders=stats.total_orders,
        total_revenue=stats.total_revenue,
        by_status={
            status: StatusTotalsResponse.model_validate(stats.totals(status)) for status in OrderStatus
        },
        by_outlet=[OutletStatisticsResponse.model_validate(entry) for entry in stats.by_outlet],
        by_pass_type=stats.by_pass_type,
        daily=[DailySalesResponse.model_validate(day) for day in stats.daily],
    )


def to_order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        status=order.status,
        outlet_id=order.outlet_id,
        event_id=order.event_id,
        pos_user_id=order.pos_user_id,
        user_name=order.user_name,
        user_phone=order.user_phone,
        user_email=order.user_email,
        city=order.city,
        total_price=order.total_price,
        approved_by=order.approved_by,
        approved_at=order.approved_at,
        rejected_by=order.rejected_by,
        cancelled_by=order.cancelled_by,
        cancellation_reason=order.cancellation_reason,
        cancelled_at=order.cancelled_at,
        removed_by=order.removed_by,
        removed_at=order.removed_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
        lines=[OrderLineResponse.model_validate(line) for line in order.lines],
        outlet=OutletSummary(id=order.outlet_id, name=order.outlet_name, slug=order.outlet_slug),
        event=EventSummary(
            id=order.event_id,
            name=order.event_name,
            date=order.event_date,
            venue=order.event_venue,
        ),
        ticket_count=order.ticket_count,
        expected_ticket_count=order.expected_ticket_count,
    )


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    service: OrderServiceDep,
    _: AdminUser,
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    event_id: str | None = Query(default=None),
    outlet_id: str | None = Query(default=None),
    created_from: str | None = Query(default=None, alias="from"),
    created_to: str | None = Query(default=None, alias="to"),
    limit: int | None = Query(default=None),
    offset: int | None = Query(default=None),
) -> list[OrderResponse]:
    query = OrderQuery(
        status=status_filter,
        event_id=event_id,
        outlet_id=outlet_id,
        created_from=parse_time_bound(created_from, name="from"),
        created_to=parse_time_bound(created_to, name="to", end_of_day=True),
        limit=limit,
        offset=offset,
    )
    orders = await service.list_orders(query)
    return [to_order_response(order) for order in orders]


@router.get("/statistics", response_model=OrderStatisticsResponse)
async def order_statistics(
    service: OrderServiceDep,
    _: AdminUser,
    outlet_id: str | None = Query(default=None),
    created_from: str | None = Query(default=None, alias="from"),
    created_to: str | None = Query(default=None, alias="to"),
) -> OrderStatisticsResponse:
    stats = await service.statistics(
        outlet_id=outlet_id,
        created_from=parse_time_bound(created_from, name="from"),
        created_to=parse_time_bound(created_to, name="to", end_of_day=True),
    )
    return to_statistics_response(stats)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, service: OrderServiceDep, _: AdminUser) -> OrderResponse:
    return to_order_response(await service.get_order(order_id))


@router.post("/{order_id}/approve", response_model=ApproveResponse)
async def approve_order(
    order_id: str,
    service: OrderServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> ApproveResponse:
    result = await service.approve(order_id, actor=user.as_actor(), context=context)
    return ApproveResponse(tickets_count=result.tickets_count)


@router.post("/{order_id}/reject", response_model=SuccessResponse)
async def reject_order(
    order_id: str,
    service: OrderServiceDep,
    user: AdminUser,
    context: RequestContextDep,
    payload: RejectRequest | None = None,
) -> SuccessResponse:
    reason = payload.reason if payload is not None else None
    await service.reject(order_id, reason=reason, actor=user.as_actor(), context=context)
    return SuccessResponse()


@router.post("/{order_id}/remove", response_model=SuccessResponse)
async def remove_order(
    order_id: str,
    service: OrderServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> SuccessResponse:
    await service.remove(order_id, actor=user.as_actor(), context=context)
    return SuccessResponse()


@router.patch("/{order_id}", response_model=EmailUpdateResponse)
async def update_order_email(
    order_id: str,
    payload: EmailUpdateRequest,
    service: OrderServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> EmailUpdateResponse:
    email = await service.update_email(order_id, payload.user_email, actor=user.as_actor(), context=context)
    return EmailUpdateResponse(user_email=email)


@router.post("/{order_id}/resend-order-received", response_model=SuccessResponse)
async def resend_order_received(
    order_id: str,
    service: OrderServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> SuccessResponse:
    await service.resend_order_received(order_id, actor=user.as_actor(), context=context)
    return SuccessResponse()


@router.post("/{order_id}/resend-tickets-email", response_model=SuccessResponse)
async def resend_tickets_email(
    order_id: str,
    service: OrderServiceDep,
    user: AdminUser,
    context: RequestContextDep,
) -> SuccessResponse:
    await service.resend_tickets(order_id, actor=user.as_actor(), context=context)
    return SuccessResponse()
