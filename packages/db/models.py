"""SQLModel table definitions for the box office data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Generate a random UUID string."""

    return str(uuid.uuid4())


class OutletTable(SQLModel, table=True):
    """Staffed point-of-sale outlets."""

    __tablename__ = "pos_outlets"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    slug: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class EventTable(SQLModel, table=True):
    """Events tickets are sold for."""

    __tablename__ = "events"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    date: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    venue: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    city: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))


class EventPassTable(SQLModel, table=True):
    """Pass types (VIP, Standard, ...) offered for an event."""

    __tablename__ = "event_passes"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    event_id: str = Field(
        sa_column=Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    name: str = Field(sa_column=Column(String(255), nullable=False))
    price: float = Field(default=0, sa_column=Column(Numeric(10, 2, asdecimal=False), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))


class StockTable(SQLModel, table=True):
    """Capacity and sold counters per (outlet, event, pass type)."""

    __tablename__ = "pos_pass_stock"
    __table_args__ = (
        UniqueConstraint("pos_outlet_id", "event_id", "pass_id", name="uq_pos_pass_stock_key"),
    )

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    pos_outlet_id: str = Field(
        sa_column=Column(String(36), ForeignKey("pos_outlets.id", ondelete="CASCADE"), nullable=False)
    )
    event_id: str = Field(sa_column=Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False))
    pass_id: str = Field(
        sa_column=Column(String(36), ForeignKey("event_passes.id", ondelete="CASCADE"), nullable=False)
    )
    max_quantity: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    sold_quantity: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class OrderTable(SQLModel, table=True):
    """Point-of-sale orders and their approval bookkeeping."""

    __tablename__ = "orders"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    pos_outlet_id: str = Field(
        sa_column=Column(String(36), ForeignKey("pos_outlets.id"), nullable=False, index=True)
    )
    event_id: str = Field(sa_column=Column(String(36), ForeignKey("events.id"), nullable=False, index=True))
    pos_user_id: str = Field(sa_column=Column(String(255), nullable=False))
    user_name: str = Field(sa_column=Column(String(255), nullable=False))
    user_phone: str = Field(sa_column=Column(String(50), nullable=False))
    user_email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    city: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    total_price: float = Field(default=0, sa_column=Column(Numeric(12, 2, asdecimal=False), nullable=False))
    approved_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    approved_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    rejected_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    cancelled_by: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    cancellation_reason: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    cancelled_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    removed_by: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    removed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class OrderLineTable(SQLModel, table=True):
    """Pass type / quantity / unit price tuples belonging to an order."""

    __tablename__ = "order_lines"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    order_id: str = Field(
        sa_column=Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    pass_id: str = Field(sa_column=Column(String(36), ForeignKey("event_passes.id"), nullable=False))
    pass_type: str = Field(sa_column=Column(String(255), nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    price: float = Field(default=0, sa_column=Column(Numeric(10, 2, asdecimal=False), nullable=False))


class TicketTable(SQLModel, table=True):
    """One issued, individually scannable unit of an order line."""

    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("order_line_id", "unit_index", name="uq_tickets_line_unit"),
    )

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    order_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    order_line_id: str = Field(
        sa_column=Column(String(36), ForeignKey("order_lines.id", ondelete="CASCADE"), nullable=False)
    )
    unit_index: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    secure_token: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    qr_code_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    status: str = Field(sa_column=Column(String(50), nullable=False))
    generated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    delivered_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class ScanRecordTable(SQLModel, table=True):
    """Denormalised, rebuildable copy of ticket data used at the gate."""

    __tablename__ = "scan_records"

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    ticket_id: str = Field(
        sa_column=Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, unique=True)
    )
    order_id: str = Field(sa_column=Column(String(36), nullable=False, index=True))
    secure_token: str = Field(sa_column=Column(String(64), nullable=False, unique=True))
    source: str = Field(sa_column=Column(String(50), nullable=False))
    buyer_name: str = Field(sa_column=Column(String(255), nullable=False))
    buyer_phone: str = Field(sa_column=Column(String(50), nullable=False))
    buyer_email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    buyer_city: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    event_id: str = Field(sa_column=Column(String(36), nullable=False))
    event_name: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    event_date: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    event_venue: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    order_line_id: str = Field(sa_column=Column(String(36), nullable=False))
    pass_type: str = Field(sa_column=Column(String(255), nullable=False))
    pass_price: float = Field(default=0, sa_column=Column(Numeric(10, 2, asdecimal=False), nullable=False))
    ticket_status: str = Field(sa_column=Column(String(50), nullable=False))
    qr_code_url: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    generated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class AuditLogTable(SQLModel, table=True):
    """Append-only record of every mutating action."""

    __tablename__ = "pos_audit_log"
    __table_args__ = (
        Index("ix_pos_audit_log_target", "target_type", "target_id"),
    )

    id: str = Field(default_factory=_uuid_str, primary_key=True, index=True)
    action: str = Field(sa_column=Column(String(100), nullable=False, index=True))
    performed_by_type: str = Field(sa_column=Column(String(50), nullable=False))
    performed_by_id: str = Field(sa_column=Column(String(255), nullable=False, index=True))
    performed_by_email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    pos_outlet_id: str | None = Field(default=None, sa_column=Column(String(36), nullable=True))
    target_type: str = Field(sa_column=Column(String(50), nullable=False))
    target_id: str = Field(sa_column=Column(String(36), nullable=False))
    details: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    ip_address: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    user_agent: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
