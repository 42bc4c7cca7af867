"""Initial box office schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pos_outlets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("venue", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=255), nullable=True),
    )

    op.create_table(
        "event_passes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_event_passes_event_id", "event_passes", ["event_id"])

    op.create_table(
        "pos_pass_stock",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "pos_outlet_id", sa.String(length=36), sa.ForeignKey("pos_outlets.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pass_id", sa.String(length=36), sa.ForeignKey("event_passes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("max_quantity", sa.Integer(), nullable=True),
        sa.Column("sold_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.UniqueConstraint("pos_outlet_id", "event_id", "pass_id", name="uq_pos_pass_stock_key"),
        sa.CheckConstraint("sold_quantity >= 0", name="ck_pos_pass_stock_sold_non_negative"),
        sa.CheckConstraint(
            "max_quantity IS NULL OR sold_quantity <= max_quantity", name="ck_pos_pass_stock_within_capacity"
        ),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("pos_outlet_id", sa.String(length=36), sa.ForeignKey("pos_outlets.id"), nullable=False),
        sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("pos_user_id", sa.String(length=255), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("user_phone", sa.String(length=50), nullable=False),
        sa.Column("user_email", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=255), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("approved_by", sa.String(length=255), nullable=True),
        sa.Column("approved_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(length=255), nullable=True),
        sa.Column("cancelled_by", sa.String(length=50), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("removed_by", sa.String(length=255), nullable=True),
        sa.Column("removed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_pos_outlet_id", "orders", ["pos_outlet_id"])
    op.create_index("ix_orders_event_id", "orders", ["event_id"])

    op.create_table(
        "order_lines",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("order_id", sa.String(length=36), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pass_id", sa.String(length=36), sa.ForeignKey("event_passes.id"), nullable=False),
        sa.Column("pass_type", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column(
            "order_line_id", sa.String(length=36), sa.ForeignKey("order_lines.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("secure_token", sa.String(length=64), nullable=False, unique=True),
        sa.Column("qr_code_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("generated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("delivered_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_tickets_order_id", "tickets", ["order_id"])

    op.create_table(
        "scan_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "ticket_id", sa.String(length=36), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, unique=True
        ),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column("secure_token", sa.String(length=64), nullable=False, unique=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("buyer_name", sa.String(length=255), nullable=False),
        sa.Column("buyer_phone", sa.String(length=50), nullable=False),
        sa.Column("buyer_email", sa.String(length=255), nullable=True),
        sa.Column("buyer_city", sa.String(length=255), nullable=True),
        sa.Column("event_id", sa.String(length=36), nullable=False),
        sa.Column("event_name", sa.String(length=255), nullable=True),
        sa.Column("event_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("event_venue", sa.String(length=255), nullable=True),
        sa.Column("order_line_id", sa.String(length=36), nullable=False),
        sa.Column("pass_type", sa.String(length=255), nullable=False),
        sa.Column("pass_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("ticket_status", sa.String(length=50), nullable=False),
        sa.Column("qr_code_url", sa.Text(), nullable=True),
        sa.Column("generated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_scan_records_order_id", "scan_records", ["order_id"])

    op.create_table(
        "pos_audit_log",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("performed_by_type", sa.String(length=50), nullable=False),
        sa.Column("performed_by_id", sa.String(length=255), nullable=False),
        sa.Column("performed_by_email", sa.String(length=255), nullable=True),
        sa.Column("pos_outlet_id", sa.String(length=36), nullable=True),
        sa.Column("target_type", sa.String(length=50), nullable=False),
        sa.Column("target_id", sa.String(length=36), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("ip_address", sa.String(length=100), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_pos_audit_log_action", "pos_audit_log", ["action"])
    op.create_index("ix_pos_audit_log_performed_by_id", "pos_audit_log", ["performed_by_id"])
    op.create_index("ix_pos_audit_log_created_at", "pos_audit_log", ["created_at"])
    op.create_index("ix_pos_audit_log_target", "pos_audit_log", ["target_type", "target_id"])


def downgrade() -> None:
    op.drop_table("pos_audit_log")
    op.drop_table("scan_records")
    op.drop_table("tickets")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("pos_pass_stock")
    op.drop_table("event_passes")
    op.drop_table("events")
    op.drop_table("pos_outlets")
