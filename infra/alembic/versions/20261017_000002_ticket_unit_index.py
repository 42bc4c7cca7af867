"""Number tickets within their order line."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_000002"
down_revision = "20261017_000001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tickets",
        sa.Column("unit_index", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.execute(
        """
        UPDATE tickets AS t
        SET unit_index = numbered.position
        FROM (
            SELECT id, ROW_NUMBER() OVER (PARTITION BY order_line_id ORDER BY generated_at, id) - 1 AS position
            FROM tickets
        ) AS numbered
        WHERE numbered.id = t.id
        """
    )
    op.create_unique_constraint("uq_tickets_line_unit", "tickets", ["order_line_id", "unit_index"])


def downgrade() -> None:
    op.drop_constraint("uq_tickets_line_unit", "tickets", type_="unique")
    op.drop_column("tickets", "unit_index")
