"""Add request context to workflow events and retire the expired waiting list status

Revision ID: 002
Revises: 001
Create Date: 2026-10-25

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Store the originating request on every outbox row."""
    op.add_column("workflow_events", sa.Column("ip_address", sa.VARCHAR(length=45), nullable=True))
    op.add_column("workflow_events", sa.Column("user_agent", sa.Text(), nullable=True))
    op.add_column("workflow_events", sa.Column("request_id", sa.VARCHAR(length=64), nullable=True))

    # No workflow ever produced 'expired'
    op.drop_constraint("ck_waiting_list_entries_status", "waiting_list_entries", type_="check")
    op.create_check_constraint(
        "ck_waiting_list_entries_status",
        "waiting_list_entries",
        "status IN ('active', 'scheduled', 'cancelled')",
    )


def downgrade() -> None:
    """Drop request context columns and restore the previous status constraint."""
    op.drop_constraint("ck_waiting_list_entries_status", "waiting_list_entries", type_="check")
    op.create_check_constraint(
        "ck_waiting_list_entries_status",
        "waiting_list_entries",
        "status IN ('active', 'scheduled', 'cancelled', 'expired')",
    )

    op.drop_column("workflow_events", "request_id")
    op.drop_column("workflow_events", "user_agent")
    op.drop_column("workflow_events", "ip_address")
