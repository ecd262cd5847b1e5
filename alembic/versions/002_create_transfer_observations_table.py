"""create transfer_observations table

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, UUID

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transfer_observations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("transfer_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "status",
            ENUM(name="transferstatus", create_type=False),
            nullable=False,
        ),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("detail", sa.Text(), nullable=True),
        sa.Column(
            "observed_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column("seq", sa.BigInteger(), sa.Identity(), nullable=False, unique=True),
    )
    op.create_index(
        "ix_transfer_observations_transfer_id", "transfer_observations", ["transfer_id"],
    )
    op.create_index(
        "ix_transfer_observations_observed_at", "transfer_observations", ["observed_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_transfer_observations_observed_at", table_name="transfer_observations")
    op.drop_index("ix_transfer_observations_transfer_id", table_name="transfer_observations")
    op.drop_table("transfer_observations")
