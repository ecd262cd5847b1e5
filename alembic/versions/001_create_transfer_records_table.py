"""create transfer_records table

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, JSONB, UUID

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    transferstatus = sa.Enum(
        "COMMITTED", "ABORTED", "PENDING", "DENIED",
        "MANUAL_REVIEW_PENDING", "RATE_UNAVAILABLE", "SCHEME_FAILED",
        name="transferstatus",
    )
    transferstatus.create(op.get_bind(), checkfirst=True)

    transferstate = sa.Enum(
        "RECEIVED", "RESERVED", "COMMITTED", "ABORTED",
        name="transferstate",
    )
    transferstate.create(op.get_bind(), checkfirst=True)

    orchestrationstate = sa.Enum(
        "validating", "compliance_checked", "rate_resolved",
        "quoted", "transferred", "completed",
        name="orchestrationstate",
    )
    orchestrationstate.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "transfer_records",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("transfer_id", UUID(as_uuid=True), nullable=False),
        sa.Column(
            "status",
            ENUM(name="transferstatus", create_type=False),
            nullable=False,
        ),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("receiver_id", sa.String(128), nullable=False),
        sa.Column("sender_name", sa.String(200), nullable=True),
        sa.Column("sender_phone", sa.String(32), nullable=True),
        sa.Column("receiver_name", sa.String(200), nullable=True),
        sa.Column("receiver_phone", sa.String(32), nullable=True),
        sa.Column("receiver_country", sa.String(2), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("source_currency", sa.String(3), nullable=False),
        sa.Column("target_currency", sa.String(3), nullable=False),
        sa.Column("service_fee", sa.Numeric(18, 2), nullable=False),
        sa.Column("exchange_fee", sa.Numeric(18, 2), nullable=False),
        sa.Column("network_fee", sa.Numeric(18, 2), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(24, 10), nullable=True),
        sa.Column("rate_provider", sa.String(50), nullable=True),
        sa.Column("rate_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("quote", JSONB(), nullable=True),
        sa.Column(
            "transfer_state",
            ENUM(name="transferstate", create_type=False),
            nullable=True,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fulfilment", sa.String(128), nullable=True),
        sa.Column(
            "failed_step",
            ENUM(name="orchestrationstate", create_type=False),
            nullable=True,
        ),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("estimated_delivery", sa.String(50), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.CheckConstraint("amount > 0", name="ck_transfer_records_amount_positive"),
    )
    op.create_index("ix_transfer_records_transfer_id", "transfer_records", ["transfer_id"])
    op.create_index("ix_transfer_records_status", "transfer_records", ["status"])
    op.create_index("ix_transfer_records_sender_id", "transfer_records", ["sender_id"])


def downgrade() -> None:
    op.drop_index("ix_transfer_records_sender_id", table_name="transfer_records")
    op.drop_index("ix_transfer_records_status", table_name="transfer_records")
    op.drop_index("ix_transfer_records_transfer_id", table_name="transfer_records")
    op.drop_table("transfer_records")
    sa.Enum(name="orchestrationstate").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transferstate").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transferstatus").drop(op.get_bind(), checkfirst=True)
