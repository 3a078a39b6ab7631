"""create_sms_queue

Revision ID: 5d1f0a7c2b9e
Revises:
Create Date: 2026-10-19 09:12:40.512384

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5d1f0a7c2b9e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "incomming_messages",
        sa.Column("message_id", sa.BigInteger(), primary_key=True),
        sa.Column("short_message", sa.String(length=160), nullable=True),
        sa.Column("short_message_translit", sa.String(length=160), nullable=True),
        sa.Column(
            "date_create",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_table(
        "sms_queue",
        sa.Column("sms_id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "message_id",
            sa.BigInteger(),
            sa.ForeignKey("incomming_messages.message_id"),
            nullable=False,
        ),
        sa.Column("communication_id", sa.Integer(), nullable=True),
        sa.Column("phone", sa.String(length=255), nullable=False),
        sa.Column("forced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="waiting"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("first_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_sms_queue_status_order",
        "sms_queue",
        ["status", "forced", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_sms_queue_status_order", table_name="sms_queue")
    op.drop_table("sms_queue")
    op.drop_table("incomming_messages")
