"""Add conversation_records table

Revision ID: add_conversation_records
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "add_conversation_records"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "conversation_records",
        sa.Column("conversation_id", sa.String(255), nullable=False),
        sa.Column("sequence", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("previous_sequence", sa.BigInteger(), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")
        ),
        sa.PrimaryKeyConstraint("conversation_id", "sequence"),
        sa.UniqueConstraint(
            "conversation_id",
            "idempotency_key",
            name="uq_conversation_records_conversation_idempotency",
        ),
        sa.UniqueConstraint(
            "conversation_id",
            "previous_sequence",
            name="uq_conversation_records_conversation_previous",
        ),
    )
    op.create_index(
        "ix_conversation_records_created_at",
        "conversation_records",
        ["created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_conversation_records_created_at",
        table_name="conversation_records",
    )
    op.drop_table("conversation_records")
