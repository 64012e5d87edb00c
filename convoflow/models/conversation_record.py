"""
ConversationRecord model: the append-only conversation log.

Immutable rows only (insert). Keyed by (conversation_id, sequence); read in
ascending sequence to rebuild a conversation.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, String, Text, UniqueConstraint

from convoflow.db import Base


class ConversationRecord(Base):
    """
    Single record in a conversation (user, assistant, integration or system).

    Sequence is strictly increasing per conversation; the composite primary
    key rejects a second writer that computed the same sequence.
    previous_sequence links each row to the one before it (0 for the first
    record); its unique constraint lets only one writer extend a given tail.
    """

    __tablename__ = "conversation_records"

    __table_args__ = (
        UniqueConstraint(
            "conversation_id",
            "idempotency_key",
            name="uq_conversation_records_conversation_idempotency",
        ),
        UniqueConstraint(
            "conversation_id",
            "previous_sequence",
            name="uq_conversation_records_conversation_previous",
        ),
    )

    conversation_id = Column(String(255), primary_key=True)
    sequence = Column(BigInteger, primary_key=True, autoincrement=False)
    previous_sequence = Column(BigInteger, nullable=False)
    role = Column(String(16), nullable=False)  # see RecordRole
    payload = Column(Text, nullable=False, default="")
    idempotency_key = Column(String(255), nullable=True)
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
