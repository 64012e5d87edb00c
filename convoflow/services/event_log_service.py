"""
Service for the per-conversation event log.

Records are immutable; only insert. No update/delete of record content.
Sequence numbers are strictly increasing per conversation: the wall clock in
milliseconds when it is ahead of the current maximum, otherwise maximum + 1.

Every row stores the sequence it was appended after. The database allows one
row per (conversation_id, previous_sequence), so two writers that read the
same tail cannot both extend it, whichever process they run in.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from convoflow.exceptions import AppendConflict, StorageUnavailable
from convoflow.infra.logging_config import get_logger
from convoflow.models.conversation_record import ConversationRecord
from convoflow.schemas.conversation import Record, RecordRole

logger = get_logger("event_log")

DEFAULT_APPEND_ATTEMPTS = 5

# previous_sequence of a conversation's first record.
NO_PREVIOUS_SEQUENCE = 0

# Passed as expected_latest_sequence to skip the optimistic check.
UNCHECKED: Any = object()


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class EventLogService:
    """
    Append and read conversation records. No update/delete (immutable).

    Methods are blocking and may be called from worker threads; calls on one
    service (and so one Session) are serialized.
    """

    def __init__(
        self,
        db: Session,
        clock: Callable[[], int] = epoch_millis,
        append_attempts: int = DEFAULT_APPEND_ATTEMPTS,
    ) -> None:
        self.db = db
        self._clock = clock
        self._append_attempts = max(1, append_attempts)
        self._lock = threading.RLock()

    def append(
        self,
        conversation_id: str,
        role: RecordRole,
        payload: str,
        idempotency_key: Optional[str] = None,
        expected_latest_sequence: Any = UNCHECKED,
    ) -> Record:
        """
        Persist a new record at the end of the conversation and return it.

        Args:
            conversation_id: Owning conversation.
            role: Producer of the record.
            payload: Record content.
            idempotency_key: When a record with this key already exists in the
                conversation it is returned instead of writing a duplicate.
            expected_latest_sequence: Optimistic check; the append fails with
                AppendConflict if the conversation's latest sequence differs
                (None means the conversation must be empty). Enforced by the
                database, so a writer that commits between the check and the
                insert still makes this append fail.

        Raises:
            AppendConflict: the log moved under the append, or a concurrent
                writer kept taking the computed sequence.
            StorageUnavailable: the underlying store failed.
        """
        role = RecordRole(role)
        last_error: Optional[BaseException] = None
        with self._lock:
            for attempt in range(1, self._append_attempts + 1):
                try:
                    if idempotency_key:
                        existing = self._find_by_key(conversation_id, idempotency_key)
                        if existing is not None:
                            logger.info(
                                "Append replayed for conversation=%s key=%s sequence=%s",
                                conversation_id,
                                idempotency_key,
                                existing.sequence,
                            )
                            return Record.model_validate(existing)

                    latest = self._latest_sequence(conversation_id)
                    if (
                        expected_latest_sequence is not UNCHECKED
                        and latest != expected_latest_sequence
                    ):
                        raise AppendConflict(
                            f"Expected latest sequence {expected_latest_sequence}, found {latest}",
                            conversation_id=conversation_id,
                        )

                    row = ConversationRecord(
                        conversation_id=conversation_id,
                        sequence=self._next_sequence(latest),
                        previous_sequence=(
                            latest if latest is not None else NO_PREVIOUS_SEQUENCE
                        ),
                        role=role.value,
                        payload=payload,
                        idempotency_key=idempotency_key,
                    )
                    self.db.add(row)
                    self.db.commit()
                    self.db.refresh(row)
                    return Record.model_validate(row)
                except IntegrityError as e:
                    # Another writer took the tail, the sequence or the key.
                    # The next attempt re-reads the log; a checked append then
                    # fails with AppendConflict.
                    self.db.rollback()
                    last_error = e
                    logger.info(
                        "Append collision for conversation=%s (attempt %d/%d)",
                        conversation_id,
                        attempt,
                        self._append_attempts,
                    )
                except SQLAlchemyError as e:
                    self.db.rollback()
                    raise StorageUnavailable(
                        "Event log write failed",
                        conversation_id=conversation_id,
                        cause=e,
                    ) from e
        raise AppendConflict(
            "Could not allocate a sequence after repeated collisions",
            conversation_id=conversation_id,
            cause=last_error,
        )

    def read_ordered(self, conversation_id: str) -> List[Record]:
        """All records of a conversation in ascending sequence. Empty if unknown."""
        with self._lock:
            try:
                rows = (
                    self.db.query(ConversationRecord)
                    .filter(ConversationRecord.conversation_id == conversation_id)
                    .order_by(ConversationRecord.sequence.asc())
                    .all()
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageUnavailable(
                    "Event log read failed", conversation_id=conversation_id, cause=e
                ) from e
            return [Record.model_validate(r) for r in rows]

    def read_latest(self, conversation_id: str) -> Optional[Record]:
        """Highest-sequence record, or None if the conversation has no records."""
        with self._lock:
            try:
                row = (
                    self.db.query(ConversationRecord)
                    .filter(ConversationRecord.conversation_id == conversation_id)
                    .order_by(ConversationRecord.sequence.desc())
                    .first()
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageUnavailable(
                    "Event log read failed", conversation_id=conversation_id, cause=e
                ) from e
            return Record.model_validate(row) if row is not None else None

    def get_by_idempotency_key(
        self, conversation_id: str, idempotency_key: str
    ) -> Optional[Record]:
        """Record previously appended with this key, if any."""
        with self._lock:
            try:
                row = self._find_by_key(conversation_id, idempotency_key)
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageUnavailable(
                    "Event log read failed", conversation_id=conversation_id, cause=e
                ) from e
            return Record.model_validate(row) if row is not None else None

    def list_conversation_ids(self, skip: int = 0, limit: int = 100) -> List[str]:
        """Distinct conversation ids, most recently active first."""
        with self._lock:
            try:
                rows = (
                    self.db.query(ConversationRecord.conversation_id)
                    .group_by(ConversationRecord.conversation_id)
                    .order_by(func.max(ConversationRecord.created_at).desc())
                    .offset(skip)
                    .limit(limit)
                    .all()
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                raise StorageUnavailable("Event log read failed", cause=e) from e
            return [r[0] for r in rows]

    def _find_by_key(
        self, conversation_id: str, idempotency_key: str
    ) -> Optional[ConversationRecord]:
        return (
            self.db.query(ConversationRecord)
            .filter(
                ConversationRecord.conversation_id == conversation_id,
                ConversationRecord.idempotency_key == idempotency_key,
            )
            .first()
        )

    def _latest_sequence(self, conversation_id: str) -> Optional[int]:
        return (
            self.db.query(func.max(ConversationRecord.sequence))
            .filter(ConversationRecord.conversation_id == conversation_id)
            .scalar()
        )

    def _next_sequence(self, latest: Optional[int]) -> int:
        now = self._clock()
        if latest is None or now > latest:
            return now
        return latest + 1
