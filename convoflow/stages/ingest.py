"""Ingest stage: validate the user message and append it as a User record."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

from convoflow.core.outcomes import Appended, Rejected, StageOutcome
from convoflow.core.state_machine import Stage, accepts, derive_state
from convoflow.schemas.conversation import RecordRole
from convoflow.stages.base import StageProcessor

CONVERSATION_ID_PREFIX = "conv-"


def mint_conversation_id() -> str:
    return f"{CONVERSATION_ID_PREFIX}{uuid.uuid4().hex}"


@dataclass(frozen=True)
class IngestInput:
    message: Optional[str]
    request_id: Optional[str] = None


class IngestStage(StageProcessor):
    stage = Stage.INGEST

    async def process(
        self,
        conversation_id: Optional[str],
        triggering_input: Optional[IngestInput] = None,
        timeout: Optional[float] = None,
    ) -> StageOutcome:
        text = triggering_input.message if triggering_input else None
        if not text or not text.strip():
            return Rejected("Message is required")

        conversation_id = conversation_id or mint_conversation_id()
        request_id = triggering_input.request_id

        # Retry of a call that already committed: hand back the same record.
        if request_id:
            existing = await asyncio.to_thread(
                self.event_log.get_by_idempotency_key, conversation_id, request_id
            )
            if existing is not None:
                return Appended(existing)

        latest = await asyncio.to_thread(self.event_log.read_latest, conversation_id)
        state = derive_state(latest)
        if not accepts(state, self.stage):
            return Rejected(
                f"Conversation {conversation_id} has a turn in progress ({state.value})",
                out_of_turn=True,
            )

        record = await asyncio.to_thread(
            self.event_log.append,
            conversation_id,
            RecordRole.USER,
            text,
            idempotency_key=request_id,
            expected_latest_sequence=latest.sequence if latest else None,
        )
        return Appended(record)
