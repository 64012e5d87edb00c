"""Infer stage: ask the language model to answer the latest user message."""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from convoflow.adapters.base import LanguageModelClient, Turn
from convoflow.core.outcomes import Appended, Rejected, StageOutcome
from convoflow.core.state_machine import Stage
from convoflow.schemas.conversation import Record, RecordRole
from convoflow.services.event_log_service import EventLogService
from convoflow.stages.base import DEFAULT_TIMEOUT_SECONDS, StageProcessor

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


def records_to_turns(records: List[Record]) -> List[Turn]:
    """From the model's side every non-user record is something it said."""
    return [
        {
            "role": "user" if r.role == RecordRole.USER else "assistant",
            "content": r.payload,
        }
        for r in records
    ]


class InferStage(StageProcessor):
    stage = Stage.INFER

    def __init__(
        self,
        event_log: EventLogService,
        llm: LanguageModelClient,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(event_log, timeout=timeout)
        self._llm = llm
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def process(
        self,
        conversation_id: Optional[str],
        triggering_input: Any = None,
        timeout: Optional[float] = None,
    ) -> StageOutcome:
        if not conversation_id:
            return Rejected("Conversation ID is required")

        records = await asyncio.to_thread(self.event_log.read_ordered, conversation_id)
        if not records:
            return Rejected(
                f"Conversation {conversation_id} has no records", out_of_turn=True
            )
        latest = records[-1]
        if latest.role != RecordRole.USER:
            return Rejected(
                f"Latest record is {latest.role.value}, expected {RecordRole.USER.value}",
                out_of_turn=True,
            )

        reply = await self.call_collaborator(
            self._llm.infer(
                records_to_turns(records),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            ),
            conversation_id,
            timeout=timeout,
        )
        record = await asyncio.to_thread(
            self.event_log.append,
            conversation_id,
            RecordRole.ASSISTANT,
            reply,
            expected_latest_sequence=latest.sequence,
        )
        return Appended(record)
