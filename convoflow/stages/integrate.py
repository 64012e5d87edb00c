"""Integrate stage: fetch banking data for the latest assistant reply."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from convoflow.adapters.base import BankingClient
from convoflow.core.outcomes import Appended, Rejected, StageOutcome
from convoflow.core.state_machine import Stage
from convoflow.schemas.conversation import RecordRole
from convoflow.services.event_log_service import EventLogService
from convoflow.stages.base import DEFAULT_TIMEOUT_SECONDS, StageProcessor


class IntegrateStage(StageProcessor):
    stage = Stage.INTEGRATE

    def __init__(
        self,
        event_log: EventLogService,
        bank: BankingClient,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(event_log, timeout=timeout)
        self._bank = bank

    async def process(
        self,
        conversation_id: Optional[str],
        triggering_input: Any = None,
        timeout: Optional[float] = None,
    ) -> StageOutcome:
        if not conversation_id:
            return Rejected("Conversation ID is required")

        latest = await asyncio.to_thread(self.event_log.read_latest, conversation_id)
        if latest is None or latest.role != RecordRole.ASSISTANT:
            return Rejected("No assistant message found", out_of_turn=True)

        # The banking client blocks; keep it off the event loop.
        result = await self.call_collaborator(
            asyncio.to_thread(self._bank.query, conversation_id, latest.payload),
            conversation_id,
            timeout=timeout,
        )
        record = await asyncio.to_thread(
            self.event_log.append,
            conversation_id,
            RecordRole.INTEGRATION,
            json.dumps(result, default=str),
            expected_latest_sequence=latest.sequence,
        )
        return Appended(record)
