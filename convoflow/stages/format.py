"""Format stage: assemble the ordered conversation. Never appends."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from convoflow.core.outcomes import Rejected, StageOutcome, Terminal
from convoflow.core.state_machine import Stage
from convoflow.services.conversation_view_service import project
from convoflow.stages.base import StageProcessor


class FormatStage(StageProcessor):
    stage = Stage.FORMAT

    async def process(
        self,
        conversation_id: Optional[str],
        triggering_input: Any = None,
        timeout: Optional[float] = None,
    ) -> StageOutcome:
        if not conversation_id:
            return Rejected("Conversation ID is required")
        records = await asyncio.to_thread(self.event_log.read_ordered, conversation_id)
        return Terminal(project(conversation_id, records))
