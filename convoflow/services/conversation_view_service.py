"""Read-only projection of a conversation log into its client-facing view."""

from __future__ import annotations

from typing import List

from convoflow.core.state_machine import derive_state
from convoflow.schemas.conversation import (
    ConversationEntry,
    ConversationView,
    Record,
)
from convoflow.services.event_log_service import EventLogService


def project(conversation_id: str, records: List[Record]) -> ConversationView:
    """Build the view from records already in ascending sequence."""
    return ConversationView(
        conversation_id=conversation_id,
        state=derive_state(records[-1] if records else None),
        messages=[
            ConversationEntry(role=r.role, payload=r.payload, sequence=r.sequence)
            for r in records
        ],
    )


class ConversationViewService:
    def __init__(self, event_log: EventLogService) -> None:
        self._event_log = event_log

    def get_view(self, conversation_id: str) -> ConversationView:
        return project(conversation_id, self._event_log.read_ordered(conversation_id))
