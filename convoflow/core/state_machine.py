"""
Conversation state machine.

State is never stored: it is derived from the role of the conversation's
latest record. The tables below are the single place that says which stage
may run in which state and where it leads.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from convoflow.schemas.conversation import ConversationState, Record, RecordRole


class Stage(str, Enum):
    INGEST = "ingest"
    INFER = "infer"
    INTEGRATE = "integrate"
    FORMAT = "format"


_STATE_BY_ROLE: Dict[RecordRole, ConversationState] = {
    RecordRole.USER: ConversationState.AWAITING_INFERENCE,
    RecordRole.ASSISTANT: ConversationState.AWAITING_INTEGRATION,
    RecordRole.INTEGRATION: ConversationState.COMPLETE,
    # A system note never opens a turn.
    RecordRole.SYSTEM: ConversationState.COMPLETE,
}

# state -> stage that advances it
NEXT_STAGE: Dict[ConversationState, Stage] = {
    ConversationState.EMPTY: Stage.INGEST,
    ConversationState.AWAITING_INFERENCE: Stage.INFER,
    ConversationState.AWAITING_INTEGRATION: Stage.INTEGRATE,
    ConversationState.COMPLETE: Stage.INGEST,
}

# (state, stage) -> state after a successful append
TRANSITIONS: Dict[tuple[ConversationState, Stage], ConversationState] = {
    (ConversationState.EMPTY, Stage.INGEST): ConversationState.AWAITING_INFERENCE,
    (ConversationState.COMPLETE, Stage.INGEST): ConversationState.AWAITING_INFERENCE,
    (
        ConversationState.AWAITING_INFERENCE,
        Stage.INFER,
    ): ConversationState.AWAITING_INTEGRATION,
    (
        ConversationState.AWAITING_INTEGRATION,
        Stage.INTEGRATE,
    ): ConversationState.COMPLETE,
}


def derive_state(latest: Optional[Record]) -> ConversationState:
    if latest is None:
        return ConversationState.EMPTY
    return _STATE_BY_ROLE[latest.role]


def accepts(state: ConversationState, stage: Stage) -> bool:
    """Format is read-only and runs in every state."""
    if stage is Stage.FORMAT:
        return True
    return (state, stage) in TRANSITIONS


def transition(state: ConversationState, stage: Stage) -> ConversationState:
    if stage is Stage.FORMAT:
        return state
    try:
        return TRANSITIONS[(state, stage)]
    except KeyError:
        raise ValueError(f"Stage {stage.value} is not valid in state {state.value}")


def is_turn_open(state: ConversationState) -> bool:
    """A turn is open while stages after Ingest still have to run."""
    return state in (
        ConversationState.AWAITING_INFERENCE,
        ConversationState.AWAITING_INTEGRATION,
    )
