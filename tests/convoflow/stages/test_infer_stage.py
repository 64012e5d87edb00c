"""Tests for InferStage."""

import asyncio

import pytest

from convoflow.core.outcomes import Appended, Rejected
from convoflow.exceptions import CollaboratorUnavailable
from convoflow.schemas.conversation import RecordRole
from convoflow.services.event_log_service import EventLogService
from convoflow.stages import InferStage
from convoflow.stages.infer import records_to_turns


@pytest.mark.asyncio
async def test_infer_appends_assistant_record(event_log: EventLogService, llm):
    event_log.append("conv-1", RecordRole.USER, "what is my balance?")

    outcome = await InferStage(event_log, llm).process("conv-1")

    assert isinstance(outcome, Appended)
    assert outcome.record.role == RecordRole.ASSISTANT
    assert outcome.record.payload == "reply 1"
    assert llm.calls == [[{"role": "user", "content": "what is my balance?"}]]


@pytest.mark.asyncio
async def test_infer_sends_full_history(event_log: EventLogService, llm):
    event_log.append("conv-1", RecordRole.USER, "hi")
    event_log.append("conv-1", RecordRole.ASSISTANT, "hello")
    event_log.append("conv-1", RecordRole.INTEGRATION, '{"status": "success"}')
    event_log.append("conv-1", RecordRole.USER, "and now?")

    await InferStage(event_log, llm).process("conv-1")

    roles = [t["role"] for t in llm.calls[0]]
    assert roles == ["user", "assistant", "assistant", "user"]


@pytest.mark.asyncio
async def test_infer_out_of_turn_leaves_log_unchanged(event_log: EventLogService, llm):
    event_log.append("conv-1", RecordRole.USER, "hi")
    event_log.append("conv-1", RecordRole.ASSISTANT, "hello")

    outcome = await InferStage(event_log, llm).process("conv-1")

    assert isinstance(outcome, Rejected)
    assert outcome.out_of_turn
    assert llm.calls == []
    assert len(event_log.read_ordered("conv-1")) == 2


@pytest.mark.asyncio
async def test_infer_on_empty_conversation_is_rejected(event_log: EventLogService, llm):
    outcome = await InferStage(event_log, llm).process("conv-1")
    assert isinstance(outcome, Rejected)
    assert outcome.out_of_turn


@pytest.mark.asyncio
async def test_infer_requires_conversation_id(event_log: EventLogService, llm):
    outcome = await InferStage(event_log, llm).process(None)
    assert isinstance(outcome, Rejected)
    assert not outcome.out_of_turn


@pytest.mark.asyncio
async def test_infer_model_failure_raises_and_appends_nothing(
    event_log: EventLogService, llm
):
    llm.failures = 1
    event_log.append("conv-1", RecordRole.USER, "hi")

    with pytest.raises(CollaboratorUnavailable) as exc_info:
        await InferStage(event_log, llm).process("conv-1")

    assert exc_info.value.stage == "infer"
    assert isinstance(exc_info.value.cause, RuntimeError)
    assert len(event_log.read_ordered("conv-1")) == 1


@pytest.mark.asyncio
async def test_infer_timeout_raises_collaborator_unavailable(
    event_log: EventLogService, llm
):
    llm.delay = 0.5
    event_log.append("conv-1", RecordRole.USER, "hi")

    with pytest.raises(CollaboratorUnavailable) as exc_info:
        await InferStage(event_log, llm, timeout=0.01).process("conv-1")

    assert isinstance(exc_info.value.cause, asyncio.TimeoutError)
    assert len(event_log.read_ordered("conv-1")) == 1


def test_records_to_turns_maps_roles(event_log: EventLogService):
    event_log.append("conv-1", RecordRole.USER, "a")
    event_log.append("conv-1", RecordRole.SYSTEM, "b")
    turns = records_to_turns(event_log.read_ordered("conv-1"))
    assert turns == [
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "b"},
    ]
