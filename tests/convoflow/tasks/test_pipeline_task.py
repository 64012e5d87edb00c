"""Tests for the background pipeline task."""

from unittest.mock import patch

from convoflow.schemas.conversation import RecordRole
from convoflow.services.event_log_service import EventLogService
from convoflow.tasks.pipeline_task import advance_conversation_task


def test_task_completes_open_turn(event_log: EventLogService, llm, bank):
    event_log.append("conv-1", RecordRole.USER, "hi")

    with patch(
        "convoflow.tasks.pipeline_task.build_llm_runner_from_env", return_value=llm
    ), patch(
        "convoflow.tasks.pipeline_task.build_banking_client_from_env", return_value=bank
    ):
        state = advance_conversation_task("conv-1")

    assert state == "complete"
    assert [r.role for r in event_log.read_ordered("conv-1")] == [
        RecordRole.USER,
        RecordRole.ASSISTANT,
        RecordRole.INTEGRATION,
    ]


def test_task_on_finished_conversation_does_nothing(event_log: EventLogService, llm, bank):
    event_log.append("conv-1", RecordRole.USER, "hi")
    event_log.append("conv-1", RecordRole.ASSISTANT, "hello")
    event_log.append("conv-1", RecordRole.INTEGRATION, "{}")

    with patch(
        "convoflow.tasks.pipeline_task.build_llm_runner_from_env", return_value=llm
    ), patch(
        "convoflow.tasks.pipeline_task.build_banking_client_from_env", return_value=bank
    ):
        state = advance_conversation_task("conv-1")

    assert state == "complete"
    assert llm.calls == []
    assert bank.calls == []
