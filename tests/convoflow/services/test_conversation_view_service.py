"""Tests for the conversation projection."""

from convoflow.schemas.conversation import ConversationState, RecordRole
from convoflow.services.conversation_view_service import ConversationViewService, project
from convoflow.services.event_log_service import EventLogService


def test_project_empty_conversation():
    view = project("conv-1", [])
    assert view.conversation_id == "conv-1"
    assert view.state == ConversationState.EMPTY
    assert view.messages == []


def test_get_view_orders_messages_and_derives_state(event_log: EventLogService):
    event_log.append("conv-1", RecordRole.USER, "hello")
    event_log.append("conv-1", RecordRole.ASSISTANT, "hi")

    view = ConversationViewService(event_log).get_view("conv-1")
    assert view.state == ConversationState.AWAITING_INTEGRATION
    assert [m.payload for m in view.messages] == ["hello", "hi"]
    assert view.messages[0].sequence < view.messages[1].sequence


def test_view_serializes_with_camel_case_id(event_log: EventLogService):
    event_log.append("conv-1", RecordRole.USER, "hello")
    view = ConversationViewService(event_log).get_view("conv-1")
    dumped = view.model_dump(by_alias=True, mode="json")
    assert dumped["conversationId"] == "conv-1"
    assert dumped["state"] == "awaiting_inference"
    assert dumped["messages"][0]["role"] == "user"
