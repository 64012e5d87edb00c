"""Tests for conversation routes."""

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from convoflow.routers.conversations import PROCESSING_STARTED_MESSAGE
from convoflow.routers.utils.dependencies import get_coordinator
from convoflow.schemas.conversation import RecordRole
from convoflow.services.event_log_service import EventLogService


def test_health(client: TestClient):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_post_message_runs_turn(client: TestClient, event_log: EventLogService, llm, bank):
    resp = client.post("/conversations/messages", json={"message": "what is my balance?"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["conversationId"].startswith("conv-")
    assert data["message"] == "reply 1"
    roles = [r.role for r in event_log.read_ordered(data["conversationId"])]
    assert roles == [RecordRole.USER, RecordRole.ASSISTANT, RecordRole.INTEGRATION]
    assert len(bank.calls) == 1


def test_post_message_continues_conversation(client: TestClient, event_log, faker):
    first = client.post("/conversations/messages", json={"message": faker.sentence()})
    cid = first.json()["conversationId"]

    second = client.post(
        "/conversations/messages",
        json={"message": faker.sentence(), "conversationId": cid},
    )

    assert second.status_code == 200
    assert second.json()["conversationId"] == cid
    assert len(event_log.read_ordered(cid)) == 6


def test_post_message_same_request_id_is_idempotent(client: TestClient, event_log, llm):
    body = {"message": "hi", "conversationId": "conv-1", "requestId": "req-1"}
    first = client.post("/conversations/messages", json=body)
    again = client.post("/conversations/messages", json=body)

    assert first.status_code == 200
    assert again.status_code == 200
    assert again.json()["message"] == first.json()["message"]
    assert len(event_log.read_ordered("conv-1")) == 3
    assert len(llm.calls) == 1


def test_post_empty_message_is_400(client: TestClient, event_log):
    resp = client.post("/conversations/messages", json={"message": "", "conversationId": "conv-1"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Message is required"}
    assert event_log.read_ordered("conv-1") == []


def test_post_missing_message_is_400(client: TestClient):
    resp = client.post("/conversations/messages", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Message is required"


def test_malformed_body_is_400(client: TestClient):
    resp = client.post("/conversations/messages", json=["not", "an", "object"])
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request body"}


def test_post_during_open_turn_is_409(client: TestClient, event_log):
    event_log.append("conv-1", RecordRole.USER, "waiting")

    resp = client.post(
        "/conversations/messages", json={"message": "again", "conversationId": "conv-1"}
    )

    assert resp.status_code == 409
    assert "turn in progress" in resp.json()["error"]


def test_collaborator_outage_is_503(client: TestClient, event_log, llm):
    llm.failures = 10

    resp = client.post(
        "/conversations/messages", json={"message": "hi", "conversationId": "conv-1"}
    )

    assert resp.status_code == 503
    assert "infer" in resp.json()["error"]
    assert [r.role for r in event_log.read_ordered("conv-1")] == [RecordRole.USER]


def test_unexpected_error_is_500(app, client: TestClient):
    coordinator = MagicMock()
    coordinator.handle_message = AsyncMock(side_effect=RuntimeError("boom"))
    app.dependency_overrides[get_coordinator] = lambda: coordinator

    resp = client.post("/conversations/messages", json={"message": "hi"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_background_mode_enqueues_rest_of_turn(
    client: TestClient, event_log, llm, monkeypatch
):
    monkeypatch.setenv("PIPELINE_MODE", "background")

    with patch(
        "convoflow.routers.conversations.advance_conversation_task"
    ) as mock_task:
        resp = client.post(
            "/conversations/messages", json={"message": "hi", "conversationId": "conv-1"}
        )

    assert resp.status_code == 200
    assert resp.json() == {
        "conversationId": "conv-1",
        "message": PROCESSING_STARTED_MESSAGE,
    }
    mock_task.delay.assert_called_once_with("conv-1")
    assert [r.role for r in event_log.read_ordered("conv-1")] == [RecordRole.USER]
    assert llm.calls == []


def test_get_conversation(client: TestClient, event_log):
    event_log.append("conv-1", RecordRole.USER, "hi")
    event_log.append("conv-1", RecordRole.ASSISTANT, "hello")

    resp = client.get("/conversations/conv-1")

    assert resp.status_code == 200
    data = resp.json()
    assert data["conversationId"] == "conv-1"
    assert data["state"] == "awaiting_integration"
    assert [m["payload"] for m in data["messages"]] == ["hi", "hello"]


def test_get_unknown_conversation_is_empty(client: TestClient):
    resp = client.get("/conversations/conv-unknown")
    assert resp.status_code == 200
    assert resp.json()["state"] == "empty"
    assert resp.json()["messages"] == []


def test_advance_conversation(client: TestClient, event_log, llm):
    event_log.append("conv-1", RecordRole.USER, "hi")

    resp = client.post("/conversations/conv-1/advance")

    assert resp.status_code == 200
    data = resp.json()
    assert data["conversationId"] == "conv-1"
    assert data["reply"] == "reply 1"
    assert data["view"]["state"] == "complete"
    assert len(data["view"]["messages"]) == 3


def test_list_conversations(client: TestClient, event_log):
    event_log.append("conv-1", RecordRole.USER, "hi")
    event_log.append("conv-2", RecordRole.USER, "hello")

    resp = client.get("/conversations")

    assert resp.status_code == 200
    assert sorted(resp.json()["items"]) == ["conv-1", "conv-2"]

    limited = client.get("/conversations", params={"limit": 1})
    assert len(limited.json()["items"]) == 1
