"""
Conversation contracts: records, derived state, client-facing views and the
HTTP request/response bodies.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecordRole(str, Enum):
    """Who produced a record. Determines which stage may consume it next."""

    USER = "user"
    ASSISTANT = "assistant"
    INTEGRATION = "integration"
    SYSTEM = "system"


class ConversationState(str, Enum):
    """Pipeline position of a conversation, derived from its latest record."""

    EMPTY = "empty"
    AWAITING_INFERENCE = "awaiting_inference"
    AWAITING_INTEGRATION = "awaiting_integration"
    COMPLETE = "complete"


class Record(BaseModel):
    """Immutable log entry as seen outside the storage layer."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    conversation_id: str
    sequence: int
    previous_sequence: Optional[int] = None
    role: RecordRole
    payload: str
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None


class ConversationEntry(BaseModel):
    """One ordered entry of the assembled conversation."""

    model_config = ConfigDict(frozen=True)

    role: RecordRole
    payload: str
    sequence: int


class ConversationView(BaseModel):
    """Read-only projection of a conversation's full ordered history."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    state: ConversationState
    messages: list[ConversationEntry] = Field(default_factory=list)


class MessageRequest(BaseModel):
    """Inbound user message. ``message`` is validated by the Ingest stage."""

    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    request_id: Optional[str] = Field(default=None, alias="requestId")


class MessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    message: str


class AdvanceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    reply: Optional[str] = None
    view: ConversationView


class ConversationList(BaseModel):
    items: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    details: Optional[dict[str, Any]] = None
