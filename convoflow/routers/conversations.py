"""
Conversation routes.

Clients POST a user message; the coordinator ingests it and, unless the
pipeline runs in the background, drives the turn to completion before
answering. Pipeline errors are translated to HTTP responses in main.py.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from convoflow.config import get_settings
from convoflow.core.coordinator import PipelineCoordinator
from convoflow.routers.utils.dependencies import get_coordinator, get_event_log
from convoflow.schemas.conversation import (
    AdvanceResponse,
    ConversationList,
    ConversationView,
    MessageRequest,
    MessageResponse,
)
from convoflow.services.conversation_view_service import ConversationViewService
from convoflow.services.event_log_service import EventLogService
from convoflow.tasks.pipeline_task import advance_conversation_task

logger = logging.getLogger(__name__)

PROCESSING_STARTED_MESSAGE = "Message received and processing started"

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("/messages", response_model=MessageResponse)
async def post_message(
    body: MessageRequest,
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    """
    Ingest a user message. Inline mode returns the assistant reply; background
    mode enqueues the rest of the turn and returns immediately.
    """
    background = get_settings().runs_in_background
    result = await coordinator.handle_message(
        body.message,
        conversation_id=body.conversation_id,
        request_id=body.request_id,
        hand_off=not background,
    )
    if background:
        advance_conversation_task.delay(result.conversation_id)
        logger.info("Enqueued pipeline for conversation=%s", result.conversation_id)
        return MessageResponse(
            conversation_id=result.conversation_id,
            message=PROCESSING_STARTED_MESSAGE,
        )
    return MessageResponse(
        conversation_id=result.conversation_id,
        message=result.reply or "",
    )


@router.get("", response_model=ConversationList)
def list_conversations(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    event_log: EventLogService = Depends(get_event_log),
) -> ConversationList:
    """List conversation ids, most recently active first."""
    return ConversationList(items=event_log.list_conversation_ids(skip=skip, limit=limit))


@router.get("/{conversation_id}", response_model=ConversationView)
def get_conversation(
    conversation_id: str,
    event_log: EventLogService = Depends(get_event_log),
) -> ConversationView:
    """Full ordered history. Unknown conversations have no messages."""
    return ConversationViewService(event_log).get_view(conversation_id)


@router.post("/{conversation_id}/advance", response_model=AdvanceResponse)
async def advance_conversation(
    conversation_id: str,
    coordinator: PipelineCoordinator = Depends(get_coordinator),
) -> AdvanceResponse:
    """Resume a conversation whose turn was left open."""
    result = await coordinator.advance(conversation_id)
    return AdvanceResponse(
        conversation_id=result.conversation_id,
        reply=result.reply,
        view=result.view,
    )
