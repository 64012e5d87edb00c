"""Task for driving a conversation's open turn in the background."""

from __future__ import annotations

import asyncio
from typing import Optional

from convoflow.adapters.bank import build_banking_client_from_env
from convoflow.config import get_settings
from convoflow.core.coordinator import PipelineCoordinator, PipelineResult
from convoflow.db import db_manager
from convoflow.exceptions import PipelineFailed, PipelineValidationError, StateViolation
from convoflow.infra.celery_app import celery_app
from convoflow.infra.logging_config import get_logger
from convoflow.services.event_log_service import EventLogService
from convoflow.workers.llm import build_llm_runner_from_env

logger = get_logger("pipeline_task")


async def _advance(conversation_id: str) -> PipelineResult:
    settings = get_settings()
    with db_manager.db_session() as db:
        coordinator = PipelineCoordinator.from_settings(
            EventLogService(db, append_attempts=settings.event_log_append_attempts),
            build_llm_runner_from_env(),
            build_banking_client_from_env(),
            settings=settings,
        )
        return await coordinator.advance(conversation_id)


@celery_app.task(
    name="convoflow.tasks.pipeline_task.advance_conversation_task",
    autoretry_for=(PipelineFailed,),
    retry_backoff=True,
    max_retries=3,
)
def advance_conversation_task(conversation_id: str) -> Optional[str]:
    """
    Resume the conversation's open turn and run it to completion.

    Runs via Celery so the HTTP request can return right after Ingest.
    PipelineFailed is retried by Celery; state or validation errors are
    permanent and end the task.

    Args:
        conversation_id: Conversation to advance.

    Returns:
        Optional[str]: The conversation's resulting state, or None if the
        conversation could not be advanced.
    """
    try:
        result = asyncio.run(_advance(conversation_id))
    except (StateViolation, PipelineValidationError) as e:
        logger.warning("Conversation %s not advanced: %s", conversation_id, e)
        return None

    logger.info(
        "Conversation %s advanced to %s (%d new records)",
        conversation_id,
        result.view.state.value,
        len(result.appended),
    )
    return result.view.state.value
