"""
Stage processor interface.

A stage turns the current log state into at most one new record and reports
what the coordinator should do next through a StageOutcome. Stages never
retry and never invoke another stage.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Optional, TypeVar

from convoflow.core.outcomes import StageOutcome
from convoflow.core.state_machine import Stage
from convoflow.exceptions import CollaboratorUnavailable, PipelineError
from convoflow.services.event_log_service import EventLogService

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 30.0


class StageProcessor(ABC):
    """Contract for pipeline stages. New stages implement this interface."""

    stage: Stage

    def __init__(
        self,
        event_log: EventLogService,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.event_log = event_log
        self.timeout = timeout

    @abstractmethod
    async def process(
        self,
        conversation_id: Optional[str],
        triggering_input: Any = None,
        timeout: Optional[float] = None,
    ) -> StageOutcome:
        """Run the stage for a conversation. Raise only for retriable failures."""
        ...

    async def call_collaborator(
        self,
        call: Awaitable[T],
        conversation_id: str,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Await an external call under a deadline.

        Timeouts and collaborator exceptions become CollaboratorUnavailable.
        Cancellation propagates untouched.
        """
        deadline = timeout if timeout is not None else self.timeout
        try:
            return await asyncio.wait_for(call, timeout=deadline)
        except asyncio.TimeoutError as e:
            raise CollaboratorUnavailable(
                f"Collaborator call timed out after {deadline}s",
                conversation_id=conversation_id,
                stage=self.stage.value,
                cause=e,
            ) from e
        except PipelineError:
            raise
        except Exception as e:
            raise CollaboratorUnavailable(
                "Collaborator call failed",
                conversation_id=conversation_id,
                stage=self.stage.value,
                cause=e,
            ) from e
