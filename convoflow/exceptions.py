"""
Error taxonomy for the conversation pipeline.

Every error carries the conversation id, the stage it came from and the
underlying cause so it can be logged and surfaced without losing context.
``retriable`` tells the coordinator whether a retry may succeed.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for pipeline failures."""

    retriable = False

    def __init__(
        self,
        message: str,
        *,
        conversation_id: Optional[str] = None,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.conversation_id = conversation_id
        self.stage = stage
        self.cause = cause

    def context(self) -> dict[str, Optional[str]]:
        return {
            "conversation_id": self.conversation_id,
            "stage": self.stage,
            "cause": repr(self.cause) if self.cause is not None else None,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.conversation_id:
            parts.append(f"conversation_id={self.conversation_id}")
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.cause is not None:
            parts.append(f"cause={self.cause!r}")
        return " ".join(parts)


class PipelineValidationError(PipelineError):
    """Bad or missing input."""


class StateViolation(PipelineError):
    """A stage was invoked out of turn."""


class AppendConflict(StateViolation):
    """The log moved under an append (concurrent writer)."""


class CollaboratorUnavailable(PipelineError):
    """Language model or banking call failed or timed out."""

    retriable = True


class StorageUnavailable(PipelineError):
    """Event log read or write failed."""

    retriable = True


class PipelineFailed(PipelineError):
    """A retriable failure persisted past the attempt bound."""

    def __init__(self, message: str, *, attempts: int, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
