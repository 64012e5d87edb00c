"""
PipelineCoordinator: drives a conversation through its stages.

The coordinator is the only component that hands off from one stage to the
next. It derives the conversation's state from the log, dispatches the stage
that state calls for, retries retriable failures with backoff and stops when
the turn is complete. Work on one conversation is serialized by a
per-conversation lock; other conversations proceed in parallel.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from convoflow.adapters.base import BankingClient, LanguageModelClient
from convoflow.config import Settings, get_settings
from convoflow.core.locks import ConversationLocks
from convoflow.core.outcomes import Appended, Rejected, StageOutcome, Terminal
from convoflow.core.state_machine import (
    NEXT_STAGE,
    Stage,
    derive_state,
    is_turn_open,
    transition,
)
from convoflow.exceptions import (
    PipelineError,
    PipelineFailed,
    PipelineValidationError,
    StateViolation,
)
from convoflow.infra.logging_config import get_logger
from convoflow.schemas.conversation import (
    ConversationState,
    ConversationView,
    Record,
    RecordRole,
)
from convoflow.services.event_log_service import EventLogService
from convoflow.stages import (
    FormatStage,
    InferStage,
    IngestInput,
    IngestStage,
    IntegrateStage,
    StageProcessor,
)
from convoflow.stages.ingest import mint_conversation_id

logger = get_logger("coordinator")

T = TypeVar("T")

# Role written by the stages that follow Ingest; used to recognize an append
# that committed before its call failed. Ingest replays through its
# idempotency key instead.
_PRODUCED_ROLE: Dict[Stage, RecordRole] = {
    Stage.INFER: RecordRole.ASSISTANT,
    Stage.INTEGRATE: RecordRole.INTEGRATION,
}


@dataclass(frozen=True)
class PipelineResult:
    conversation_id: str
    view: ConversationView
    appended: List[Record] = field(default_factory=list)

    @property
    def reply(self) -> Optional[str]:
        """Assistant reply produced by this run, else the latest one on record."""
        for record in reversed(self.appended):
            if record.role == RecordRole.ASSISTANT:
                return record.payload
        for entry in reversed(self.view.messages):
            if entry.role == RecordRole.ASSISTANT:
                return entry.payload
        return None


class PipelineCoordinator:
    def __init__(
        self,
        event_log: EventLogService,
        llm: LanguageModelClient,
        bank: BankingClient,
        locks: Optional[ConversationLocks] = None,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        timeout: float = 30.0,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._event_log = event_log
        self._locks = locks if locks is not None else ConversationLocks()
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._timeout = timeout
        self._sleep = sleep
        self._stages: Dict[Stage, StageProcessor] = {
            Stage.INGEST: IngestStage(event_log, timeout=timeout),
            Stage.INFER: InferStage(
                event_log,
                llm,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=timeout,
            ),
            Stage.INTEGRATE: IntegrateStage(event_log, bank, timeout=timeout),
            Stage.FORMAT: FormatStage(event_log, timeout=timeout),
        }

    @classmethod
    def from_settings(
        cls,
        event_log: EventLogService,
        llm: LanguageModelClient,
        bank: BankingClient,
        locks: Optional[ConversationLocks] = None,
        settings: Optional[Settings] = None,
    ) -> "PipelineCoordinator":
        settings = settings or get_settings()
        return cls(
            event_log,
            llm,
            bank,
            locks=locks,
            max_attempts=settings.pipeline_max_attempts,
            backoff_seconds=settings.pipeline_backoff_seconds,
            timeout=settings.collaborator_timeout_seconds,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )

    async def handle_message(
        self,
        message: Optional[str],
        conversation_id: Optional[str] = None,
        request_id: Optional[str] = None,
        hand_off: bool = True,
    ) -> PipelineResult:
        """
        Ingest a user message and, unless hand_off is False, run the turn to completion.

        Args:
            message: Raw user text.
            conversation_id: Existing conversation; a new one is minted if absent.
            request_id: Idempotency key for the User record. Retries of the
                same call with the same key never append twice.
            hand_off: Run Infer and Integrate after Ingest. False leaves the
                turn open for a background worker.

        Returns:
            PipelineResult with the formatted conversation.

        Raises:
            PipelineValidationError: empty message.
            StateViolation: a previous turn of the conversation is still open.
            PipelineFailed: a retriable failure outlasted the retry budget.
        """
        conversation_id = conversation_id or mint_conversation_id()
        ingest_input = IngestInput(
            message=message, request_id=request_id or uuid.uuid4().hex
        )
        async with self._locks.hold(conversation_id):
            outcome = await self._dispatch(conversation_id, Stage.INGEST, ingest_input)
            appended = [outcome.record]
            logger.info(
                "Ingested conversation=%s sequence=%s",
                conversation_id,
                outcome.record.sequence,
            )
            if not hand_off:
                return await self._finish(conversation_id, appended)
            return await self._drive(conversation_id, appended)

    async def advance(self, conversation_id: str) -> PipelineResult:
        """
        Resume a conversation from the state its log is in.

        Stages whose records already exist are not run again, so this is safe
        after a crash or a cancelled request.
        """
        async with self._locks.hold(conversation_id):
            return await self._drive(conversation_id, [])

    async def run_stage(
        self,
        conversation_id: str,
        stage: Stage,
        triggering_input: Any = None,
    ) -> StageOutcome:
        """Run one stage under the conversation lock, without hand-off."""
        async with self._locks.hold(conversation_id):
            return await self._dispatch(conversation_id, stage, triggering_input)

    async def view(self, conversation_id: str) -> ConversationView:
        outcome = await self._dispatch(conversation_id, Stage.FORMAT)
        return outcome.result

    async def _drive(
        self, conversation_id: str, appended: List[Record]
    ) -> PipelineResult:
        while True:
            state = await self._current_state(conversation_id)
            if not is_turn_open(state):
                break
            stage = NEXT_STAGE[state]
            logger.info(
                "Hand-off conversation=%s state=%s stage=%s",
                conversation_id,
                state.value,
                stage.value,
            )
            outcome = await self._dispatch(conversation_id, stage)
            self._check_transition(conversation_id, state, stage, outcome.record)
            appended.append(outcome.record)
        return await self._finish(conversation_id, appended)

    def _check_transition(
        self,
        conversation_id: str,
        state: ConversationState,
        stage: Stage,
        record: Record,
    ) -> None:
        expected = transition(state, stage)
        actual = derive_state(record)
        if actual != expected:
            raise StateViolation(
                f"Stage {stage.value} moved {state.value} to {actual.value}, "
                f"expected {expected.value}",
                conversation_id=conversation_id,
                stage=stage.value,
            )

    async def _finish(
        self, conversation_id: str, appended: List[Record]
    ) -> PipelineResult:
        view = await self.view(conversation_id)
        return PipelineResult(conversation_id=conversation_id, view=view, appended=appended)

    async def _current_state(self, conversation_id: str) -> ConversationState:
        async def read(attempt: int) -> ConversationState:
            latest = await asyncio.to_thread(self._event_log.read_latest, conversation_id)
            return derive_state(latest)

        return await self._with_retry(conversation_id, None, read)

    async def _dispatch(
        self,
        conversation_id: str,
        stage: Stage,
        triggering_input: Any = None,
    ) -> Any:
        processor = self._stages[stage]

        async def attempt_stage(attempt: int) -> StageOutcome:
            if attempt > 1:
                committed = await self._committed_earlier(conversation_id, stage)
                if committed is not None:
                    logger.info(
                        "Stage %s already committed for conversation=%s; skipping re-append",
                        stage.value,
                        conversation_id,
                    )
                    return Appended(committed)
            return await processor.process(
                conversation_id, triggering_input, timeout=self._timeout
            )

        outcome = await self._with_retry(conversation_id, stage, attempt_stage)
        if isinstance(outcome, Rejected):
            error_cls = StateViolation if outcome.out_of_turn else PipelineValidationError
            logger.warning(
                "Stage %s rejected for conversation=%s: %s",
                stage.value,
                conversation_id,
                outcome.reason,
            )
            raise error_cls(
                outcome.reason, conversation_id=conversation_id, stage=stage.value
            )
        if stage is Stage.FORMAT and not isinstance(outcome, Terminal):
            raise StateViolation(
                "Format must end the pipeline",
                conversation_id=conversation_id,
                stage=stage.value,
            )
        return outcome

    async def _committed_earlier(
        self, conversation_id: str, stage: Stage
    ) -> Optional[Record]:
        """The stage's record, if a failed attempt had already appended it."""
        role = _PRODUCED_ROLE.get(stage)
        if role is None:
            return None
        latest = await asyncio.to_thread(self._event_log.read_latest, conversation_id)
        if latest is not None and latest.role == role:
            return latest
        return None

    async def _with_retry(
        self,
        conversation_id: str,
        stage: Optional[Stage],
        attempt_fn: Callable[[int], Awaitable[T]],
    ) -> T:
        stage_name = stage.value if stage is not None else "read"
        attempt = 0
        while True:
            attempt += 1
            try:
                return await attempt_fn(attempt)
            except PipelineError as e:
                e.conversation_id = e.conversation_id or conversation_id
                e.stage = e.stage or stage_name
                if not e.retriable:
                    logger.warning(
                        "Pipeline error (not retried): %s %s", e.message, e.context()
                    )
                    raise
                if attempt >= self._max_attempts:
                    logger.error(
                        "Pipeline giving up after %d attempts: %s %s",
                        attempt,
                        e.message,
                        e.context(),
                    )
                    raise PipelineFailed(
                        f"Stage {stage_name} failed after {attempt} attempts",
                        attempts=attempt,
                        conversation_id=conversation_id,
                        stage=stage_name,
                        cause=e,
                    ) from e
                delay = self._backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Retrying %s in %.2fs (attempt %d/%d): %s %s",
                    stage_name,
                    delay,
                    attempt,
                    self._max_attempts,
                    e.message,
                    e.context(),
                )
                await self._sleep(delay)
