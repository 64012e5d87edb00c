from fastapi import Depends
from sqlalchemy.orm import Session

from convoflow.adapters.base import BankingClient, LanguageModelClient
from convoflow.config import get_settings
from convoflow.core.app_state import state
from convoflow.core.coordinator import PipelineCoordinator
from convoflow.db import get_db
from convoflow.services.event_log_service import EventLogService


def get_event_log(db: Session = Depends(get_db)) -> EventLogService:
    """FastAPI dependency for the conversation event log."""
    return EventLogService(
        db, append_attempts=get_settings().event_log_append_attempts
    )


def get_llm_client() -> LanguageModelClient:
    return state.llm


def get_banking_client() -> BankingClient:
    return state.bank


def get_coordinator(
    event_log: EventLogService = Depends(get_event_log),
    llm: LanguageModelClient = Depends(get_llm_client),
    bank: BankingClient = Depends(get_banking_client),
) -> PipelineCoordinator:
    """FastAPI dependency for a coordinator sharing the process-wide lock registry."""
    return PipelineCoordinator.from_settings(event_log, llm, bank, locks=state.locks)
