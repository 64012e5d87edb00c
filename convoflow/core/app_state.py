from __future__ import annotations

from typing import Optional

from convoflow.adapters.bank import build_banking_client_from_env
from convoflow.adapters.base import BankingClient, LanguageModelClient
from convoflow.core.locks import ConversationLocks
from convoflow.workers.llm import build_llm_runner_from_env


class AppState:
    """Process-wide collaborators shared by API requests."""

    def __init__(self) -> None:
        self.locks = ConversationLocks()
        self._llm: Optional[LanguageModelClient] = None
        self._bank: Optional[BankingClient] = None

    @property
    def llm(self) -> LanguageModelClient:
        if self._llm is None:
            self._llm = build_llm_runner_from_env()
        return self._llm

    @property
    def bank(self) -> BankingClient:
        if self._bank is None:
            self._bank = build_banking_client_from_env()
        return self._bank


state = AppState()
