"""
Collaborator interfaces.

The pipeline talks to the language model and to the banking integration only
through these contracts; production clients and test fakes implement them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List

Turn = dict[str, str]


class LanguageModelClient(ABC):
    """Contract for the language-model collaborator."""

    @abstractmethod
    async def infer(
        self, turns: List[Turn], max_tokens: int, temperature: float
    ) -> str:
        """Return the model's reply to an ordered {role, content} turn history."""
        ...


class BankingClient(ABC):
    """Contract for the banking/domain collaborator. Calls may block."""

    @abstractmethod
    def query(self, conversation_id: str, assistant_content: str) -> dict[str, Any]:
        """Return structured account data for the latest assistant reply."""
        ...
