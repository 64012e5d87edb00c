"""Clients for the collaborators the pipeline calls out to."""

from convoflow.adapters.bank import HttpBankingClient, StaticBankingClient
from convoflow.adapters.base import BankingClient, LanguageModelClient

__all__ = [
    "BankingClient",
    "HttpBankingClient",
    "LanguageModelClient",
    "StaticBankingClient",
]
