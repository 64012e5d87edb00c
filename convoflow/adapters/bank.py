"""
Banking collaborator clients.

HttpBankingClient posts the latest assistant reply to the configured banking
integration. StaticBankingClient returns placeholder account data and is used
when no integration URL is configured.
"""

from __future__ import annotations

import copy
from typing import Any, Optional

import requests

from convoflow.adapters.base import BankingClient
from convoflow.config import get_settings
from convoflow.infra.logging_config import get_logger

logger = get_logger("bank_client")

QUERY_PATH = "/query"
TIMEOUT_SECONDS = 30

PLACEHOLDER_RESPONSE: dict[str, Any] = {
    "status": "success",
    "data": {
        "accountBalance": 1000.00,
        "lastTransaction": "2024-01-01",
    },
}


class BankingRequestError(RuntimeError):
    """The banking integration answered with an error or an unusable body."""


class HttpBankingClient(BankingClient):
    """Queries the banking integration over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._session = session or requests.Session()

    def query(self, conversation_id: str, assistant_content: str) -> dict[str, Any]:
        """
        POST the assistant reply and return the integration's JSON object.

        Raises:
            BankingRequestError: non-200 status, invalid JSON, or a non-object body.
            requests.RequestException: transport failure.
        """
        url = f"{self._base_url}{QUERY_PATH}"
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        body = {"conversationId": conversation_id, "message": assistant_content}
        logger.info("Querying banking integration for conversation=%s", conversation_id)

        resp = self._session.post(url, json=body, headers=headers, timeout=self._timeout)
        if resp.status_code != 200:
            raise BankingRequestError(
                f"HTTP {resp.status_code}: {resp.text[:500] if resp.text else 'no body'}"
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise BankingRequestError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise BankingRequestError("Banking response must be a JSON object")
        return data


class StaticBankingClient(BankingClient):
    """Returns fixed placeholder account data."""

    def __init__(self, response: Optional[dict[str, Any]] = None) -> None:
        self._response = response or PLACEHOLDER_RESPONSE

    def query(self, conversation_id: str, assistant_content: str) -> dict[str, Any]:
        return copy.deepcopy(self._response)


def build_banking_client_from_env() -> BankingClient:
    settings = get_settings()
    if not settings.bank_api_url:
        logger.warning(
            "BANK_API_URL is not set; using placeholder banking data."
        )
        return StaticBankingClient()
    return HttpBankingClient(
        base_url=settings.bank_api_url,
        api_token=settings.bank_api_token,
        timeout=settings.collaborator_timeout_seconds,
    )
