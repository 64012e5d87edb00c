import asyncio
import os
from typing import Any, List, Optional

os.environ["ENV"] = "test"
os.environ.setdefault("PIPELINE_BACKOFF_SECONDS", "0")
os.environ.setdefault("PIPELINE_MODE", "inline")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from convoflow.adapters.base import BankingClient, LanguageModelClient, Turn
from convoflow.core.coordinator import PipelineCoordinator
from convoflow.core.locks import ConversationLocks
from convoflow.db import Base, db_manager, get_db
from convoflow.main import create_app
from convoflow.routers.utils.dependencies import get_banking_client, get_llm_client
from convoflow.services.event_log_service import EventLogService
import convoflow.models  # noqa: F401

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
db_manager.bind(engine)


class FakeLLM(LanguageModelClient):
    """Records every call. Fails the first ``failures`` calls."""

    def __init__(self, failures: int = 0, delay: float = 0.0, error: Optional[Exception] = None):
        self.calls: List[List[Turn]] = []
        self.failures = failures
        self.delay = delay
        self.error = error or RuntimeError("model unavailable")

    async def infer(self, turns: List[Turn], max_tokens: int, temperature: float) -> str:
        self.calls.append(list(turns))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return f"reply {len(self.calls)}"


class FakeBank(BankingClient):
    def __init__(self, failures: int = 0, response: Optional[dict] = None):
        self.calls: List[tuple] = []
        self.failures = failures
        self.response = response or {"status": "success", "data": {"accountBalance": 250.0}}

    def query(self, conversation_id: str, assistant_content: str) -> dict[str, Any]:
        self.calls.append((conversation_id, assistant_content))
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("bank down")
        return dict(self.response)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def event_log(db) -> EventLogService:
    return EventLogService(db)


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def bank() -> FakeBank:
    return FakeBank()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def coordinator(event_log, llm, bank, sleep) -> PipelineCoordinator:
    return PipelineCoordinator(
        event_log,
        llm,
        bank,
        locks=ConversationLocks(),
        max_attempts=3,
        backoff_seconds=0.5,
        timeout=1.0,
        sleep=sleep,
    )


@pytest.fixture
def app(db, llm, bank):
    app = create_app(testing=True)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_client] = lambda: llm
    app.dependency_overrides[get_banking_client] = lambda: bank
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
