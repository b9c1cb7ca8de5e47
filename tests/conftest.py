"""Shared test fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from desktop_agent.agent.pipeline import Agent
from desktop_agent.agent.session import Session
from desktop_agent.execution import ExecutionResult


class StaticCredentials:
    """Credential provider returning a fixed value."""

    def __init__(self, key: str | None = "sk-test") -> None:
        self.key = key

    def get_credential(self) -> str | None:
        return self.key


@pytest.fixture
def fake_client() -> MagicMock:
    """A ModelClient stand-in whose ``complete`` is an AsyncMock."""
    client = MagicMock()
    client.complete = AsyncMock(return_value="")
    return client


@pytest.fixture
def executor() -> MagicMock:
    ex = MagicMock()
    ex.execute = AsyncMock(return_value=ExecutionResult(executed=True))
    return ex


@pytest.fixture
def agent(fake_client, executor) -> Agent:
    return Agent(
        credentials=StaticCredentials(),
        executor=executor,
        client_factory=lambda api_key, model: fake_client,
    )


@pytest.fixture
def session() -> Session:
    return Session()
