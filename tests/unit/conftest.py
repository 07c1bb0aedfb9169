"""Unit test fixtures (mocks and stubs).

Provides fakes for testing without external dependencies: a controllable
clock, an in-memory counter store and a scripted model client.
"""

from decimal import Decimal
from typing import Any, Iterable, Union
from unittest.mock import AsyncMock, MagicMock

import pytest

from reliability_layer.llm.base_client import BaseModelClient, ModelCallResponse
from reliability_layer.persistence.counter_store import InMemoryCounterStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Outcome = Union[BaseException, ModelCallResponse, str]


class ScriptedModelClient(BaseModelClient):
    """
    Model client replaying a per-model script of outcomes.

    Each entry is raised (exception), returned (ModelCallResponse) or turned
    into a response (str content). The last entry of a script repeats.
    """

    def __init__(self, scripts: dict[str, Iterable[Outcome]]):
        self.scripts = {model: list(outcomes) for model, outcomes in scripts.items()}
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    def calls_for(self, model_id: str) -> int:
        return sum(1 for model, _ in self.calls if model == model_id)

    async def invoke(self, model_id: str, payload: Any) -> ModelCallResponse:
        self.calls.append((model_id, payload))
        script = self.scripts.get(model_id) or [RuntimeError(f"no script for {model_id}")]
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return ModelCallResponse(
                content=outcome,
                model_id=model_id,
                input_tokens=10,
                output_tokens=5,
                cost=Decimal("0.01"),
            )
        return outcome

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def scripted_client():
    """Factory fixture for ScriptedModelClient.

    Usage:
        def test_something(scripted_client):
            client = scripted_client({"a": [ModelConnectionError("reset"), "ok"]})
    """
    def _create(scripts: dict[str, Iterable[Outcome]]) -> ScriptedModelClient:
        return ScriptedModelClient(scripts)

    return _create


@pytest.fixture
def mock_async_redis():
    """Mock AsyncRedis client for unit tests (async)."""
    mock = AsyncMock()
    mock.hgetall = AsyncMock(return_value={})
    mock.hdel = AsyncMock(return_value=1)
    mock.delete = AsyncMock(return_value=1)
    mock.eval = AsyncMock(return_value=1)
    mock.aclose = AsyncMock(return_value=None)

    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=None)
    mock.pipeline = MagicMock(return_value=pipe)
    mock.pipe = pipe
    return mock


@pytest.fixture
def ok_response():
    """Factory for successful ModelCallResponse values."""
    def _create(
        model_id: str = "model-a",
        content: Any = "ok",
        input_tokens: int = 10,
        output_tokens: int = 5,
        cost: str = "0.01",
    ) -> ModelCallResponse:
        return ModelCallResponse(
            content=content,
            model_id=model_id,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=Decimal(cost),
        )

    return _create
