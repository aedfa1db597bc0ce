from __future__ import annotations

import json
import os
from collections import deque
from pathlib import Path

import pytest

os.environ.setdefault("TURN_LOG_BACKEND", "memory")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from cartpilot.capabilities import demo_bindings  # noqa: E402
from cartpilot.core.metrics import MetricsCollector  # noqa: E402
from cartpilot.functions import FunctionRouter, default_functions  # noqa: E402
from cartpilot.memory.models import FunctionCallRequest  # noqa: E402
from cartpilot.memory.store import InMemoryTurnLogStore  # noqa: E402
from cartpilot.model.base import ModelReply, ModelService  # noqa: E402
from cartpilot.orchestrator.orchestrator import TurnOrchestrator  # noqa: E402
from cartpilot.orchestrator.session import SessionRegistry  # noqa: E402


class ScriptedModel(ModelService):
    """Model double replaying canned replies; exceptions in the script are raised."""

    def __init__(self, replies=(), *, chunks=()) -> None:
        self.replies = deque(replies)
        self.chunks = list(chunks)
        self.sent: list[tuple] = []
        self.continued: list[list] = []

    async def send(self, history, user_text, context=None, on_chunk=None):
        self.sent.append((list(history), user_text, context))
        if on_chunk is not None:
            for chunk in self.chunks:
                await on_chunk(chunk)
        return self._next()

    async def continue_(self, history):
        self.continued.append(list(history))
        return self._next()

    def _next(self) -> ModelReply:
        if not self.replies:
            return ModelReply(text="Anything else?")
        reply = self.replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        return reply


def call(name: str, raw: str | None = None, **arguments) -> ModelReply:
    return ModelReply(function_call=FunctionCallRequest(name=name, arguments=raw if raw is not None else json.dumps(arguments)))


def text(value: str) -> ModelReply:
    return ModelReply(text=value)


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def search_results(fixtures_dir: Path) -> list[dict]:
    return json.loads((fixtures_dir / "search_results.json").read_text(encoding="utf-8"))


@pytest.fixture
def reply():
    """Builders for scripted model replies."""

    return type("Replies", (), {"call": staticmethod(call), "text": staticmethod(text)})


@pytest.fixture
def scripted_model():
    return ScriptedModel


@pytest.fixture
def bindings():
    return demo_bindings()


@pytest.fixture
def turn_store():
    return InMemoryTurnLogStore()


@pytest.fixture
def registry(turn_store, bindings):
    return SessionRegistry(turn_store, bindings)


@pytest.fixture
def session(registry):
    return registry.get_or_create("conv-test")


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def make_orchestrator(metrics):
    def factory(model: ModelService, **kwargs) -> TurnOrchestrator:
        router = kwargs.pop("router", None) or FunctionRouter(default_functions(), timeout=2.0)
        return TurnOrchestrator(model, router, metrics=metrics, **kwargs)

    return factory
