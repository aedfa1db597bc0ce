"""Model service abstract base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from cartpilot.memory.models import FunctionCallRequest, TurnEntry

ChunkSink = Callable[[str], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class ModelReply:
    """One model output: plain text or a function call request."""

    text: str | None = None
    function_call: FunctionCallRequest | None = None


class ModelService(ABC):
    """Opaque request/response language model with optional streaming.

    Implementations raise ``ModelTransportError`` when the service cannot
    produce a reply; they never append to the turn log themselves.
    """

    @abstractmethod
    async def send(
        self,
        history: Sequence[TurnEntry],
        user_text: str,
        context: str | None = None,
        on_chunk: ChunkSink | None = None,
    ) -> ModelReply:
        """Reply to a new user message given the prior history."""

    @abstractmethod
    async def continue_(self, history: Sequence[TurnEntry]) -> ModelReply:
        """Produce the next output after a function result was appended."""

    def describe(self) -> str:
        """Human-readable summary of the backing model."""

        return type(self).__name__
