"""Typed events emitted while a turn sequence runs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, ClassVar, Union

logger = logging.getLogger("cartpilot.orchestrator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class PartialText:
    kind: ClassVar[str] = "partial_text"
    text: str
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class FunctionCallRequested:
    kind: ClassVar[str] = "function_call"
    name: str
    arguments: str
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class FunctionResultEvent:
    kind: ClassVar[str] = "function_result"
    name: str
    success: bool
    result: Any
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    kind: ClassVar[str] = "progress"
    message: str
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class AuthRequired:
    kind: ClassVar[str] = "auth_required"
    function_name: str
    at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class SequenceEnded:
    kind: ClassVar[str] = "sequence_ended"
    stop_reason: str
    reply: str | None = None
    iterations: int = 0
    at: datetime = field(default_factory=_utcnow)


TurnEvent = Union[
    PartialText,
    FunctionCallRequested,
    FunctionResultEvent,
    ProgressUpdate,
    AuthRequired,
    SequenceEnded,
]


def event_to_dict(event: TurnEvent) -> dict[str, Any]:
    payload = asdict(event)
    payload["at"] = event.at.isoformat()
    return {"type": event.kind, **payload}


class TurnEventStream:
    """Bounded single-consumer channel for one sequence's events.

    Iterating the stream yields events until :class:`SequenceEnded` has been
    delivered or the stream is closed.
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue[TurnEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: TurnEvent) -> None:
        """Enqueue without waiting; a full buffer drops its oldest event."""

        if self._closed:
            logger.debug("Dropping %s event published after close", event.kind)
            return
        self._put(event)
        if isinstance(event, SequenceEnded):
            self._closed = True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(None)

    def _put(self, item: TurnEvent | None) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                dropped = self._queue.get_nowait()
                logger.debug("Event buffer full, dropping %s event", getattr(dropped, "kind", "close"))

    def __aiter__(self) -> AsyncIterator[TurnEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[TurnEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
            if isinstance(event, SequenceEnded):
                return
