"""Base classes and types for executable functions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Generic, TypeVar

from cartpilot.capabilities.base import CapabilityBindings
from cartpilot.capabilities.models import DeliveryAddress

from .schemas import FunctionArgs

ProgressSink = Callable[[str], Awaitable[None]]

ArgsT = TypeVar("ArgsT", bound=FunctionArgs)


@dataclass(frozen=True, slots=True)
class FunctionResult:
    """Outcome of one routed call: ``Success{payload}`` or ``Failure{reason}``."""

    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def ok(cls, payload: dict[str, Any] | None = None) -> FunctionResult:
        return cls(success=True, payload=payload or {})

    @classmethod
    def fail(cls, reason: str, **extra: Any) -> FunctionResult:
        return cls(success=False, payload=dict(extra), error=reason)

    def to_payload(self) -> dict[str, Any]:
        """Normalized shape appended to the turn log and shown to the model."""

        if self.success:
            return self.payload
        return {**self.payload, "success": False, "error": self.error or "Unknown error occurred"}


@dataclass(slots=True)
class ExecutionContext:
    """Capability bindings plus read-only facts for one turn sequence."""

    capabilities: CapabilityBindings
    current_address: DeliveryAddress | None = None
    progress: ProgressSink | None = None

    async def report(self, message: str) -> None:
        if self.progress is not None:
            await self.progress(message)


class Function(ABC, Generic[ArgsT]):
    """Executable implementation of one catalogue entry."""

    name: ClassVar[str]

    @abstractmethod
    async def run(self, args: ArgsT, context: ExecutionContext) -> FunctionResult:
        """Execute the function with validated arguments."""

    def describe(self) -> str:
        return self.__doc__ or self.name
