"""Dataclasses representing the conversation turn log."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Author of a turn entry."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class FunctionCallRequest:
    """A model-issued request to invoke a named function.

    ``arguments`` is the raw payload exactly as produced by the model; it is
    parsed and validated by the function router at dispatch time.
    """

    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the argument payload, raising ``ValueError`` when it is not a JSON object."""

        raw = self.arguments.strip() if self.arguments else ""
        if not raw:
            return {}
        value = json.loads(raw)
        if not isinstance(value, dict):
            raise ValueError("function arguments must be a JSON object")
        return value

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "arguments": self.arguments}


@dataclass(frozen=True, slots=True)
class TurnEntry:
    """Single immutable record in the append-only turn log.

    An entry carries exactly one of: plain ``content``, a ``function_call``
    (assistant entries only) or a ``function_result`` (function entries only).
    """

    conversation_id: str
    role: Role
    content: str | None = None
    function_call: FunctionCallRequest | None = None
    function_result: Any = None
    name: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

        if self.function_call is not None:
            if self.role is not Role.ASSISTANT:
                raise ValueError("only assistant entries may carry a function call")
            if self.content:
                raise ValueError("a function call entry cannot also carry content")
        if self.role is Role.FUNCTION:
            if not self.name:
                raise ValueError("function result entries must name the function")
            if self.content is not None:
                raise ValueError("function result entries carry a result, not content")
        elif self.function_result is not None:
            raise ValueError("only function entries may carry a function result")

    @property
    def is_function_call(self) -> bool:
        return self.function_call is not None

    @property
    def is_function_result(self) -> bool:
        return self.role is Role.FUNCTION

    def result_text(self) -> str:
        """Serialized function result as sent back to the model."""

        return json.dumps(self.function_result, default=str)


def user_entry(conversation_id: str, text: str) -> TurnEntry:
    return TurnEntry(conversation_id=conversation_id, role=Role.USER, content=text)


def system_entry(conversation_id: str, text: str) -> TurnEntry:
    return TurnEntry(conversation_id=conversation_id, role=Role.SYSTEM, content=text)


def assistant_entry(
    conversation_id: str,
    text: str | None = None,
    function_call: FunctionCallRequest | None = None,
) -> TurnEntry:
    if function_call is not None:
        return TurnEntry(conversation_id=conversation_id, role=Role.ASSISTANT, function_call=function_call)
    return TurnEntry(conversation_id=conversation_id, role=Role.ASSISTANT, content=text or "")


def function_result_entry(conversation_id: str, name: str, result: Any) -> TurnEntry:
    return TurnEntry(
        conversation_id=conversation_id,
        role=Role.FUNCTION,
        name=name,
        function_result=result,
    )
