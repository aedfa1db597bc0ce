"""Result types produced by the turn orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cartpilot.memory.models import FunctionCallRequest


class StopReason(str, Enum):
    """Why a turn sequence ended."""

    COMPLETED = "completed"
    ITERATION_CAP = "iteration_cap"
    LOOP_DETECTED = "loop_detected"
    AUTH_REQUIRED = "auth_required"
    PENDING_CONFLICT = "pending_conflict"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"
    AUTH_CANCELLED = "auth_cancelled"
    NOTHING_PENDING = "nothing_pending"


@dataclass(slots=True)
class TurnOutcome:
    stop_reason: StopReason
    reply: str | None = None
    iterations: int = 0
    pending_function: FunctionCallRequest | None = None

    @property
    def auth_required(self) -> bool:
        return self.stop_reason is StopReason.AUTH_REQUIRED

    def to_dict(self) -> dict:
        return {
            "stop_reason": self.stop_reason.value,
            "reply": self.reply,
            "iterations": self.iterations,
            "auth_required": self.auth_required,
            "pending_function": self.pending_function.name if self.pending_function else None,
        }
