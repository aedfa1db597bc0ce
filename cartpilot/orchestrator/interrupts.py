"""State machine gating privileged functions behind authentication."""

from __future__ import annotations

import logging
from enum import Enum

from cartpilot.memory.models import FunctionCallRequest

logger = logging.getLogger("cartpilot.orchestrator")


class InterruptState(str, Enum):
    IDLE = "idle"
    AWAITING_AUTH = "awaiting_auth"
    RESUMING = "resuming"


class PrivilegedActionInterruptManager:
    """Holds at most one pending privileged call while authentication is outstanding.

    ``IDLE -> AWAITING_AUTH`` on :meth:`request`, ``AWAITING_AUTH -> RESUMING``
    on :meth:`begin_resume` and back to ``IDLE`` on :meth:`finish_resume` or
    :meth:`cancel`. A second authentication-success signal while resuming is
    ignored.
    """

    def __init__(self) -> None:
        self._state = InterruptState.IDLE
        self._pending: FunctionCallRequest | None = None

    @property
    def state(self) -> InterruptState:
        return self._state

    @property
    def pending(self) -> FunctionCallRequest | None:
        return self._pending

    def request(self, call: FunctionCallRequest) -> bool:
        """Record ``call`` as pending. Returns False if another call is already pending."""

        if self._pending is not None:
            logger.warning(
                "Rejected privileged call %s: %s is still awaiting authentication",
                call.name,
                self._pending.name,
            )
            return False
        self._pending = call
        self._state = InterruptState.AWAITING_AUTH
        logger.info("Privileged call %s paused until the user authenticates", call.name)
        return True

    def begin_resume(self) -> FunctionCallRequest | None:
        """Claim the pending call for execution, or None if nothing can be resumed."""

        if self._state is not InterruptState.AWAITING_AUTH or self._pending is None:
            if self._state is InterruptState.RESUMING:
                logger.info("Ignoring duplicate authentication signal, resumption already running")
            return None
        self._state = InterruptState.RESUMING
        return self._pending

    def finish_resume(self) -> None:
        self._pending = None
        self._state = InterruptState.IDLE

    def cancel(self) -> FunctionCallRequest | None:
        """Discard the pending call without executing it."""

        if self._state is InterruptState.RESUMING:
            return None
        discarded = self._pending
        self._pending = None
        self._state = InterruptState.IDLE
        if discarded is not None:
            logger.info("Authentication cancelled, discarded pending %s", discarded.name)
        return discarded
