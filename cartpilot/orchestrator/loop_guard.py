"""Detection of repeated identical function calls."""

from __future__ import annotations

import json
import logging
from typing import Any

from cartpilot.memory.models import FunctionCallRequest

logger = logging.getLogger("cartpilot.orchestrator")


def parse_arguments(arguments: str | None) -> tuple[bool, Any]:
    """Return ``(True, value)`` for a JSON payload, else ``(False, stripped_text)``.

    Parsed values compare structurally, so key order, whitespace and numeric
    spelling (``1`` vs ``1.0``) do not matter.
    """

    raw = (arguments or "").strip()
    if not raw:
        return True, {}
    try:
        return True, json.loads(raw)
    except ValueError:
        return False, raw


class LoopGuard:
    """Stops a sequence when the model asks for the same call twice in a row."""

    def should_stop(
        self,
        previous: FunctionCallRequest | None,
        next_call: FunctionCallRequest | None,
    ) -> bool:
        if previous is None or next_call is None:
            return False
        if previous.name != next_call.name:
            return False
        if parse_arguments(previous.arguments) != parse_arguments(next_call.arguments):
            return False

        logger.warning(
            "Loop detected: %s requested again with identical arguments, stopping sequence",
            next_call.name,
        )
        return True
