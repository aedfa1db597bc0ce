"""Exception types and handlers."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("cartpilot.errors")


class ModelTransportError(RuntimeError):
    """The model service could not be reached or returned an unusable reply."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TurnInProgressError(RuntimeError):
    """A second sequence was started while one is already running for the conversation."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"A turn is already running for conversation {conversation_id}")
        self.conversation_id = conversation_id


class CapabilityError(RuntimeError):
    """Raised by capability bindings when the backend rejects an operation."""


async def turn_in_progress_handler(request: Request, exc: TurnInProgressError) -> JSONResponse:
    logger.info("Rejected concurrent turn for %s", exc.conversation_id)
    return JSONResponse(
        status_code=409,
        content={
            "error": "turn_in_progress",
            "message": "Please wait for the assistant to finish before sending another message.",
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Something unexpected happened. Please try again later.",
        },
    )
