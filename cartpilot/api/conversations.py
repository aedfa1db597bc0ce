"""API routes for conversations and turn sequences."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Header, HTTPException
from fastapi.responses import StreamingResponse

from cartpilot.capabilities.models import Coordinates, DeliveryAddress
from cartpilot.core.errors import TurnInProgressError
from cartpilot.memory.store import TurnLogStore
from cartpilot.orchestrator.display import derive_view, entry_to_dict
from cartpilot.orchestrator.events import TurnEventStream, event_to_dict
from cartpilot.orchestrator.orchestrator import TurnOrchestrator
from cartpilot.orchestrator.revalidation import AddressRevalidator
from cartpilot.orchestrator.session import SessionRegistry

logger = logging.getLogger("cartpilot.api")


def create_conversations_router(
    orchestrator: TurnOrchestrator,
    sessions: SessionRegistry,
    revalidator: AddressRevalidator,
    *,
    event_buffer_size: int = 64,
) -> APIRouter:
    router = APIRouter()
    store: TurnLogStore = sessions.store

    @router.post("/chat", tags=["chat"])
    async def chat(payload: dict, x_user_id: str | None = Header(default=None)) -> dict:
        conversation_id, message, context = _chat_fields(payload)
        session = sessions.get_or_create(conversation_id)
        if x_user_id:
            session.user_id = x_user_id

        outcome = await orchestrator.run_turn(session, message, extra_context=context)
        return {
            "conversation_id": conversation_id,
            **outcome.to_dict(),
            "view": _view(store, conversation_id),
        }

    @router.post("/chat/stream", tags=["chat"])
    async def chat_stream(payload: dict, x_user_id: str | None = Header(default=None)) -> StreamingResponse:
        conversation_id, message, context = _chat_fields(payload)
        session = sessions.get_or_create(conversation_id)
        if session.lock.locked():
            raise TurnInProgressError(conversation_id)
        if x_user_id:
            session.user_id = x_user_id

        events = TurnEventStream(maxsize=event_buffer_size)

        async def run() -> None:
            try:
                await orchestrator.run_turn(session, message, extra_context=context, events=events)
            finally:
                await events.close()

        task = asyncio.create_task(run())

        async def body():
            async for event in events:
                yield json.dumps(event_to_dict(event), default=str) + "\n"
            try:
                await task
            except Exception:  # noqa: BLE001
                logger.exception("Streamed turn failed for %s", conversation_id)

        return StreamingResponse(body(), media_type="application/x-ndjson")

    @router.post("/conversations/{conversation_id}/auth", tags=["conversations"])
    async def auth_signal(conversation_id: str, payload: dict) -> dict:
        status = payload.get("status")
        session = sessions.get(conversation_id)
        if session is None:
            raise HTTPException(status_code=404, detail="conversation not found")

        if status == "success":
            user_id = payload.get("user_id")
            if not user_id:
                raise HTTPException(status_code=400, detail="user_id is required when status is success")
            outcome = await orchestrator.resume_after_auth(session, str(user_id))
        elif status == "cancelled":
            outcome = await orchestrator.cancel_auth(session)
        else:
            raise HTTPException(status_code=400, detail="status must be 'success' or 'cancelled'")

        return {
            "conversation_id": conversation_id,
            **outcome.to_dict(),
            "view": _view(store, conversation_id),
        }

    @router.post("/conversations/{conversation_id}/address", tags=["conversations"])
    async def change_address(conversation_id: str, payload: dict) -> dict:
        address = _address(payload)
        session = sessions.get_or_create(conversation_id)
        result = await revalidator.revalidate(session, address, shop_id=payload.get("shop_id"))
        current = session.current_address
        return {
            "conversation_id": conversation_id,
            **result.to_dict(),
            "address": current.to_dict() if current else None,
        }

    @router.get("/conversations/{conversation_id}/view", tags=["conversations"])
    async def conversation_view(conversation_id: str) -> dict:
        return {"conversation_id": conversation_id, "view": _view(store, conversation_id)}

    @router.get("/conversations", tags=["conversations"])
    async def list_conversations() -> list[str]:
        """List known conversation identifiers (development helper)."""

        return list(store.iter_conversations())

    @router.delete("/conversations/{conversation_id}", tags=["conversations"])
    async def clear_conversation(conversation_id: str) -> dict:
        session = sessions.get_or_create(conversation_id)
        if session.lock.locked():
            raise TurnInProgressError(conversation_id)
        session.clear_history(orchestrator.system_prompt)
        return {"conversation_id": conversation_id, "cleared": True}

    @router.delete("/conversations/{conversation_id}/session", tags=["conversations"])
    async def teardown_session(conversation_id: str) -> dict:
        return {"conversation_id": conversation_id, "torn_down": sessions.teardown(conversation_id)}

    return router


def _chat_fields(payload: dict) -> tuple[str, str, str | None]:
    conversation_id = payload.get("conversation_id")
    message = payload.get("message")
    if not conversation_id or not message:
        raise HTTPException(status_code=400, detail="conversation_id and message are required")
    context = payload.get("context")
    return str(conversation_id), str(message), str(context) if context else None


def _address(payload: dict) -> DeliveryAddress:
    try:
        latitude = float(payload["latitude"])
        longitude = float(payload["longitude"])
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="latitude and longitude are required") from exc

    return DeliveryAddress(
        label=str(payload.get("label") or "Selected address"),
        city=str(payload.get("city") or ""),
        coords=Coordinates(latitude, longitude),
        address_id=payload.get("address_id"),
        landmark=payload.get("landmark"),
    )


def _view(store: TurnLogStore, conversation_id: str) -> list[dict[str, Any]]:
    return [entry_to_dict(entry) for entry in derive_view(store.read_snapshot(conversation_id))]
