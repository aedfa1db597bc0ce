import asyncio
import json
import uuid

import pytest
from fastapi.testclient import TestClient

from cartpilot import main
from cartpilot.main import app

client = TestClient(app)


@pytest.fixture
def script(monkeypatch, scripted_model):
    """Replace the live model with a scripted one for the duration of a test."""

    def install(*replies, chunks=()):
        model = scripted_model(replies, chunks=chunks)
        monkeypatch.setattr(main.orchestrator, "model", model)
        return model

    return install


def _conversation(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def test_chat_returns_reply_and_view(script, reply):
    script(reply.text("Hi! What are you shopping for?"))
    conversation_id = _conversation("conv-hello")

    response = client.post("/chat", json={"conversation_id": conversation_id, "message": "hello"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["stop_reason"] == "completed"
    assert payload["reply"] == "Hi! What are you shopping for?"
    assert payload["auth_required"] is False
    assert [entry["role"] for entry in payload["view"]] == ["user", "assistant"]


def test_chat_missing_message_returns_400():
    response = client.post("/chat", json={"conversation_id": "conv-err"})
    assert response.status_code == 400


def test_repeated_searches_show_as_one_result(script, reply):
    script(
        reply.call("intelligentSearch", query="lays"),
        reply.call("intelligentSearch", query="chips"),
        reply.text("Here is what I found."),
    )
    conversation_id = _conversation("conv-search")

    payload = client.post("/chat", json={"conversation_id": conversation_id, "message": "lays and chips"}).json()

    assert payload["iterations"] == 2
    view = payload["view"]
    assert [entry["role"] for entry in view] == ["user", "assistant", "function", "assistant"]
    assert json.loads(view[1]["function_call"]["arguments"]) == {"query": "chips"}
    shops = {group["shop"]["id"]: [item["id"] for item in group["items"]] for group in view[2]["function_result"]["shops"]}
    assert shops == {"shop-corner": ["item-lays"], "shop-daily": ["item-chips"]}

    stored = client.get(f"/conversations/{conversation_id}/view").json()["view"]
    assert stored == view


def test_order_waits_for_authentication(script, reply):
    script(
        reply.call("addItemToCart", shopId="shop-corner", itemId="item-bread"),
        reply.call("placeOrder", shopId="shop-corner"),
        reply.text("Order placed!"),
    )
    conversation_id = _conversation("conv-auth")

    first = client.post("/chat", json={"conversation_id": conversation_id, "message": "order bread"}).json()

    assert first["stop_reason"] == "auth_required"
    assert first["auth_required"] is True
    assert first["pending_function"] == "placeOrder"
    orders_before = len(main.capabilities.orders)

    resumed = client.post(f"/conversations/{conversation_id}/auth", json={"status": "success", "user_id": "user-42"})
    duplicate = client.post(f"/conversations/{conversation_id}/auth", json={"status": "success", "user_id": "user-42"})

    assert resumed.status_code == 200
    assert resumed.json()["stop_reason"] == "completed"
    assert resumed.json()["reply"] == "Order placed!"
    assert duplicate.json()["stop_reason"] == "nothing_pending"
    assert len(main.capabilities.orders) == orders_before + 1


def test_cancelled_authentication_discards_order(script, reply):
    script(
        reply.call("addItemToCart", shopId="shop-corner", itemId="item-cola"),
        reply.call("placeOrder", shopId="shop-corner"),
    )
    conversation_id = _conversation("conv-cancel")
    client.post("/chat", json={"conversation_id": conversation_id, "message": "order cola"})
    orders_before = len(main.capabilities.orders)

    response = client.post(f"/conversations/{conversation_id}/auth", json={"status": "cancelled"})

    assert response.json()["stop_reason"] == "auth_cancelled"
    assert len(main.capabilities.orders) == orders_before
    main.capabilities.carts.pop("shop-corner", None)


def test_auth_signal_validation(script, reply):
    script(reply.text("hi"))
    conversation_id = _conversation("conv-auth-bad")

    assert client.post(f"/conversations/{conversation_id}/auth", json={"status": "success"}).status_code == 404

    client.post("/chat", json={"conversation_id": conversation_id, "message": "hi"})

    assert client.post(f"/conversations/{conversation_id}/auth", json={"status": "maybe"}).status_code == 400
    assert client.post(f"/conversations/{conversation_id}/auth", json={"status": "success"}).status_code == 400


def test_user_header_authenticates_caller(script, reply):
    script(
        reply.call("addItemToCart", shopId="shop-daily", itemId="item-milk"),
        reply.call("placeOrder", shopId="shop-daily"),
        reply.text("Milk is on its way."),
    )
    conversation_id = _conversation("conv-header")

    response = client.post(
        "/chat",
        json={"conversation_id": conversation_id, "message": "order milk"},
        headers={"X-User-ID": "user-7"},
    )

    payload = response.json()
    assert payload["stop_reason"] == "completed"
    assert payload["view"][-2]["function_result"]["order"]["status"] == "pending"


def test_address_change_checks_last_mutated_shop(script, reply):
    script(reply.call("addItemToCart", shopId="shop-daily", itemId="item-chips"), reply.text("Added."))
    conversation_id = _conversation("conv-address")
    client.post("/chat", json={"conversation_id": conversation_id, "message": "add chips"})

    rejected = client.post(
        f"/conversations/{conversation_id}/address",
        json={"label": "Far away", "latitude": 31.60, "longitude": 74.40},
    ).json()
    accepted = client.post(
        f"/conversations/{conversation_id}/address",
        json={"label": "Next door", "latitude": 31.5295, "longitude": 74.3505, "landmark": "Blue gate"},
    ).json()

    assert rejected["accepted"] is False
    assert rejected["rejected_shop_id"] == "shop-daily"
    assert rejected["address"] is None
    assert accepted["accepted"] is True
    assert accepted["checked"] == ["shop-daily"]
    assert accepted["address"]["label"] == "Next door"
    main.capabilities.carts.pop("shop-daily", None)


def test_address_requires_coordinates():
    response = client.post("/conversations/conv-x/address", json={"label": "Nowhere"})
    assert response.status_code == 400


def test_stream_emits_ndjson_events(script, reply):
    script(reply.call("getAllCarts"), reply.text("Your carts are empty."), chunks=["Check", "ing"])
    conversation_id = _conversation("conv-stream")

    response = client.post("/chat/stream", json={"conversation_id": conversation_id, "message": "my carts"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in response.text.splitlines() if line]
    assert [event["type"] for event in events] == [
        "partial_text",
        "partial_text",
        "function_call",
        "function_result",
        "sequence_ended",
    ]
    assert events[-1]["stop_reason"] == "completed"
    assert events[-1]["reply"] == "Your carts are empty."


def test_concurrent_turn_returns_409(script, reply):
    script(reply.text("hi"))
    conversation_id = _conversation("conv-busy")
    session = main.sessions.get_or_create(conversation_id)
    asyncio.run(session.lock.acquire())
    try:
        response = client.post("/chat", json={"conversation_id": conversation_id, "message": "hello?"})
    finally:
        session.lock.release()

    assert response.status_code == 409
    assert response.json()["error"] == "turn_in_progress"


def test_clear_history_keeps_system_prompt(script, reply):
    script(reply.text("hello"))
    conversation_id = _conversation("conv-clear")
    client.post("/chat", json={"conversation_id": conversation_id, "message": "hi"})

    response = client.delete(f"/conversations/{conversation_id}")

    assert response.json()["cleared"] is True
    entries = main.turn_log_store.read_snapshot(conversation_id)
    assert [entry.role.value for entry in entries] == ["system"]
    assert client.get(f"/conversations/{conversation_id}/view").json()["view"] == []
    assert conversation_id in client.get("/conversations").json()


def test_session_teardown(script, reply):
    script(reply.text("hello"))
    conversation_id = _conversation("conv-teardown")
    client.post("/chat", json={"conversation_id": conversation_id, "message": "hi"})

    assert client.delete(f"/conversations/{conversation_id}/session").json()["torn_down"] is True
    assert client.delete(f"/conversations/{conversation_id}/session").json()["torn_down"] is False


def test_metrics_count_turns_and_calls(script, reply):
    script(reply.call("getAllCarts"), reply.text("done"))
    before = client.get("/metrics").json()

    client.post("/chat", json={"conversation_id": _conversation("conv-metrics"), "message": "carts"})

    after = client.get("/metrics").json()
    assert after["total_turns"] == before["total_turns"] + 1
    assert after["function_calls"]["getAllCarts"] == before["function_calls"].get("getAllCarts", 0) + 1
    assert after["stop_reasons"]["completed"] >= 1


def test_unexpected_error_returns_500(monkeypatch):
    async def broken(*args, **kwargs):  # noqa: ANN002, ANN003
        raise RuntimeError("boom")

    monkeypatch.setattr(main.orchestrator, "run_turn", broken)
    failing_client = TestClient(app, raise_server_exceptions=False)

    response = failing_client.post("/chat", json={"conversation_id": "conv-500", "message": "hi"})

    assert response.status_code == 500
    assert response.json()["error"] == "internal_error"
