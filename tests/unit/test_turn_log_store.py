import pytest

from cartpilot.memory.models import (
    FunctionCallRequest,
    Role,
    TurnEntry,
    assistant_entry,
    function_result_entry,
    system_entry,
    user_entry,
)
from cartpilot.memory.store import InMemoryTurnLogStore


def _seed(store, conversation_id="conv-1"):
    store.append_entry(system_entry(conversation_id, "You are helpful."))
    store.append_entry(user_entry(conversation_id, "Find lays"))
    store.append_entry(
        assistant_entry(conversation_id, function_call=FunctionCallRequest("intelligentSearch", '{"query":"lays"}'))
    )
    store.append_entry(function_result_entry(conversation_id, "intelligentSearch", {"shops": []}))
    store.append_entry(assistant_entry(conversation_id, "Nothing nearby, sorry."))


def test_sqlite_round_trips_every_entry_kind(sqlite_store):
    _seed(sqlite_store)

    entries = sqlite_store.read_snapshot("conv-1")

    assert [entry.role for entry in entries] == [
        Role.SYSTEM,
        Role.USER,
        Role.ASSISTANT,
        Role.FUNCTION,
        Role.ASSISTANT,
    ]
    assert entries[2].function_call == FunctionCallRequest("intelligentSearch", '{"query":"lays"}')
    assert entries[2].content is None
    assert entries[3].name == "intelligentSearch"
    assert entries[3].function_result == {"shops": []}
    assert entries[4].content == "Nothing nearby, sorry."


def test_fetch_recent_returns_chronological_tail(sqlite_store):
    _seed(sqlite_store)

    recent = sqlite_store.fetch_recent("conv-1", limit=2)

    assert [entry.role for entry in recent] == [Role.FUNCTION, Role.ASSISTANT]


@pytest.mark.parametrize("store_factory", ["sqlite", "memory"])
def test_reset_keeps_system_prompt(store_factory, sqlite_store):
    store = sqlite_store if store_factory == "sqlite" else InMemoryTurnLogStore()
    _seed(store)

    store.reset("conv-1")

    entries = store.read_snapshot("conv-1")
    assert len(entries) == 1
    assert entries[0].role is Role.SYSTEM
    assert list(store.iter_conversations()) == ["conv-1"]


def test_reset_without_system_forgets_conversation(sqlite_store):
    _seed(sqlite_store)

    sqlite_store.reset("conv-1", keep_system=False)

    assert sqlite_store.read_snapshot("conv-1") == []
    assert list(sqlite_store.iter_conversations()) == []


def test_entry_rejects_function_call_with_content():
    with pytest.raises(ValueError):
        TurnEntry(
            conversation_id="c",
            role=Role.ASSISTANT,
            content="hi",
            function_call=FunctionCallRequest("getAllCarts"),
        )


def test_entry_rejects_function_call_on_user_entry():
    with pytest.raises(ValueError):
        TurnEntry(conversation_id="c", role=Role.USER, function_call=FunctionCallRequest("getAllCarts"))


def test_function_entry_requires_name_and_no_content():
    with pytest.raises(ValueError):
        TurnEntry(conversation_id="c", role=Role.FUNCTION, function_result={})
    with pytest.raises(ValueError):
        TurnEntry(conversation_id="c", role=Role.FUNCTION, name="getCart", content="x")


def test_parsed_arguments_requires_object():
    assert FunctionCallRequest("getAllCarts", "").parsed_arguments() == {}
    with pytest.raises(ValueError):
        FunctionCallRequest("getAllCarts", "[1, 2]").parsed_arguments()
