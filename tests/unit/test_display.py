from cartpilot.memory.models import (
    FunctionCallRequest,
    Role,
    assistant_entry,
    function_result_entry,
    system_entry,
    user_entry,
)
from cartpilot.orchestrator.display import derive_view, merge_shops

CID = "conv-view"


def _search_call(query):
    return assistant_entry(CID, function_call=FunctionCallRequest("intelligentSearch", f'{{"query": "{query}"}}'))


def test_merge_unions_items_without_duplicates():
    merged = merge_shops(
        [{"shop": {"id": "S"}, "items": [{"id": "a"}]}],
        [{"shop": {"id": "S"}, "items": [{"id": "a"}, {"id": "b"}]}],
    )

    assert len(merged) == 1
    assert [item["id"] for item in merged[0]["items"]] == ["a", "b"]


def test_merge_keeps_first_seen_item_data_and_ignores_shopless_groups():
    merged = merge_shops(
        [{"shop": {"id": "S"}, "items": [{"id": "a", "name": "first"}]}],
        [{"shop": {"id": "S"}, "items": [{"id": "a", "name": "second"}]}, {"items": [{"id": "z"}]}],
    )

    assert merged == [{"shop": {"id": "S"}, "items": [{"id": "a", "name": "first"}]}]


def test_merge_does_not_mutate_inputs():
    existing = [{"shop": {"id": "S"}, "items": [{"id": "a"}]}]

    merge_shops(existing, [{"shop": {"id": "S"}, "items": [{"id": "b"}]}])

    assert existing == [{"shop": {"id": "S"}, "items": [{"id": "a"}]}]


def test_repeated_searches_collapse_into_one_session(search_results):
    log = [
        system_entry(CID, "prompt"),
        user_entry(CID, "apples and bananas"),
        _search_call("apples"),
        function_result_entry(CID, "intelligentSearch", search_results[0]),
        _search_call("bananas"),
        function_result_entry(CID, "intelligentSearch", search_results[1]),
        assistant_entry(CID, "Found them."),
    ]

    view = derive_view(log)

    assert [entry.role for entry in view] == [Role.USER, Role.ASSISTANT, Role.FUNCTION, Role.ASSISTANT]
    assert view[1].function_call.arguments == '{"query": "bananas"}'

    combined = view[2].function_result
    shops = {group["shop"]["id"]: group for group in combined["shops"]}
    assert list(shops) == ["S", "T"]
    assert [item["id"] for item in shops["S"]["items"]] == ["a", "b"]
    assert shops["S"]["items"][0]["name"] == "Apple"
    assert combined["formattedText"] == "second pass"
    assert view[3].content == "Found them."


def test_non_search_entry_closes_the_session(search_results):
    log = [
        _search_call("apples"),
        function_result_entry(CID, "intelligentSearch", search_results[0]),
        user_entry(CID, "now bananas"),
        _search_call("bananas"),
        function_result_entry(CID, "intelligentSearch", search_results[1]),
    ]

    view = derive_view(log)

    assert [entry.role for entry in view] == [
        Role.ASSISTANT,
        Role.FUNCTION,
        Role.USER,
        Role.ASSISTANT,
        Role.FUNCTION,
    ]
    assert len(view[1].function_result["shops"]) == 1
    assert len(view[4].function_result["shops"]) == 2


def test_orphan_search_result_gets_a_synthetic_call(search_results):
    view = derive_view([function_result_entry(CID, "searchItemsInShop", search_results[0])])

    assert len(view) == 2
    assert view[0].function_call.name == "searchItemsInShop"
    assert view[0].function_call.arguments == "{}"
    assert view[1].name == "searchItemsInShop"


def test_view_is_pure(search_results):
    log = [
        _search_call("apples"),
        function_result_entry(CID, "intelligentSearch", search_results[0]),
        function_result_entry(CID, "intelligentSearch", search_results[1]),
    ]

    first = derive_view(log)
    second = derive_view(log)

    assert first == second
    assert log[1].function_result == search_results[0]
    assert len(log) == 3


def test_system_entries_are_dropped():
    view = derive_view([system_entry(CID, "prompt"), user_entry(CID, "hi"), assistant_entry(CID, "hello")])

    assert [entry.role for entry in view] == [Role.USER, Role.ASSISTANT]
