"""Derive the presentation view of a turn log.

Consecutive search calls and their results are collapsed into one record
whose result grows as more shops and items arrive. The log itself is never
modified; the view is recomputed from a snapshot.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Sequence

from cartpilot.functions.schemas import SEARCH_FUNCTIONS
from cartpilot.memory.models import FunctionCallRequest, Role, TurnEntry


@dataclass(slots=True)
class SearchSession:
    call_entry: TurnEntry
    call_index: int
    result_index: int | None = None
    combined_result: dict[str, Any] = field(default_factory=lambda: {"shops": []})

    @property
    def function_name(self) -> str:
        call = self.call_entry.function_call
        return call.name if call else "intelligentSearch"


def merge_shops(existing: Iterable[Any], incoming: Iterable[Any]) -> list[dict[str, Any]]:
    """Union shop groups by shop id, unioning items by item id with first-seen data kept."""

    shops: dict[str, dict[str, Any]] = {}
    for group in existing or ():
        shop_id = _shop_id(group)
        if shop_id is None or shop_id in shops:
            continue
        shops[shop_id] = {**group, "items": list(_items(group))}

    for group in incoming or ():
        shop_id = _shop_id(group)
        if shop_id is None:
            continue
        if shop_id not in shops:
            shops[shop_id] = {**group, "items": list(_items(group))}
            continue

        current = shops[shop_id]
        seen = {item.get("id") for item in current["items"] if isinstance(item, dict)}
        for item in _items(group):
            item_id = item.get("id") if isinstance(item, dict) else None
            if item_id and item_id not in seen:
                current["items"].append(item)
                seen.add(item_id)

    return list(shops.values())


def derive_view(entries: Sequence[TurnEntry]) -> list[TurnEntry]:
    view: list[TurnEntry] = []
    session: SearchSession | None = None

    for entry in entries:
        if _is_search_call(entry):
            if session is None:
                session = SearchSession(call_entry=entry, call_index=len(view))
                view.append(entry)
            else:
                session.call_entry = entry
                view[session.call_index] = entry
            continue

        if _is_search_result(entry):
            if session is None:
                synthetic = TurnEntry(
                    conversation_id=entry.conversation_id,
                    role=Role.ASSISTANT,
                    function_call=FunctionCallRequest(name=entry.name or "intelligentSearch"),
                    created_at=entry.created_at,
                )
                session = SearchSession(call_entry=synthetic, call_index=len(view))
                view.append(synthetic)

            parsed = _parse_result(entry)
            shops = session.combined_result.get("shops", [])
            if isinstance(parsed.get("shops"), list):
                shops = merge_shops(shops, parsed["shops"])
            session.combined_result = {**session.combined_result, **parsed, "shops": shops}

            combined = TurnEntry(
                conversation_id=entry.conversation_id,
                role=Role.FUNCTION,
                name=session.function_name,
                function_result=session.combined_result,
                created_at=entry.created_at if session.result_index is None else view[session.result_index].created_at,
            )
            if session.result_index is None:
                session.result_index = len(view)
                view.append(combined)
            else:
                view[session.result_index] = combined
            continue

        session = None
        if entry.role is Role.SYSTEM:
            continue
        view.append(entry)

    return view


def entry_to_dict(entry: TurnEntry) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "role": entry.role.value,
        "content": entry.content,
        "created_at": entry.created_at.isoformat(),
    }
    if entry.function_call is not None:
        payload["function_call"] = entry.function_call.to_dict()
    if entry.is_function_result:
        payload["name"] = entry.name
        payload["function_result"] = entry.function_result
    return payload


def _is_search_call(entry: TurnEntry) -> bool:
    return (
        entry.role is Role.ASSISTANT
        and entry.function_call is not None
        and entry.function_call.name in SEARCH_FUNCTIONS
    )


def _is_search_result(entry: TurnEntry) -> bool:
    return entry.role is Role.FUNCTION and entry.name in SEARCH_FUNCTIONS


def _parse_result(entry: TurnEntry) -> dict[str, Any]:
    result = entry.function_result
    if isinstance(result, str):
        try:
            result = json.loads(result)
        except ValueError:
            return {}
    return dict(result) if isinstance(result, dict) else {}


def _shop_id(group: Any) -> str | None:
    if not isinstance(group, dict):
        return None
    shop = group.get("shop")
    if isinstance(shop, dict) and shop.get("id"):
        return str(shop["id"])
    return None


def _items(group: dict[str, Any]) -> list[Any]:
    items = group.get("items")
    return list(items) if isinstance(items, list) else []
