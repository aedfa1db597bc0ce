"""Item search functions."""

from __future__ import annotations

from typing import Any

from cartpilot.capabilities.models import Coordinates

from .base import ExecutionContext, Function, FunctionResult
from .schemas import IntelligentSearchArgs, SearchItemsInShopArgs


class IntelligentSearchFunction(Function[IntelligentSearchArgs]):
    """Search every nearby shop and group matching items per shop."""

    name = "intelligentSearch"

    async def run(self, args: IntelligentSearchArgs, context: ExecutionContext) -> FunctionResult:
        location = await _resolve_location(context)
        if location is None:
            return FunctionResult.fail("User location not available. Please enable location services.")

        await context.report(f'Searching nearby shops for "{args.query}"')
        data = await context.capabilities.intelligent_search(
            args.query,
            location,
            max_shops=args.max_shops,
            items_per_shop=args.items_per_shop,
        )

        shops = [_shop_payload(result) for result in data.get("results", [])]
        return FunctionResult.ok(
            {
                "shops": shops,
                "formattedText": _format_for_model(shops),
                "reasoning": data.get("reasoning", ""),
                "extractedItems": data.get("extractedItems", []),
            }
        )


class SearchItemsInShopFunction(Function[SearchItemsInShopArgs]):
    """Search inside a single shop."""

    name = "searchItemsInShop"

    async def run(self, args: SearchItemsInShopArgs, context: ExecutionContext) -> FunctionResult:
        await context.report(f'Looking for "{args.query}" in the shop')
        items = await context.capabilities.search_items_in_shop(args.shop_id, args.query, limit=args.limit)
        details = await context.capabilities.get_shop_details(args.shop_id) or {}
        shop = {"id": args.shop_id, "name": details.get("name", "Shop"), "address": details.get("address")}
        normalized = [{**item, "shopId": item.get("shopId", args.shop_id)} for item in items]
        return FunctionResult.ok({"items": normalized, "shops": [{"shop": shop, "items": normalized}]})


async def _resolve_location(context: ExecutionContext) -> Coordinates | None:
    if context.current_address is not None:
        return context.current_address.coords
    return await context.capabilities.get_current_location()


def _shop_payload(result: dict[str, Any]) -> dict[str, Any]:
    shop = result.get("shop", {})
    return {
        "shop": {
            "id": shop.get("id"),
            "name": shop.get("name"),
            "address": shop.get("address"),
            "delivery_fee": shop.get("delivery_fee"),
        },
        "items": [{**item, "shopId": item.get("shopId", shop.get("id"))} for item in result.get("items", [])],
    }


def _format_for_model(shops: list[dict[str, Any]]) -> str:
    if not shops:
        return "No results found"
    lines = []
    for entry in shops:
        shop = entry["shop"]
        lines.append(f"{shop.get('name')} (shopId: {shop.get('id')})")
        for item in entry["items"]:
            price = item.get("price_cents")
            price_text = f" - Rs {price / 100:.0f}" if isinstance(price, (int, float)) else ""
            lines.append(f"  - {item.get('name')} (itemId: {item.get('id')}){price_text}")
    return "\n".join(lines)
