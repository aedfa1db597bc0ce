"""Cart manipulation functions."""

from __future__ import annotations

import logging
from typing import Any

from cartpilot.capabilities.models import ShopCart

from .base import ExecutionContext, Function, FunctionResult
from .schemas import (
    AddItemsToCartArgs,
    AddItemToCartArgs,
    CartLineArgs,
    GetAllCartsArgs,
    GetCartArgs,
    RemoveItemFromCartArgs,
    UpdateItemQuantityArgs,
)

logger = logging.getLogger("cartpilot.functions")


class AddItemsToCartFunction(Function[AddItemsToCartArgs]):
    """Add a batch of items, line by line, skipping lines that cannot be added."""

    name = "addItemsToCart"

    async def run(self, args: AddItemsToCartArgs, context: ExecutionContext) -> FunctionResult:
        capabilities = context.capabilities
        details: list[dict[str, Any]] = []
        added: list[dict[str, Any]] = []
        shop_ids: list[str] = []

        await context.report(f"Adding {len(args.items)} item(s) to your cart")
        for line in args.items:
            outcome = await self._add_line(line, context)
            details.append(outcome["detail"])
            if outcome["added"] is not None:
                added.append(outcome["added"])
                if line.shop_id not in shop_ids:
                    shop_ids.append(line.shop_id)

        carts = []
        for shop_id in shop_ids:
            cart = await capabilities.get_shop_cart(shop_id)
            if cart is not None:
                carts.append(cart.to_payload())

        success_count = len(added)
        fail_count = len(details) - success_count
        summary = f"Successfully added {success_count} item(s)"
        if fail_count:
            summary += f", {fail_count} failed"

        payload = {
            "added": added,
            "summary": summary,
            "details": details,
            "address": context.current_address.to_dict() if context.current_address else None,
            "carts": carts,
            "cart": carts[0] if carts else None,
        }
        if success_count == 0:
            return FunctionResult.fail(summary, **payload)
        return FunctionResult.ok(payload)

    async def _add_line(self, line: CartLineArgs, context: ExecutionContext) -> dict[str, Any]:
        capabilities = context.capabilities
        try:
            item = await capabilities.get_item_details(line.item_id, line.shop_id)
            if item is None:
                logger.info("Item %s not found in shop %s, skipping", line.item_id, line.shop_id)
                return _line_failure(line.item_id, f"Item with ID {line.item_id} not found")

            stock = await capabilities.validate_item_stock([line.item_id])
            if not stock or not stock[0].is_valid:
                reason = stock[0].reason if stock and stock[0].reason else "Item is not available"
                return _line_failure(line.item_id, reason)

            shop_details = await capabilities.get_shop_details(line.shop_id) or {}
            await capabilities.add_item_to_cart(line.shop_id, item, shop_details)
            if line.quantity > 1:
                await capabilities.update_item_quantity(line.shop_id, line.item_id, line.quantity)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to add item %s: %s", line.item_id, exc)
            return _line_failure(line.item_id, str(exc) or "Failed to add item")

        logger.info('Added "%s" x%s to cart of shop %s', item.name, line.quantity, line.shop_id)
        return {
            "detail": {"success": True, "itemId": line.item_id},
            "added": {
                "itemId": item.id,
                "name": item.name,
                "quantity": line.quantity,
                "shopId": line.shop_id,
                "shopName": shop_details.get("name", "Shop"),
                "price_cents": item.price_cents,
                "image_url": item.image_url,
            },
        }


class AddItemToCartFunction(Function[AddItemToCartArgs]):
    """Single-item add, executed through the batch path."""

    name = "addItemToCart"

    def __init__(self, batch: AddItemsToCartFunction | None = None) -> None:
        self._batch = batch or AddItemsToCartFunction()

    async def run(self, args: AddItemToCartArgs, context: ExecutionContext) -> FunctionResult:
        line = CartLineArgs(shop_id=args.shop_id, item_id=args.item_id, quantity=args.quantity)
        return await self._batch.run(AddItemsToCartArgs(items=[line]), context)


class RemoveItemFromCartFunction(Function[RemoveItemFromCartArgs]):
    name = "removeItemFromCart"

    async def run(self, args: RemoveItemFromCartArgs, context: ExecutionContext) -> FunctionResult:
        capabilities = context.capabilities
        cart = await capabilities.get_shop_cart(args.shop_id)
        if cart is None:
            return FunctionResult.fail("Cart not found for this shop")

        line = cart.find(args.item_id)
        if line is None:
            return FunctionResult.fail("Item not found in cart")

        if args.quantity and args.quantity < line.quantity:
            await capabilities.update_item_quantity(args.shop_id, args.item_id, line.quantity - args.quantity)
        else:
            await capabilities.remove_item_from_cart(args.shop_id, args.item_id)

        updated = _payload(await capabilities.get_shop_cart(args.shop_id))
        return FunctionResult.ok(
            {
                "message": f"Removed {line.name} from cart",
                "cart": updated,
                "carts": [updated] if updated else [],
            }
        )


class UpdateItemQuantityFunction(Function[UpdateItemQuantityArgs]):
    name = "updateItemQuantity"

    async def run(self, args: UpdateItemQuantityArgs, context: ExecutionContext) -> FunctionResult:
        capabilities = context.capabilities
        await capabilities.update_item_quantity(args.shop_id, args.item_id, args.quantity)
        updated = _payload(await capabilities.get_shop_cart(args.shop_id))
        return FunctionResult.ok(
            {
                "message": f"Updated quantity to {args.quantity}",
                "quantity": args.quantity,
                "cart": updated,
                "carts": [updated] if updated else [],
            }
        )


class GetCartFunction(Function[GetCartArgs]):
    name = "getCart"

    async def run(self, args: GetCartArgs, context: ExecutionContext) -> FunctionResult:
        cart = _payload(await context.capabilities.get_shop_cart(args.shop_id))
        if cart is None:
            return FunctionResult.ok({"cart": None, "carts": [], "message": "Cart is empty"})
        return FunctionResult.ok({"cart": cart, "carts": [cart]})


class GetAllCartsFunction(Function[GetAllCartsArgs]):
    name = "getAllCarts"

    async def run(self, args: GetAllCartsArgs, context: ExecutionContext) -> FunctionResult:
        carts = await context.capabilities.get_all_carts()
        return FunctionResult.ok(
            {
                "carts": [
                    {
                        "shopId": cart.shop_id,
                        "shopName": cart.shop_name,
                        "itemCount": cart.total_items,
                        "totalPrice": cart.total_price,
                    }
                    for cart in carts
                ]
            }
        )


def _payload(cart: ShopCart | None) -> dict[str, Any] | None:
    return cart.to_payload() if cart is not None else None


def _line_failure(item_id: str, reason: str) -> dict[str, Any]:
    return {"detail": {"success": False, "itemId": item_id, "error": reason}, "added": None}
