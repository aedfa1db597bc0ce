"""Order placement."""

from __future__ import annotations

import logging
import re

from .base import ExecutionContext, Function, FunctionResult
from .schemas import PlaceOrderArgs

logger = logging.getLogger("cartpilot.functions")

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_LANDMARK_RE = re.compile(r"(?:landmark|near|nearby)[:\s]+([^,.]+)", re.IGNORECASE)


class PlaceOrderFunction(Function[PlaceOrderArgs]):
    """Validate the shop cart and place a cash-on-delivery order."""

    name = "placeOrder"

    async def run(self, args: PlaceOrderArgs, context: ExecutionContext) -> FunctionResult:
        capabilities = context.capabilities
        address = context.current_address

        cart = await capabilities.get_shop_cart(args.shop_id)
        if cart is None or not cart.items:
            return FunctionResult.fail("Cart is empty")

        # Models sometimes invent placeholder ids such as "temp".
        address_id = args.address_id if args.address_id and _UUID_RE.match(args.address_id) else None
        if address_id is None and address is not None and address.address_id:
            address_id = address.address_id
        if address_id is None:
            address_id = await capabilities.get_default_address_id()
        if address_id is None:
            return FunctionResult.fail("No delivery address found. Please add an address first.")

        landmark = _landmark(address.landmark if address else None, args.special_instructions)
        if address is not None and not landmark:
            cart_payload = cart.to_payload()
            return FunctionResult.fail(
                "Please provide a nearby landmark so the rider can easily find you.",
                cart=cart_payload,
                carts=[cart_payload],
                address=address.to_dict(),
            )

        await context.report("Checking item availability")
        stock = await capabilities.validate_item_stock([line.id for line in cart.items])
        unavailable = [check.item_name or check.item_id for check in stock if not check.is_valid]
        if unavailable:
            return FunctionResult.fail(
                f"Some items are no longer available: {', '.join(unavailable)}. "
                "Please remove them from your cart."
            )

        if address is not None:
            try:
                zone = await capabilities.validate_delivery_address(
                    args.shop_id,
                    address.coords.latitude,
                    address.coords.longitude,
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("Delivery validation error for shop %s: %s", args.shop_id, exc)
            else:
                if not zone.is_within_delivery_zone:
                    return FunctionResult.fail(
                        "Your selected address is outside this shop's delivery area. "
                        "Please choose a different address or shop."
                    )

        shop = await capabilities.get_shop_details(args.shop_id)
        if shop is None:
            logger.warning("Shop details unavailable for %s, skipping opening check", args.shop_id)
        elif shop.get("is_open") is False:
            return FunctionResult.fail("This shop is currently closed. Please check the opening hours.")

        await context.report("Placing your order")
        order = await capabilities.place_order(
            shop_id=args.shop_id,
            address_id=address_id,
            items=[{"merchant_item_id": line.id, "quantity": line.quantity} for line in cart.items],
            payment_method="cash",
            special_instructions=args.special_instructions,
        )

        try:
            await capabilities.delete_shop_cart(args.shop_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to clear cart after order placement: %s", exc)

        return FunctionResult.ok(
            {
                "order": {"id": order.id, "order_number": order.order_number, "status": order.status},
                "message": f"Order placed successfully! Order #{order.order_number}",
            }
        )


def _landmark(address_landmark: str | None, special_instructions: str | None) -> str | None:
    landmark = (address_landmark or "").strip()
    if landmark:
        return landmark
    if not special_instructions:
        return None
    match = _LANDMARK_RE.search(special_instructions)
    if match:
        return match.group(1).strip() or None
    if len(special_instructions) < 100:
        return special_instructions.strip() or None
    return None
