"""In-process capability bindings backed by a small seeded catalogue.

Used when no commerce backend is configured (local development) and by the
test-suite. Delivery zones are plain radii around each shop.
"""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Sequence

from cartpilot.core.errors import CapabilityError

from .base import CapabilityBindings
from .models import (
    CartLine,
    Coordinates,
    DeliveryZoneCheck,
    PlacedOrder,
    ShopCart,
    ShopItem,
    StockCheck,
)


@dataclass(slots=True)
class ShopRecord:
    id: str
    name: str
    latitude: float
    longitude: float
    delivery_radius_m: float = 5000.0
    is_open: bool = True
    address: str = ""
    items: list[ShopItem] = field(default_factory=list)

    def details(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_open": self.is_open,
        }


class InMemoryCapabilityBindings(CapabilityBindings):
    """Dictionary-backed carts, catalogue and orders."""

    def __init__(
        self,
        shops: Sequence[ShopRecord],
        *,
        location: Coordinates | None = None,
        default_address_id: str | None = None,
        out_of_stock: Sequence[str] = (),
    ) -> None:
        self.shops = {shop.id: shop for shop in shops}
        self.location = location
        self.default_address_id = default_address_id
        self.out_of_stock = set(out_of_stock)
        self.carts: dict[str, ShopCart] = {}
        self.orders: list[dict[str, Any]] = []
        self.calls: list[str] = []

    def _shop(self, shop_id: str) -> ShopRecord:
        shop = self.shops.get(shop_id)
        if shop is None:
            raise CapabilityError(f"Shop {shop_id} not found")
        return shop

    async def add_item_to_cart(self, shop_id: str, item: ShopItem, shop_details: dict[str, Any]) -> None:
        self.calls.append("add_item_to_cart")
        cart = self.carts.get(shop_id)
        if cart is None:
            cart = ShopCart(shop_id=shop_id, shop_name=shop_details.get("name") or self._shop(shop_id).name)
            self.carts[shop_id] = cart
        line = cart.find(item.id)
        if line is None:
            cart.items.append(CartLine(id=item.id, name=item.name, quantity=1, price_cents=item.price_cents))
        else:
            line.quantity += 1

    async def remove_item_from_cart(self, shop_id: str, item_id: str) -> None:
        self.calls.append("remove_item_from_cart")
        cart = self.carts.get(shop_id)
        if cart is None:
            return
        cart.items = [line for line in cart.items if line.id != item_id]
        if not cart.items:
            del self.carts[shop_id]

    async def update_item_quantity(self, shop_id: str, item_id: str, quantity: int) -> None:
        self.calls.append("update_item_quantity")
        cart = self.carts.get(shop_id)
        line = cart.find(item_id) if cart else None
        if line is None:
            raise CapabilityError("Item not found in cart")
        line.quantity = quantity

    async def get_shop_cart(self, shop_id: str) -> ShopCart | None:
        return self.carts.get(shop_id)

    async def get_all_carts(self) -> list[ShopCart]:
        return list(self.carts.values())

    async def delete_shop_cart(self, shop_id: str) -> None:
        self.calls.append("delete_shop_cart")
        self.carts.pop(shop_id, None)

    async def get_current_location(self) -> Coordinates | None:
        return self.location

    async def get_default_address_id(self) -> str | None:
        return self.default_address_id

    async def get_shop_details(self, shop_id: str) -> dict[str, Any] | None:
        shop = self.shops.get(shop_id)
        return shop.details() if shop else None

    async def get_item_details(self, item_id: str, shop_id: str) -> ShopItem | None:
        shop = self.shops.get(shop_id)
        if shop is None:
            return None
        for item in shop.items:
            if item.id == item_id:
                return item
        return None

    async def validate_item_stock(self, item_ids: Sequence[str]) -> list[StockCheck]:
        checks = []
        for item_id in item_ids:
            name = self._item_name(item_id)
            if item_id in self.out_of_stock:
                checks.append(StockCheck(item_id=item_id, is_valid=False, item_name=name, reason="Out of stock"))
            else:
                checks.append(StockCheck(item_id=item_id, is_valid=True, item_name=name))
        return checks

    async def intelligent_search(
        self,
        query: str,
        location: Coordinates,
        *,
        max_shops: int,
        items_per_shop: int,
    ) -> dict[str, Any]:
        self.calls.append("intelligent_search")
        tokens = _tokenize(query)
        results = []
        for shop in self.shops.values():
            if _distance_m(location, Coordinates(shop.latitude, shop.longitude)) > shop.delivery_radius_m:
                continue
            matches = [item for item in shop.items if tokens & _tokenize(item.name)]
            if not matches:
                continue
            results.append(
                {
                    "shop": {"id": shop.id, "name": shop.name, "address": shop.address},
                    "items": [_item_payload(item) for item in matches[:items_per_shop]],
                }
            )
            if len(results) >= max_shops:
                break
        return {"results": results, "reasoning": f"Matched tokens: {', '.join(sorted(tokens))}"}

    async def search_items_in_shop(self, shop_id: str, query: str, *, limit: int) -> list[dict[str, Any]]:
        self.calls.append("search_items_in_shop")
        shop = self._shop(shop_id)
        tokens = _tokenize(query)
        return [_item_payload(item) for item in shop.items if tokens & _tokenize(item.name)][:limit]

    async def validate_delivery_address(self, shop_id: str, latitude: float, longitude: float) -> DeliveryZoneCheck:
        shop = self._shop(shop_id)
        distance = _distance_m(Coordinates(latitude, longitude), Coordinates(shop.latitude, shop.longitude))
        return DeliveryZoneCheck(is_within_delivery_zone=distance <= shop.delivery_radius_m)

    async def place_order(
        self,
        *,
        shop_id: str,
        address_id: str,
        items: Sequence[dict[str, Any]],
        payment_method: str,
        special_instructions: str | None,
    ) -> PlacedOrder:
        self.calls.append("place_order")
        order = PlacedOrder(
            id=str(uuid.uuid4()),
            order_number=f"AY-{len(self.orders) + 1:05d}",
            status="pending",
        )
        self.orders.append(
            {
                "order": order,
                "shop_id": shop_id,
                "address_id": address_id,
                "items": list(items),
                "payment_method": payment_method,
                "special_instructions": special_instructions,
            }
        )
        return order

    def _item_name(self, item_id: str) -> str | None:
        for shop in self.shops.values():
            for item in shop.items:
                if item.id == item_id:
                    return item.name
        return None


def demo_bindings() -> InMemoryCapabilityBindings:
    """Small catalogue used when the service runs without a commerce backend."""

    corner = ShopRecord(
        id="shop-corner",
        name="Corner Mart",
        latitude=31.5204,
        longitude=74.3587,
        address="Main Boulevard",
        items=[
            ShopItem(id="item-lays", shop_id="shop-corner", name="Lay's Classic Chips", price_cents=10000),
            ShopItem(id="item-cola", shop_id="shop-corner", name="Cola 1.5L", price_cents=18000),
            ShopItem(id="item-bread", shop_id="shop-corner", name="Sandwich Bread", price_cents=15000),
        ],
    )
    daily = ShopRecord(
        id="shop-daily",
        name="Daily Needs",
        latitude=31.5300,
        longitude=74.3500,
        delivery_radius_m=3000.0,
        address="Canal Road",
        items=[
            ShopItem(id="item-milk", shop_id="shop-daily", name="Fresh Milk 1L", price_cents=22000),
            ShopItem(id="item-chips", shop_id="shop-daily", name="Masala Chips", price_cents=8000),
        ],
    )
    return InMemoryCapabilityBindings(
        [corner, daily],
        location=Coordinates(31.5210, 74.3580),
        default_address_id="5f0c6a4e-2b7d-4c1e-9a3f-8d2e1b7c4a90",
    )


def _item_payload(item: ShopItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "shopId": item.shop_id,
        "name": item.name,
        "price_cents": item.price_cents,
        "image_url": item.image_url,
    }


def _tokenize(text: str) -> set[str]:
    return set(re.findall(r"[a-z0-9]+", text.lower().replace("'", "")))


def _distance_m(a: Coordinates, b: Coordinates) -> float:
    radius = 6_371_000.0
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return 2 * radius * math.asin(math.sqrt(h))
