"""Capability bindings that delegate to a commerce backend over HTTP."""

from __future__ import annotations

import copy
import logging
from typing import Any, Sequence

import httpx

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


class HttpCapabilityBindings(CapabilityBindings):
    """Thin JSON client for the commerce REST API.

    Requests carry ``X-User-ID`` when the bindings act for a user; scoped
    copies from :meth:`for_user` share the underlying connection pool.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        user_id: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)
        self._user_id = user_id
        self._logger = logging.getLogger("cartpilot.capabilities")

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def for_user(self, user_id: str | None) -> HttpCapabilityBindings:
        if user_id == self._user_id:
            return self
        scoped = copy.copy(self)
        scoped._user_id = user_id
        return scoped

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._user_id:
            kwargs["headers"] = {**kwargs.get("headers", {}), "X-User-ID": self._user_id}
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise CapabilityError(f"Commerce backend unreachable: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.is_error:
            detail = _error_detail(response)
            self._logger.warning("Commerce backend %s %s failed: %s", method, path, detail)
            raise CapabilityError(detail)
        if not response.content:
            return None
        return response.json()

    async def add_item_to_cart(self, shop_id: str, item: ShopItem, shop_details: dict[str, Any]) -> None:
        await self._request(
            "POST",
            f"/carts/{shop_id}/items",
            json={"itemId": item.id, "quantity": 1, "shopName": shop_details.get("name")},
        )

    async def remove_item_from_cart(self, shop_id: str, item_id: str) -> None:
        await self._request("DELETE", f"/carts/{shop_id}/items/{item_id}")

    async def update_item_quantity(self, shop_id: str, item_id: str, quantity: int) -> None:
        await self._request("PATCH", f"/carts/{shop_id}/items/{item_id}", json={"quantity": quantity})

    async def get_shop_cart(self, shop_id: str) -> ShopCart | None:
        data = await self._request("GET", f"/carts/{shop_id}")
        return _cart_from_json(data) if data else None

    async def get_all_carts(self) -> list[ShopCart]:
        data = await self._request("GET", "/carts") or []
        return [_cart_from_json(cart) for cart in data]

    async def delete_shop_cart(self, shop_id: str) -> None:
        await self._request("DELETE", f"/carts/{shop_id}")

    async def get_current_location(self) -> Coordinates | None:
        data = await self._request("GET", "/me/location")
        if not data:
            return None
        return Coordinates(latitude=float(data["latitude"]), longitude=float(data["longitude"]))

    async def get_default_address_id(self) -> str | None:
        data = await self._request("GET", "/me/addresses") or []
        return data[0]["id"] if data else None

    async def get_shop_details(self, shop_id: str) -> dict[str, Any] | None:
        return await self._request("GET", f"/shops/{shop_id}")

    async def get_item_details(self, item_id: str, shop_id: str) -> ShopItem | None:
        data = await self._request("GET", f"/shops/{shop_id}/items/{item_id}")
        if not data:
            return None
        return ShopItem(
            id=data["id"],
            shop_id=shop_id,
            name=data.get("name", ""),
            price_cents=int(data.get("price_cents", 0)),
            image_url=data.get("image_url"),
        )

    async def validate_item_stock(self, item_ids: Sequence[str]) -> list[StockCheck]:
        data = await self._request("POST", "/stock/validate", json={"itemIds": list(item_ids)}) or []
        return [
            StockCheck(
                item_id=row["itemId"],
                is_valid=bool(row.get("isValid")),
                item_name=row.get("itemName"),
                reason=row.get("reason"),
            )
            for row in data
        ]

    async def intelligent_search(
        self,
        query: str,
        location: Coordinates,
        *,
        max_shops: int,
        items_per_shop: int,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/search/intelligent",
            json={
                "query": query,
                "latitude": location.latitude,
                "longitude": location.longitude,
                "maxShops": max_shops,
                "itemsPerShop": items_per_shop,
            },
        ) or {"results": []}

    async def search_items_in_shop(self, shop_id: str, query: str, *, limit: int) -> list[dict[str, Any]]:
        return await self._request("GET", f"/shops/{shop_id}/search", params={"q": query, "limit": limit}) or []

    async def validate_delivery_address(self, shop_id: str, latitude: float, longitude: float) -> DeliveryZoneCheck:
        data = await self._request(
            "POST",
            f"/shops/{shop_id}/delivery-zone",
            json={"latitude": latitude, "longitude": longitude},
        )
        if data is None:
            raise CapabilityError(f"Delivery zone for shop {shop_id} not found")
        return DeliveryZoneCheck(is_within_delivery_zone=bool(data.get("isWithinDeliveryZone")))

    async def place_order(
        self,
        *,
        shop_id: str,
        address_id: str,
        items: Sequence[dict[str, Any]],
        payment_method: str,
        special_instructions: str | None,
    ) -> PlacedOrder:
        data = await self._request(
            "POST",
            "/orders",
            json={
                "shop_id": shop_id,
                "consumer_address_id": address_id,
                "items": list(items),
                "payment_method": payment_method,
                "special_instructions": special_instructions,
            },
        )
        if not data:
            raise CapabilityError("Failed to place order")
        return PlacedOrder(id=data["id"], order_number=str(data["order_number"]), status=data.get("status", "pending"))


def _cart_from_json(data: dict[str, Any]) -> ShopCart:
    return ShopCart(
        shop_id=data["shopId"],
        shop_name=data.get("shopName", "Shop"),
        items=[
            CartLine(
                id=line["id"],
                name=line.get("name", ""),
                quantity=int(line.get("quantity", 1)),
                price_cents=int(line.get("price_cents", 0)),
            )
            for line in data.get("items", [])
        ],
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("detail") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"
