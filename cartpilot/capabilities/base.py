"""Capability binding interface consumed by the function executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from .models import (
    Coordinates,
    DeliveryZoneCheck,
    PlacedOrder,
    ShopCart,
    ShopItem,
    StockCheck,
)


class CapabilityBindings(ABC):
    """Backend operations the assistant may trigger on the user's behalf.

    Implementations own persistence, pricing and geofencing; the orchestrator
    only depends on these signatures.
    """

    def for_user(self, user_id: str | None) -> CapabilityBindings:
        """Bindings that act as ``user_id``. Single-tenant backends return themselves."""

        return self

    # Cart operations
    @abstractmethod
    async def add_item_to_cart(self, shop_id: str, item: ShopItem, shop_details: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def remove_item_from_cart(self, shop_id: str, item_id: str) -> None:
        ...

    @abstractmethod
    async def update_item_quantity(self, shop_id: str, item_id: str, quantity: int) -> None:
        ...

    @abstractmethod
    async def get_shop_cart(self, shop_id: str) -> ShopCart | None:
        ...

    @abstractmethod
    async def get_all_carts(self) -> list[ShopCart]:
        ...

    @abstractmethod
    async def delete_shop_cart(self, shop_id: str) -> None:
        ...

    # Location & address
    @abstractmethod
    async def get_current_location(self) -> Coordinates | None:
        ...

    @abstractmethod
    async def get_default_address_id(self) -> str | None:
        ...

    # Shop / item lookup
    @abstractmethod
    async def get_shop_details(self, shop_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def get_item_details(self, item_id: str, shop_id: str) -> ShopItem | None:
        ...

    @abstractmethod
    async def validate_item_stock(self, item_ids: Sequence[str]) -> list[StockCheck]:
        ...

    # Search
    @abstractmethod
    async def intelligent_search(
        self,
        query: str,
        location: Coordinates,
        *,
        max_shops: int,
        items_per_shop: int,
    ) -> dict[str, Any]:
        """Return ``{"results": [{"shop": {...}, "items": [...]}], ...}``."""

    @abstractmethod
    async def search_items_in_shop(self, shop_id: str, query: str, *, limit: int) -> list[dict[str, Any]]:
        ...

    # Delivery & orders
    @abstractmethod
    async def validate_delivery_address(self, shop_id: str, latitude: float, longitude: float) -> DeliveryZoneCheck:
        ...

    @abstractmethod
    async def place_order(
        self,
        *,
        shop_id: str,
        address_id: str,
        items: Sequence[dict[str, Any]],
        payment_method: str,
        special_instructions: str | None,
    ) -> PlacedOrder:
        ...
