"""Value objects exchanged with the capability bindings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class DeliveryAddress:
    """Snapshot of the currently selected delivery address."""

    label: str
    city: str
    coords: Coordinates
    address_id: str | None = None
    landmark: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "city": self.city,
            "latitude": self.coords.latitude,
            "longitude": self.coords.longitude,
            "addressId": self.address_id,
            "landmark": self.landmark,
        }


@dataclass(slots=True)
class ShopItem:
    id: str
    shop_id: str
    name: str
    price_cents: int
    image_url: str | None = None


@dataclass(slots=True)
class CartLine:
    id: str
    name: str
    quantity: int
    price_cents: int


@dataclass(slots=True)
class ShopCart:
    shop_id: str
    shop_name: str
    items: list[CartLine] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def total_price(self) -> int:
        return sum(line.quantity * line.price_cents for line in self.items)

    def find(self, item_id: str) -> CartLine | None:
        for line in self.items:
            if line.id == item_id:
                return line
        return None

    def to_payload(self) -> dict[str, Any]:
        return {
            "shopId": self.shop_id,
            "shopName": self.shop_name,
            "totalItems": self.total_items,
            "totalPrice": self.total_price,
            "items": [
                {
                    "id": line.id,
                    "name": line.name,
                    "quantity": line.quantity,
                    "price_cents": line.price_cents,
                }
                for line in self.items
            ],
        }


@dataclass(frozen=True, slots=True)
class StockCheck:
    item_id: str
    is_valid: bool
    item_name: str | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class DeliveryZoneCheck:
    is_within_delivery_zone: bool


@dataclass(frozen=True, slots=True)
class PlacedOrder:
    id: str
    order_number: str
    status: str
