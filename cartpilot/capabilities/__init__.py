"""Capability binding exports."""

from .base import CapabilityBindings
from .http import HttpCapabilityBindings
from .memory import InMemoryCapabilityBindings, ShopRecord, demo_bindings
from .models import (
    CartLine,
    Coordinates,
    DeliveryAddress,
    DeliveryZoneCheck,
    PlacedOrder,
    ShopCart,
    ShopItem,
    StockCheck,
)

__all__ = [
    "CapabilityBindings",
    "HttpCapabilityBindings",
    "InMemoryCapabilityBindings",
    "ShopRecord",
    "demo_bindings",
    "CartLine",
    "Coordinates",
    "DeliveryAddress",
    "DeliveryZoneCheck",
    "PlacedOrder",
    "ShopCart",
    "ShopItem",
    "StockCheck",
]
