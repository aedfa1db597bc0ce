"""Argument schemas for every function the model may call.

Each function name maps to exactly one pydantic model; arguments are
validated against it by the router before anything is invoked.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FunctionArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class IntelligentSearchArgs(FunctionArgs):
    """Search for items across all shops near the user.

    Understands brand spellings and categories and returns items that can be
    added to the cart directly. Call it once with the full request, even when
    several items are mentioned.
    """

    query: str = Field(min_length=1, description='Natural language query, e.g. "lays" or "2 cold drinks".')
    max_shops: int = Field(default=10, ge=1, le=50, alias="maxShops", description="Maximum shops to search.")
    items_per_shop: int = Field(
        default=10,
        ge=1,
        le=50,
        alias="itemsPerShop",
        description="Maximum items returned per shop.",
    )


class SearchItemsInShopArgs(FunctionArgs):
    """Search for items inside one shop the user is already looking at."""

    shop_id: str = Field(min_length=1, alias="shopId", description="Shop identifier.")
    query: str = Field(min_length=1, description="Natural language item query.")
    limit: int = Field(default=5, ge=1, le=50, description="Maximum items to return.")


class CartLineArgs(FunctionArgs):
    shop_id: str = Field(min_length=1, alias="shopId", description="Shop identifier.")
    item_id: str = Field(min_length=1, alias="itemId", description="Merchant item identifier.")
    quantity: int = Field(default=1, ge=1, description="Quantity taken from the user request, default 1.")


class AddItemsToCartArgs(FunctionArgs):
    """Add several items to the cart at once, typically right after a search."""

    items: list[CartLineArgs] = Field(min_length=1, description="Items to add with their quantities.")


class AddItemToCartArgs(CartLineArgs):
    """Add a single item to the cart after checking stock."""


class RemoveItemFromCartArgs(FunctionArgs):
    """Remove an item from the cart, or reduce its quantity."""

    shop_id: str = Field(min_length=1, alias="shopId", description="Shop identifier.")
    item_id: str = Field(min_length=1, alias="itemId", description="Merchant item identifier.")
    quantity: int | None = Field(
        default=None,
        ge=1,
        description="Quantity to remove. Removes the whole line when omitted.",
    )


class UpdateItemQuantityArgs(FunctionArgs):
    """Set the quantity of an item already in the cart."""

    shop_id: str = Field(min_length=1, alias="shopId", description="Shop identifier.")
    item_id: str = Field(min_length=1, alias="itemId", description="Merchant item identifier.")
    quantity: int = Field(ge=1, description="New quantity, at least 1.")


class GetCartArgs(FunctionArgs):
    """Show the cart of one shop."""

    shop_id: str = Field(min_length=1, alias="shopId", description="Shop identifier.")


class GetAllCartsArgs(FunctionArgs):
    """Show every cart across all shops. Use for "show my cart" without a shop."""


class PlaceOrderArgs(FunctionArgs):
    """Place a cash-on-delivery order from a shop's cart using the saved address."""

    shop_id: str = Field(min_length=1, alias="shopId", description="Shop identifier.")
    address_id: str | None = Field(
        default=None,
        alias="addressId",
        description="Delivery address identifier. The default address is used when omitted.",
    )
    special_instructions: str | None = Field(
        default=None,
        alias="specialInstructions",
        description="Optional delivery instructions, e.g. a nearby landmark.",
    )


ARGUMENT_MODELS: dict[str, type[FunctionArgs]] = {
    "intelligentSearch": IntelligentSearchArgs,
    "searchItemsInShop": SearchItemsInShopArgs,
    "addItemsToCart": AddItemsToCartArgs,
    "addItemToCart": AddItemToCartArgs,
    "removeItemFromCart": RemoveItemFromCartArgs,
    "updateItemQuantity": UpdateItemQuantityArgs,
    "getCart": GetCartArgs,
    "getAllCarts": GetAllCartsArgs,
    "placeOrder": PlaceOrderArgs,
}

SEARCH_FUNCTIONS = frozenset({"intelligentSearch", "searchItemsInShop"})

CART_MUTATION_FUNCTIONS = frozenset(
    {
        "addItemsToCart",
        "addItemToCart",
        "removeItemFromCart",
        "updateItemQuantity",
        "getCart",
    }
)

PRIVILEGED_FUNCTIONS = frozenset({"placeOrder"})


def function_schemas() -> list[dict[str, Any]]:
    """Return the catalogue in the chat-completions ``functions`` format."""

    schemas = []
    for name, model in ARGUMENT_MODELS.items():
        parameters = model.model_json_schema(by_alias=True)
        parameters.pop("title", None)
        parameters.pop("description", None)
        parameters.setdefault("properties", {})
        parameters.setdefault("required", [])
        schemas.append(
            {
                "name": name,
                "description": " ".join((model.__doc__ or name).split()),
                "parameters": parameters,
            }
        )
    return schemas
