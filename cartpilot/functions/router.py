"""Function router mapping model function calls to executors."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from cartpilot.memory.models import FunctionCallRequest
from cartpilot.orchestrator.cart_memory import CartActionMemory, CartActionRecord

from .base import ExecutionContext, Function, FunctionResult
from .cart import (
    AddItemsToCartFunction,
    AddItemToCartFunction,
    GetAllCartsFunction,
    GetCartFunction,
    RemoveItemFromCartFunction,
    UpdateItemQuantityFunction,
)
from .orders import PlaceOrderFunction
from .schemas import ARGUMENT_MODELS, CART_MUTATION_FUNCTIONS
from .search import IntelligentSearchFunction, SearchItemsInShopFunction

logger = logging.getLogger("cartpilot.functions")


class FunctionRouter:
    """Validate a function call against the catalogue and dispatch it.

    Every outcome, including unknown names, malformed arguments, timeouts and
    exceptions raised by capability bindings, comes back as a ``FunctionResult``.
    """

    def __init__(self, functions: Iterable[Function], *, timeout: float | None = None) -> None:
        self._functions: dict[str, Function] = {function.name: function for function in functions}
        self._timeout = timeout

    def supports(self, name: str) -> bool:
        return name in self._functions

    @property
    def names(self) -> list[str]:
        return list(self._functions)

    async def route(
        self,
        call: FunctionCallRequest,
        context: ExecutionContext,
        *,
        cart_memory: CartActionMemory | None = None,
    ) -> FunctionResult:
        function = self._functions.get(call.name)
        model = ARGUMENT_MODELS.get(call.name)
        if function is None or model is None:
            logger.warning("Model requested unknown function %s", call.name)
            return FunctionResult.fail(f"Unknown function: {call.name}")

        try:
            raw_args = call.parsed_arguments()
        except ValueError as exc:
            logger.warning("Malformed arguments for %s: %s", call.name, exc)
            return FunctionResult.fail(f"Invalid arguments for {call.name}: {exc}")

        try:
            args = model.model_validate(raw_args)
        except ValidationError as exc:
            logger.warning("Argument validation failed for %s: %s", call.name, exc.errors())
            return FunctionResult.fail(f"Invalid arguments for {call.name}: {_summarise_errors(exc)}")

        logger.info("Calling %s %s", call.name, _summarise_args(raw_args))
        try:
            if self._timeout is not None:
                result = await asyncio.wait_for(function.run(args, context), timeout=self._timeout)
            else:
                result = await function.run(args, context)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %ss", call.name, self._timeout)
            result = FunctionResult.fail(f"{call.name} timed out. Please try again.")
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error executing %s", call.name)
            result = FunctionResult.fail(str(exc) or f"Failed to execute {call.name}")

        if result.success:
            logger.info("%s succeeded", call.name)
        else:
            logger.info("%s failed: %s", call.name, result.error)

        if result.success and cart_memory is not None and call.name in CART_MUTATION_FUNCTIONS:
            shop_ids = extract_shop_ids(call.name, raw_args)
            if shop_ids:
                cart_memory.replace(
                    CartActionRecord(function_name=call.name, arguments=raw_args, shop_ids=shop_ids)
                )

        return result


def extract_shop_ids(function_name: str, args: Mapping[str, Any]) -> tuple[str, ...]:
    """Shops targeted by a cart-mutating call, in first-seen order."""

    if function_name not in CART_MUTATION_FUNCTIONS or not isinstance(args, Mapping):
        return ()

    if function_name == "addItemsToCart":
        items = args.get("items")
        if not isinstance(items, list):
            return ()
        seen: dict[str, None] = {}
        for item in items:
            shop_id = item.get("shopId") if isinstance(item, Mapping) else None
            if isinstance(shop_id, str) and shop_id:
                seen.setdefault(shop_id, None)
        return tuple(seen)

    shop_id = args.get("shopId")
    return (shop_id,) if isinstance(shop_id, str) and shop_id else ()


def default_functions() -> list[Function]:
    batch = AddItemsToCartFunction()
    return [
        IntelligentSearchFunction(),
        SearchItemsInShopFunction(),
        batch,
        AddItemToCartFunction(batch),
        RemoveItemFromCartFunction(),
        UpdateItemQuantityFunction(),
        GetCartFunction(),
        GetAllCartsFunction(),
        PlaceOrderFunction(),
    ]


def _summarise_args(args: Mapping[str, Any]) -> str:
    if "query" in args:
        return f'query="{args["query"]}"'
    if isinstance(args.get("items"), list):
        return f"{len(args['items'])} item(s)"
    keys = ("shopId", "itemId", "quantity")
    return " ".join(f"{key}={args[key]}" for key in keys if key in args)


def _summarise_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)
