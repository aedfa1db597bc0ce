import asyncio

from cartpilot.capabilities import Coordinates, DeliveryAddress, DeliveryZoneCheck
from cartpilot.functions import ExecutionContext, FunctionRouter, default_functions
from cartpilot.memory.models import FunctionCallRequest
from cartpilot.orchestrator.revalidation import AddressRevalidator

OLD = DeliveryAddress(label="Home", city="Lahore", coords=Coordinates(31.5210, 74.3580))
NEW = DeliveryAddress(label="Office", city="Lahore", coords=Coordinates(31.5250, 74.3550))


class _Recorder:
    """Wraps validate_delivery_address with scripted outcomes per shop."""

    def __init__(self, bindings, outcomes):
        self.checked = []
        self._outcomes = outcomes
        bindings.validate_delivery_address = self

    async def __call__(self, shop_id, latitude, longitude):
        self.checked.append(shop_id)
        outcome = self._outcomes[shop_id]
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "slow":
            await asyncio.sleep(1)
        return DeliveryZoneCheck(is_within_delivery_zone=outcome)


def _add(session, shop_id, item_id):
    router = FunctionRouter(default_functions())
    context = ExecutionContext(capabilities=session.capabilities)
    call = FunctionCallRequest("addItemToCart", f'{{"shopId": "{shop_id}", "itemId": "{item_id}"}}')
    return asyncio.run(router.route(call, context, cart_memory=session.cart_memory))


def test_only_last_mutated_shop_is_validated(session, bindings):
    bindings.carts.clear()
    _add(session, "shop-corner", "item-lays")
    session.current_address = OLD
    recorder = _Recorder(bindings, {"shop-corner": True, "shop-daily": False})

    result = asyncio.run(AddressRevalidator().revalidate(session, NEW))

    assert recorder.checked == ["shop-corner"]
    assert result.accepted is True
    assert session.current_address == NEW


def test_first_shop_outside_zone_rejects_change(session, bindings):
    _add(session, "shop-corner", "item-lays")
    _add(session, "shop-daily", "item-milk")
    session.cart_memory.clear()
    session.current_address = OLD
    recorder = _Recorder(bindings, {"shop-corner": False, "shop-daily": True})

    result = asyncio.run(AddressRevalidator().revalidate(session, NEW))

    assert result.accepted is False
    assert result.rejected_shop_id == "shop-corner"
    assert recorder.checked == ["shop-corner"]
    assert session.current_address == OLD


def test_rejection_holds_regardless_of_order(session, bindings):
    _add(session, "shop-daily", "item-milk")
    _add(session, "shop-corner", "item-lays")
    session.cart_memory.clear()
    session.current_address = OLD
    _Recorder(bindings, {"shop-corner": False, "shop-daily": True})

    result = asyncio.run(AddressRevalidator().revalidate(session, NEW))

    assert result.accepted is False
    assert result.rejected_shop_id == "shop-corner"
    assert session.current_address == OLD


def test_explicit_shop_takes_precedence(session, bindings):
    _add(session, "shop-corner", "item-lays")
    recorder = _Recorder(bindings, {"shop-corner": True, "shop-daily": True})

    asyncio.run(AddressRevalidator().revalidate(session, NEW, shop_id="shop-daily"))

    assert recorder.checked == ["shop-daily"]


def test_errors_and_timeouts_are_skipped(session, bindings):
    _add(session, "shop-corner", "item-lays")
    _add(session, "shop-daily", "item-milk")
    session.cart_memory.clear()
    session.current_address = OLD
    _Recorder(bindings, {"shop-corner": RuntimeError("geofence down"), "shop-daily": "slow"})

    result = asyncio.run(AddressRevalidator(timeout=0.05).revalidate(session, NEW))

    assert result.accepted is True
    assert sorted(result.skipped) == ["shop-corner", "shop-daily"]
    assert session.current_address == NEW


def test_no_carts_accepts_without_checks(session, bindings):
    recorder = _Recorder(bindings, {})

    result = asyncio.run(AddressRevalidator().revalidate(session, NEW))

    assert result.accepted is True
    assert recorder.checked == []
    assert session.current_address == NEW
