import asyncio

from cartpilot.capabilities import Coordinates, DeliveryAddress, demo_bindings
from cartpilot.functions import ExecutionContext
from cartpilot.functions.orders import PlaceOrderFunction
from cartpilot.functions.schemas import PlaceOrderArgs

NEARBY = DeliveryAddress(
    label="Home",
    city="Lahore",
    coords=Coordinates(31.5212, 74.3582),
    address_id="0d6f1a7e-3c2b-4f8a-9b1e-2a7c5d9e4f10",
)


def _place(bindings, address=None, **arguments):
    async def scenario():
        item = await bindings.get_item_details("item-lays", "shop-corner")
        await bindings.add_item_to_cart("shop-corner", item, {"name": "Corner Mart"})
        context = ExecutionContext(capabilities=bindings, current_address=address)
        return await PlaceOrderFunction().run(PlaceOrderArgs(shopId="shop-corner", **arguments), context)

    return asyncio.run(scenario())


def test_placeholder_address_id_falls_back_to_default():
    bindings = demo_bindings()

    result = _place(bindings, addressId="temp")

    assert result.success is True
    assert bindings.orders[0]["address_id"] == bindings.default_address_id
    assert bindings.orders[0]["payment_method"] == "cash"
    assert "shop-corner" not in bindings.carts


def test_address_snapshot_needs_a_landmark():
    bindings = demo_bindings()

    result = _place(bindings, address=NEARBY)

    assert result.success is False
    assert "landmark" in result.error
    assert result.payload["cart"]["shopId"] == "shop-corner"
    assert bindings.orders == []


def test_landmark_from_special_instructions():
    bindings = demo_bindings()

    result = _place(bindings, address=NEARBY, specialInstructions="Landmark: green mosque")

    assert result.success is True
    assert bindings.orders[0]["address_id"] == NEARBY.address_id


def test_closed_shop_is_rejected():
    bindings = demo_bindings()
    bindings.shops["shop-corner"].is_open = False

    result = _place(bindings)

    assert result.success is False
    assert "closed" in result.error


def test_address_outside_zone_is_rejected():
    bindings = demo_bindings()
    far = DeliveryAddress(label="Far", city="Lahore", coords=Coordinates(31.70, 74.50), landmark="Tower")

    result = _place(bindings, address=far)

    assert result.success is False
    assert "outside" in result.error
