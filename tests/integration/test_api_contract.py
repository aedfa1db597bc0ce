from fastapi.testclient import TestClient

from cartpilot.main import app


client = TestClient(app)


def test_openapi_contains_expected_paths():
    response = client.get("/openapi.json")
    assert response.status_code == 200
    schema = response.json()
    paths = schema.get("paths", {})

    expected = [
        "/chat",
        "/chat/stream",
        "/conversations",
        "/conversations/{conversation_id}",
        "/conversations/{conversation_id}/auth",
        "/conversations/{conversation_id}/address",
        "/conversations/{conversation_id}/view",
        "/conversations/{conversation_id}/session",
        "/functions",
        "/metrics",
        "/health",
    ]

    for path in expected:
        assert path in paths, f"Missing {path} from OpenAPI paths"

    assert "post" in paths["/chat"]
    assert "delete" in paths["/conversations/{conversation_id}"]


def test_health_reports_backends():
    payload = client.get("/health").json()

    assert payload["status"] == "ok"
    assert payload["commerce_backend"] == "in-memory"


def test_function_catalogue_is_closed_and_typed():
    catalogue = {entry["name"]: entry for entry in client.get("/functions").json()}

    assert set(catalogue) == {
        "intelligentSearch",
        "searchItemsInShop",
        "addItemsToCart",
        "addItemToCart",
        "removeItemFromCart",
        "updateItemQuantity",
        "getCart",
        "getAllCarts",
        "placeOrder",
    }
    place_order = catalogue["placeOrder"]["parameters"]
    assert place_order["required"] == ["shopId"]
    assert "addressId" in place_order["properties"]
    assert catalogue["addItemsToCart"]["parameters"]["required"] == ["items"]


def test_request_id_is_echoed():
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
