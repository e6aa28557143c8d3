import time

import pytest
from conftest import APPLE, BASIL, FakeBackend, line
from fastapi.testclient import TestClient
from jose import jwt

from storefront.core.config import get_settings
from storefront.main import create_app
from storefront.session import SESSION_HEADER, SessionRegistry

settings = get_settings()

SESSION = {SESSION_HEADER: "browser-session-0001"}


def token_for(user_id: str) -> str:
    claims = {"sub": user_id, "email": f"{user_id}@example.com", "exp": int(time.time()) + 3600}
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


def signed_in(user_id: str = "u1") -> dict[str, str]:
    return {**SESSION, "Authorization": f"Bearer {token_for(user_id)}"}


def product_body(product, quantity=1) -> dict:
    return {
        "product": {"id": product.id, "name": product.name, "price": str(product.price), "image": product.image},
        "quantity": quantity,
    }


def quantities(body) -> dict[int, int]:
    return {it["product_id"]: it["quantity"] for it in body["items"]}


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registry(backend, tmp_path) -> SessionRegistry:
    isolated = settings.model_copy(update={"CART_STORAGE_DIR": str(tmp_path)})
    return SessionRegistry(backend.factory, isolated)


@pytest.fixture
def client(registry):
    app = create_app(registry)
    with TestClient(app) as c:
        yield c


def api(path: str) -> str:
    return f"{settings.API_V1_STR}{path}"


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_session_id_is_generated_when_missing(client):
    res = client.get(api("/cart"))
    assert res.status_code == 200
    assert len(res.headers[SESSION_HEADER]) == 32


def test_requests_that_leave_no_state_keep_no_session(client, registry):
    for _ in range(200):
        assert client.get(api("/cart")).status_code == 200
    assert len(registry) == 0

    client.post(api("/cart/items"), json=product_body(APPLE), headers=SESSION)
    assert len(registry) == 1
    assert SESSION[SESSION_HEADER] in registry


def test_guest_cart_lives_in_the_session(client, backend):
    res = client.post(api("/cart/items"), json=product_body(APPLE, 2), headers=SESSION)
    assert res.status_code == 200
    assert res.headers[SESSION_HEADER] == SESSION[SESSION_HEADER]

    body = client.get(api("/cart"), headers=SESSION).json()
    assert quantities(body) == {APPLE.id: 2}
    assert body["total_items"] == 2
    assert backend.connected == []


def test_quantity_update_and_removal(client):
    client.post(api("/cart/items"), json=product_body(APPLE), headers=SESSION)
    client.post(api("/cart/items"), json=product_body(BASIL), headers=SESSION)

    body = client.patch(api(f"/cart/items/{APPLE.id}"), json={"quantity": 5000}, headers=SESSION).json()
    assert quantities(body) == {APPLE.id: 999, BASIL.id: 1}

    body = client.patch(api(f"/cart/items/{BASIL.id}"), json={"quantity": 0}, headers=SESSION).json()
    assert quantities(body) == {APPLE.id: 999}


def test_sign_in_merges_guest_cart(client, backend):
    client.post(api("/cart/items"), json=product_body(APPLE, 2), headers=SESSION)
    backend.carts.carts["u1"] = "cart-u1"
    backend.carts.items["cart-u1"] = [line(APPLE, 5), line(BASIL, 1)]

    body = client.get(api("/cart"), headers=signed_in()).json()

    assert quantities(body) == {APPLE.id: 5, BASIL.id: 1}
    assert {it.product_id: it.quantity for it in backend.carts.items["cart-u1"]} == {APPLE.id: 5, BASIL.id: 1}
    assert backend.connected == ["u1"]

    # same shopper again: no new owner transition
    client.get(api("/cart"), headers=signed_in())
    assert backend.connected == ["u1"]


def test_protected_routes_need_a_token(client):
    assert client.get(api("/orders"), headers=SESSION).status_code == 401
    assert client.get(api("/wishlist"), headers=SESSION).status_code == 401


def test_bad_token_is_rejected(client):
    res = client.get(api("/cart"), headers={**SESSION, "Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_checkout_gate_is_a_conflict(client):
    client.post(api("/cart/items"), json=product_body(APPLE), headers=SESSION)
    client.post(api("/checkout/start"), headers=SESSION)

    res = client.post(api("/checkout/next"), headers=SESSION)

    assert res.status_code == 409
    assert "select a shipping address" in res.json()["detail"]


def test_empty_cart_checkout(client):
    body = client.get(api("/checkout"), headers=SESSION).json()
    assert body["kind"] == "empty"
    assert body["order_placed"] is False


def test_cod_checkout_end_to_end(client, backend):
    backend.addresses.seed("u1", postal_code="560001", is_default=True)
    headers = signed_in()
    client.post(api("/cart/items"), json=product_body(APPLE, 2), headers=headers)

    view = client.post(api("/checkout/start"), headers=headers).json()
    assert view["serviceability_verified"] is True

    client.post(api("/checkout/next"), headers=headers)
    client.post(api("/checkout/payment-method"), json={"method": "cod"}, headers=headers)
    client.post(api("/checkout/next"), headers=headers)
    view = client.post(api("/checkout/submit"), headers=headers).json()

    assert view["kind"] == "placed"
    assert len(backend.orders.created) == 1
    assert backend.orders.waybills == {"order-1": "WB-1001"}
    assert client.get(api("/cart"), headers=headers).json()["items"] == []


def test_invalid_address_is_rejected_before_any_call(client, backend):
    res = client.post(
        api("/addresses"),
        json={
            "full_name": "Asha Rao",
            "phone": "123",
            "line1": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "postal_code": "560001",
        },
        headers=signed_in(),
    )
    assert res.status_code == 422
    assert backend.addresses.rows == {}


def test_wishlist_toggle(client, backend):
    res = client.post(api("/wishlist/7/toggle"), headers=signed_in())
    assert res.json() == {"product_id": 7, "in_wishlist": True}
    assert backend.wishlist.ids["u1"] == [7]


def test_notices_are_drained_once(client):
    client.post(api("/cart/items"), json=product_body(APPLE), headers=SESSION)

    first = client.get(api("/session/notices"), headers=SESSION).json()["notices"]
    second = client.get(api("/session/notices"), headers=SESSION).json()["notices"]

    assert [n["title"] for n in first] == ["Added to Cart"]
    assert second == []
