import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from supabase_functions import AsyncFunctionsClient

from storefront.core import storage_utils, supabase_client
from storefront.core.edge_functions import EdgeFunctionsClient
from storefront.core.errors import RemoteCallError
from storefront.repositories.change_feed import SupabaseChangeFeed

FUNCTIONS_URL = "http://supabase.test/functions/v1"


class FunctionsHost:
    """Edge function endpoints behind an httpx mock transport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.replies: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = request.url.path.rsplit("/", 1)[-1]
        if name in self.replies:
            return self.replies[name]
        return httpx.Response(404, json={"error": "function not found"})

    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def host() -> FunctionsHost:
    return FunctionsHost()


@pytest.fixture
def edge(host) -> EdgeFunctionsClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(host.handler))
    functions = AsyncFunctionsClient(FUNCTIONS_URL, {"apikey": "anon-test-key"}, http_client=http)
    return EdgeFunctionsClient(SimpleNamespace(functions=functions), "shopper-token", http_client=http)


async def test_pincode_check_is_a_get_with_query(edge, host):
    host.replies["delhivery-check-pincode"] = httpx.Response(200, json={"is_serviceable": True})

    assert await edge.check_pincode("560001") is True

    request = host.requests[-1]
    assert request.method == "GET"
    assert request.url.path == "/functions/v1/delhivery-check-pincode"
    assert request.url.params["pincode"] == "560001"
    assert request.headers["Authorization"] == "Bearer shopper-token"
    assert request.headers["apikey"] == "anon-test-key"


async def test_pincode_not_serviceable(edge, host):
    host.replies["delhivery-check-pincode"] = httpx.Response(200, json={"is_serviceable": False})
    assert await edge.check_pincode("999999") is False


async def test_pincode_http_error_is_remote_error(edge, host):
    host.replies["delhivery-check-pincode"] = httpx.Response(500, text="courier down")
    with pytest.raises(RemoteCallError):
        await edge.check_pincode("560001")


async def test_payment_order_posts_order_id(edge, host):
    host.replies["create-razorpay-order"] = httpx.Response(
        200, json={"razorpay_order_id": "order_rzp_9", "amount": 125900, "currency": "INR"}
    )

    intent = await edge.create_payment_order("order-1")

    request = host.requests[-1]
    assert request.method == "POST"
    assert request.url.path == "/functions/v1/create-razorpay-order"
    assert request.headers["Authorization"] == "Bearer shopper-token"
    assert host.last_body() == {"order_id": "order-1"}
    assert intent.gateway_order_id == "order_rzp_9"
    assert intent.amount == 125900


async def test_payment_order_without_gateway_id_fails(edge, host):
    host.replies["create-razorpay-order"] = httpx.Response(200, json={"amount": 100})
    with pytest.raises(RemoteCallError):
        await edge.create_payment_order("order-1")


async def test_verify_payment_posts_gateway_fields(edge, host):
    host.replies["verify-razorpay-payment"] = httpx.Response(200, json={"ok": True})

    await edge.verify_payment("order-1", {"razorpay_payment_id": "pay_1", "razorpay_signature": "sig"})

    assert host.requests[-1].url.path == "/functions/v1/verify-razorpay-payment"
    assert host.last_body() == {
        "order_id": "order-1",
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": "sig",
    }


async def test_shipment_returns_waybill(edge, host):
    host.replies["delhivery-create-shipment"] = httpx.Response(200, json={"waybill_number": "WB-77"})

    waybill = await edge.create_shipment("order-1", {"pincode": "560001"}, [{"productId": 1, "quantity": 2}])

    assert waybill == "WB-77"
    body = host.last_body()
    assert body["order_id"] == "order-1"
    assert body["items"] == [{"productId": 1, "quantity": 2}]


async def test_return_request_posts_reason(edge, host):
    host.replies["request-return"] = httpx.Response(200, json={})

    await edge.request_return("order-1", "exchange", "Wrong size")

    assert host.requests[-1].url.path == "/functions/v1/request-return"
    assert host.last_body() == {"order_id": "order-1", "request_type": "exchange", "reason": "Wrong size"}


async def test_function_error_is_remote_error(edge, host):
    host.replies["verify-razorpay-payment"] = httpx.Response(400, json={"error": "Invalid signature"})

    with pytest.raises(RemoteCallError) as exc:
        await edge.verify_payment("order-1", {})
    assert "Invalid signature" in exc.value.detail


async def test_relay_error_is_remote_error(edge, host):
    host.replies["request-return"] = httpx.Response(200, json={}, headers={"x-relay-header": "true"})
    with pytest.raises(RemoteCallError):
        await edge.request_return("order-1", "return", "Damaged")


# ---- realtime change feed ----


class FakeChannel:
    def __init__(self, topic):
        self.topic = topic
        self.bindings = []
        self.fail_with: Exception | None = None

    def on_postgres_changes(self, event, **kwargs):
        self.bindings.append((event, kwargs))
        return self

    async def subscribe(self):
        if self.fail_with is not None:
            raise self.fail_with
        return self


class FakeRealtimeClient:
    def __init__(self):
        self.channels: list[FakeChannel] = []
        self.removed: list[FakeChannel] = []
        self.fail_with: Exception | None = None

    def channel(self, topic):
        channel = FakeChannel(topic)
        channel.fail_with = self.fail_with
        self.channels.append(channel)
        return channel

    async def remove_channel(self, channel):
        self.removed.append(channel)


async def test_change_feed_filters_rows_and_notifies():
    client = FakeRealtimeClient()
    feed = SupabaseChangeFeed(client)
    seen = []

    subscription = await feed.subscribe("cart_items", "cart_id", "cart-u1", lambda: seen.append(1))

    channel = client.channels[0]
    event, binding = channel.bindings[0]
    assert event == "*"
    assert binding["table"] == "cart_items"
    assert binding["schema"] == "public"
    assert binding["filter"] == "cart_id=eq.cart-u1"

    binding["callback"]({"eventType": "DELETE", "old": {"id": 1}})
    assert seen == [1]

    await subscription.close()
    await subscription.close()
    assert client.removed == [channel]


async def test_change_feed_subscribe_failure_is_remote_error():
    client = FakeRealtimeClient()
    client.fail_with = asyncio.TimeoutError()

    with pytest.raises(RemoteCallError):
        await SupabaseChangeFeed(client).subscribe("wishlist_items", "user_id", "u1", lambda: None)


# ---- client factory ----


async def test_client_is_authorized_as_the_shopper(monkeypatch):
    created = {}

    class FakePostgrest:
        def auth(self, token):
            created["postgrest_token"] = token

    class FakeRealtime:
        async def set_auth(self, token):
            created["realtime_token"] = token

    async def fake_acreate_client(url, key, options=None):
        created.update(url=url, key=key, headers=dict(options.headers))
        return SimpleNamespace(postgrest=FakePostgrest(), realtime=FakeRealtime())

    monkeypatch.setattr(supabase_client, "acreate_client", fake_acreate_client)

    await supabase_client.supabase_for_user("shopper-token")

    assert created["url"] == supabase_client.settings.SUPABASE_URL
    assert created["key"] == supabase_client.settings.SUPABASE_KEY
    assert created["headers"]["Authorization"] == "Bearer shopper-token"
    assert created["postgrest_token"] == "shopper-token"
    assert created["realtime_token"] == "shopper-token"


def test_remote_error_prefers_api_message():
    error = supabase_client.remote_error("Loading your cart", SimpleNamespace(message="permission denied"))
    assert error.detail == "Loading your cart failed: permission denied"


# ---- storage ----


class FakeBucket:
    def __init__(self):
        self.uploads = []
        self.removed = []

    async def upload(self, path, data, options):
        self.uploads.append((path, data, options))

    async def remove(self, paths):
        self.removed.extend(paths)

    async def get_public_url(self, path):
        return f"http://supabase.test/storage/v1/object/public/avatars/{path}"


class FakeStorage:
    def __init__(self):
        self.buckets: dict[str, FakeBucket] = {}

    def from_(self, name):
        return self.buckets.setdefault(name, FakeBucket())


async def test_avatar_upload_and_delete_use_the_avatar_bucket():
    client = SimpleNamespace(storage=FakeStorage())

    path = await storage_utils.upload_to_storage(client, "u1/1.png", b"png", "image/png")
    await storage_utils.delete_from_storage(client, "u1/0.png")
    url = await storage_utils.public_url(client, path)

    bucket = client.storage.buckets[storage_utils.BUCKET]
    assert bucket.uploads == [("u1/1.png", b"png", {"upsert": "true", "cache-control": "3600", "content-type": "image/png"})]
    assert bucket.removed == ["u1/0.png"]
    assert storage_utils.extract_storage_path(url) == "u1/1.png"


def test_extract_storage_path():
    assert storage_utils.extract_storage_path(None) is None
    assert storage_utils.extract_storage_path("u/1.png") == "u/1.png"
    assert storage_utils.extract_storage_path("https://elsewhere/x.png") is None


def test_generated_avatar_path_is_under_the_user():
    path = storage_utils.generate_avatar_path("u1", ".PNG")
    assert path.startswith("u1/")
    assert path.endswith(".png")
