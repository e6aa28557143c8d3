import asyncio
import os
import tempfile
from decimal import Decimal

# Settings are read once at import time; configure before importing the app.
os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_KEY", "anon-test-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("CART_STORAGE_DIR", tempfile.mkdtemp(prefix="storefront-carts-"))

import pytest  # noqa: E402

from storefront.core.errors import RemoteCallError  # noqa: E402
from storefront.core.notices import NoticeBoard  # noqa: E402
from storefront.models.address import Address  # noqa: E402
from storefront.models.cart import CartItem, ProductRef  # noqa: E402
from storefront.models.order import Order, PaymentIntent  # noqa: E402
from storefront.models.profile import Profile  # noqa: E402
from storefront.repositories.local_cart_store import LocalCartStore  # noqa: E402
from storefront.session import RemoteServices  # noqa: E402
from storefront.services.cart_service import CartStore  # noqa: E402
from storefront.services.cart_sync import CartSyncEngine  # noqa: E402


# ---- products ----

APPLE = ProductRef(id=1, name="Apple Soap", price=Decimal("100"), image="apple.png")
BASIL = ProductRef(id=2, name="Basil Oil", price=Decimal("50"), image="basil.png")
CEDAR = ProductRef(id=3, name="Cedar Balm", price=Decimal("600"), image="cedar.png")


def line(product: ProductRef, quantity: int, with_meta: bool = True) -> CartItem:
    if not with_meta:
        return CartItem(product_id=product.id, quantity=quantity)
    return CartItem(
        product_id=product.id,
        title=product.name,
        unit_price=product.price,
        image_url=product.image,
        quantity=quantity,
    )


def quantities(items: list[CartItem]) -> dict[int, int]:
    return {it.product_id: it.quantity for it in items}


async def settle(rounds: int = 5, delay: float = 0.01) -> None:
    """Let spawned tasks (reloads, debounced saves) run."""
    for _ in range(rounds):
        await asyncio.sleep(delay)


# ---- fakes ----


class FakeCartRepo:
    """In-memory remote cart store."""

    def __init__(self):
        self.carts: dict[str, str] = {}
        self.items: dict[str, list[CartItem]] = {}
        self.replace_calls: list[tuple[str, list[CartItem]]] = []
        self.fail_load = False
        self.fail_replace = 0

    async def get_or_create_cart_id(self, owner_id: str) -> str:
        return self.carts.setdefault(owner_id, f"cart-{owner_id}")

    async def load_items(self, cart_id: str) -> list[CartItem]:
        if self.fail_load:
            raise RemoteCallError("Loading your cart failed: offline")
        return [it.model_copy() for it in self.items.get(cart_id, [])]

    async def replace_items(self, cart_id: str, items: list[CartItem]) -> None:
        self.replace_calls.append((cart_id, list(items)))
        if self.fail_replace > 0:
            self.fail_replace -= 1
            raise RemoteCallError("Saving your cart failed: offline")
        self.items[cart_id] = [it.model_copy() for it in items]


class FakeSubscription:
    def __init__(self, feed: "FakeChangeFeed", table: str, column: str, value: str, on_change):
        self.feed = feed
        self.table = table
        self.column = column
        self.value = value
        self.on_change = on_change
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeChangeFeed:
    def __init__(self):
        self.subscriptions: list[FakeSubscription] = []

    async def subscribe(self, table, column, value, on_change):
        sub = FakeSubscription(self, table, column, value, on_change)
        self.subscriptions.append(sub)
        return sub

    def active(self, table: str) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if s.table == table and not s.closed]

    def emit(self, table: str, value: str) -> None:
        for sub in self.active(table):
            if sub.value == value:
                sub.on_change()


class FakeEdgeFunctions:
    def __init__(self):
        self.access_token = "token"
        self.serviceable: dict[str, bool] = {"560001": True, "110001": True}
        self.fail: set[str] = set()
        self.calls: list[tuple[str, tuple]] = []
        self.waybill: str | None = "WB-1001"
        self._gateway_seq = 0

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise RemoteCallError(f"{name} failed: unavailable")

    def called(self, name: str) -> list[tuple]:
        return [args for n, args in self.calls if n == name]

    async def check_pincode(self, pincode: str) -> bool:
        self._record("check_pincode", pincode)
        return self.serviceable.get(pincode, False)

    async def create_payment_order(self, order_id: str) -> PaymentIntent:
        self._record("create_payment_order", order_id)
        self._gateway_seq += 1
        return PaymentIntent(
            order_id=order_id,
            gateway_order_id=f"order_rzp_{self._gateway_seq}",
            amount=125900,
            currency="INR",
        )

    async def verify_payment(self, order_id: str, gateway_fields: dict) -> None:
        self._record("verify_payment", order_id, gateway_fields)

    async def create_shipment(self, order_id: str, address: dict, items: list[dict]) -> str | None:
        self._record("create_shipment", order_id, address, items)
        return self.waybill

    async def request_return(self, order_id: str, request_type: str, reason: str) -> None:
        self._record("request_return", order_id, request_type, reason)


class FakeOrderRepo:
    def __init__(self):
        self.created: list[tuple] = []
        self.waybills: dict[str, str] = {}
        self.orders: dict[str, Order] = {}
        self.fail_create = False
        self.gate: asyncio.Event | None = None

    async def create_order_with_validation(self, user_id, items, shipping_address_id, payment_method) -> str:
        self.created.append((user_id, items, shipping_address_id, payment_method))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_create:
            raise RemoteCallError("Placing order failed: Insufficient stock")
        return f"order-{len(self.created)}"

    async def set_waybill(self, order_id: str, waybill_number: str) -> None:
        self.waybills[order_id] = waybill_number

    async def list_for_user(self, user_id: str) -> list[Order]:
        orders = [o for o in self.orders.values() if o.user_id == user_id]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def get_for_user(self, user_id: str, order_id: str) -> Order | None:
        order = self.orders.get(order_id)
        if order is None or order.user_id != user_id:
            return None
        return order


class FakeAddressRepo:
    def __init__(self):
        self.rows: dict[int, Address] = {}
        self._seq = 0

    def seed(self, user_id: str, postal_code: str = "560001", is_default: bool = False, **fields) -> Address:
        self._seq += 1
        address = Address(
            id=self._seq,
            user_id=user_id,
            full_name=fields.get("full_name", "Asha Rao"),
            phone=fields.get("phone", "+919876543210"),
            line1=fields.get("line1", "12 MG Road"),
            city=fields.get("city", "Bengaluru"),
            state=fields.get("state", "Karnataka"),
            postal_code=postal_code,
            is_default=is_default,
        )
        self.rows[address.id] = address
        return address

    async def list_active(self, user_id: str) -> list[Address]:
        rows = [a for a in self.rows.values() if a.user_id == user_id and a.is_active]
        return sorted(rows, key=lambda a: not a.is_default)

    async def create(self, payload: dict) -> Address:
        self._seq += 1
        address = Address.model_validate({**payload, "id": self._seq})
        self.rows[address.id] = address
        return address

    async def update(self, user_id: str, address_id: int, payload: dict) -> Address | None:
        current = self.rows.get(address_id)
        if current is None or current.user_id != user_id:
            return None
        updated = current.model_copy(update=payload)
        self.rows[address_id] = updated
        return updated

    async def deactivate(self, user_id: str, address_id: int) -> None:
        current = self.rows[address_id]
        self.rows[address_id] = current.model_copy(update={"is_active": False})

    async def set_default(self, user_id: str, address_id: int) -> None:
        for aid, address in self.rows.items():
            if address.user_id == user_id:
                self.rows[aid] = address.model_copy(update={"is_default": aid == address_id})


class FakeWishlistRepo:
    def __init__(self):
        self.ids: dict[str, list[int]] = {}
        self.fail = False

    async def list_product_ids(self, user_id: str) -> list[int]:
        return list(self.ids.get(user_id, []))

    async def add(self, user_id: str, product_id: int) -> None:
        if self.fail:
            raise RemoteCallError("Adding to wishlist failed: denied")
        self.ids.setdefault(user_id, []).insert(0, product_id)

    async def remove(self, user_id: str, product_id: int) -> None:
        if self.fail:
            raise RemoteCallError("Removing from wishlist failed: denied")
        self.ids[user_id] = [p for p in self.ids.get(user_id, []) if p != product_id]


class FakeReviewRepo:
    def __init__(self):
        self.reviews: list[tuple] = []

    async def submit(self, product_id, rating, title, body) -> None:
        self.reviews.append((product_id, rating, title, body))


class FakeProfileRepo:
    def __init__(self):
        self.rows: dict[str, Profile] = {}

    async def get(self, user_id: str) -> Profile | None:
        return self.rows.get(user_id)

    async def upsert(self, user_id: str, fields: dict) -> Profile:
        current = self.rows.get(user_id) or Profile(id=user_id)
        self.rows[user_id] = current.model_copy(update=fields)
        return self.rows[user_id]


class FakeBackend:
    """Backend shared by every shopper in a test."""

    def __init__(self):
        self.carts = FakeCartRepo()
        self.feed = FakeChangeFeed()
        self.addresses = FakeAddressRepo()
        self.orders = FakeOrderRepo()
        self.wishlist = FakeWishlistRepo()
        self.functions = FakeEdgeFunctions()
        self.reviews = FakeReviewRepo()
        self.profiles = FakeProfileRepo()
        self.connected: list[str] = []

    async def factory(self, auth) -> RemoteServices:
        self.connected.append(auth.user_id)
        return RemoteServices(
            carts=self.carts,
            feed=self.feed,
            addresses=self.addresses,
            orders=self.orders,
            wishlist=self.wishlist,
            reviews=self.reviews,
            profiles=self.profiles,
            functions=self.functions,
        )



# ---- fixtures ----


@pytest.fixture
def notices() -> NoticeBoard:
    return NoticeBoard()


@pytest.fixture
def local(tmp_path) -> LocalCartStore:
    return LocalCartStore(tmp_path / "cart.json")


@pytest.fixture
def cart_repo() -> FakeCartRepo:
    return FakeCartRepo()


@pytest.fixture
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def make_store(local, notices):
    def _make(debounce_seconds: float = 0.05, max_quantity: int = 999) -> CartStore:
        sync = CartSyncEngine(local, notices, save_attempts=3, save_backoff=0)
        return CartStore(local, sync, notices, debounce_seconds=debounce_seconds, max_quantity=max_quantity)

    return _make


@pytest.fixture
def store(make_store) -> CartStore:
    return make_store()


@pytest.fixture
def functions() -> FakeEdgeFunctions:
    return FakeEdgeFunctions()


@pytest.fixture
def order_repo() -> FakeOrderRepo:
    return FakeOrderRepo()


@pytest.fixture
def address_repo() -> FakeAddressRepo:
    return FakeAddressRepo()


@pytest.fixture
def wishlist_repo() -> FakeWishlistRepo:
    return FakeWishlistRepo()
