# storefront/session.py
"""
Per-browser-session wiring.

A storefront session owns what the browser tab would otherwise keep in
memory: the cart store (with its local snapshot and sync engine), the
wishlist, the checkout in progress and the pending notices. Sessions are
keyed by the X-Storefront-Session header.

Remote collaborators are built per authenticated identity by a factory,
so tests can hand in fakes.
"""

import asyncio
import logging
import re
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import Depends, Request, Response
from realtime import AuthorizationError, NotConnectedError

from storefront.core.auth import get_auth_session
from storefront.core.config import Settings, get_settings
from storefront.core.edge_functions import EdgeFunctionsClient
from storefront.core.errors import InvalidTransition, RemoteCallError
from storefront.core.notices import NoticeBoard
from storefront.core.supabase_client import supabase_for_user
from storefront.models.auth import AuthSession
from storefront.repositories.address_repo import AddressRepository
from storefront.repositories.cart_repo import CartRepository
from storefront.repositories.change_feed import ChangeFeed, SupabaseChangeFeed
from storefront.repositories.local_cart_store import LocalCartStore
from storefront.repositories.order_repo import OrderRepository
from storefront.repositories.profile_repo import ProfileRepository
from storefront.repositories.review_repo import ReviewRepository
from storefront.repositories.wishlist_repo import WishlistRepository
from storefront.services.address_service import AddressService
from storefront.services.cart_service import CartStore
from storefront.services.cart_sync import CartSyncEngine, RemoteCart
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.profile_service import ProfileService
from storefront.services.review_service import ReviewService
from storefront.services.wishlist_service import WishlistService

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Storefront-Session"

# Session ids become directory names for the local snapshot.
SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


@dataclass
class RemoteServices:
    """
    Everything that talks to the backend on behalf of one shopper.
    """

    carts: RemoteCart
    feed: ChangeFeed
    addresses: AddressRepository
    orders: OrderRepository
    wishlist: WishlistRepository
    reviews: ReviewRepository
    profiles: ProfileRepository
    functions: EdgeFunctionsClient
    client: Any = None

    async def set_access_token(self, access_token: str) -> None:
        """Apply a refreshed token for the same shopper."""
        self.functions.access_token = access_token
        if self.client is not None:
            self.client.postgrest.auth(access_token)
            await self.client.realtime.set_auth(access_token)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.remove_all_channels()


RemoteFactory = Callable[[AuthSession], Awaitable[RemoteServices]]


async def supabase_remote_factory(auth: AuthSession) -> RemoteServices:
    """
    Build the Supabase-backed collaborators for a signed-in shopper.

    Raises:
        RemoteCallError: the client could not be created or authorized.
    """
    try:
        client = await supabase_for_user(auth.access_token)
    except (httpx.HTTPError, AuthorizationError, NotConnectedError, OSError) as exc:
        logger.error("connecting to backend for %s failed: %s", auth.user_id, exc)
        raise RemoteCallError(f"Connecting to backend failed: {exc}") from exc

    return RemoteServices(
        carts=CartRepository(client),
        feed=SupabaseChangeFeed(client),
        addresses=AddressRepository(client),
        orders=OrderRepository(client),
        wishlist=WishlistRepository(client),
        reviews=ReviewRepository(client),
        profiles=ProfileRepository(client),
        functions=EdgeFunctionsClient(client, auth.access_token),
        client=client,
    )


class StorefrontSession:
    """
    State of one browser session.

    `sync_auth` runs on every request with the shopper behind it and
    turns sign-in, sign-out and account switches into owner transitions
    of the cart and the wishlist.
    """

    def __init__(self, session_id: str, remote_factory: RemoteFactory, settings: Settings):
        self.session_id = session_id
        self.remote_factory = remote_factory
        self.notices = NoticeBoard()

        local = LocalCartStore.for_session(
            settings.CART_STORAGE_DIR, session_id, settings.CART_STORAGE_KEY
        )
        self.sync = CartSyncEngine(
            local,
            self.notices,
            save_attempts=settings.CART_SAVE_ATTEMPTS,
            save_backoff=settings.CART_SAVE_BACKOFF_SECONDS,
        )
        self.cart = CartStore(
            local,
            self.sync,
            self.notices,
            debounce_seconds=settings.CART_SAVE_DEBOUNCE_MS / 1000,
            max_quantity=settings.CART_MAX_QUANTITY,
        )
        self.wishlist = WishlistService(self.notices)

        self.auth: AuthSession | None = None
        self.remote: RemoteServices | None = None
        self.checkout: CheckoutService | None = None
        self._auth_lock = asyncio.Lock()

        self.active_requests = 0
        self.last_seen = time.monotonic()

    @property
    def user_id(self) -> str | None:
        return self.auth.user_id if self.auth is not None else None

    @property
    def is_blank(self) -> bool:
        """Nothing here that a fresh session would not rebuild."""
        return (
            self.auth is None
            and self.checkout is None
            and not self.cart.items
            and not self.cart.has_pending_save
            and not self.notices.peek()
        )

    async def sync_auth(self, auth: AuthSession | None) -> None:
        new_user = auth.user_id if auth is not None else None

        async with self._auth_lock:
            if new_user == self.user_id:
                if auth is not None and auth.access_token != self.auth.access_token:
                    self.auth = auth
                    if self.remote is not None:
                        await self.remote.set_access_token(auth.access_token)
                return

            logger.info("session %s: owner %s -> %s", self.session_id, self.user_id, new_user)
            remote = None
            if auth is not None:
                try:
                    remote = await self.remote_factory(auth)
                except RemoteCallError as exc:
                    # stay on the previous owner; the next request retries
                    self.notices.error("Cart sync failed", str(exc.detail))
                    return

            previous, self.remote = self.remote, remote
            self.auth = auth
            self.checkout = None

            await self.cart.set_owner(
                new_user,
                remote.carts if remote is not None else None,
                remote.feed if remote is not None else None,
            )
            await self.wishlist.set_owner(
                new_user,
                remote.wishlist if remote is not None else None,
                remote.feed if remote is not None else None,
            )
            if previous is not None:
                await previous.close()

    def _require_remote(self) -> RemoteServices:
        if self.remote is None:
            raise RemoteCallError("Backend unavailable for this session")
        return self.remote

    # ---- per-request services ----

    def orders(self) -> OrderService:
        remote = self._require_remote()
        return OrderService(remote.orders, remote.functions, self.notices)

    def addresses(self) -> AddressService:
        return AddressService(self._require_remote().addresses, self.notices)

    def reviews(self) -> ReviewService:
        return ReviewService(self._require_remote().reviews, self.notices)

    def profile(self) -> ProfileService:
        remote = self._require_remote()
        return ProfileService(remote.profiles, remote.client, self.notices)

    # ---- checkout ----

    def start_checkout(self) -> CheckoutService:
        """
        A fresh attempt each time the shopper opens checkout.

        Refused while the current attempt is placing or confirming an
        order; replacing it would drop its in-flight guard.
        """
        if self.checkout is not None and self.checkout.is_submitting:
            raise InvalidTransition("Your order is still being placed")
        remote = self.remote
        self.checkout = CheckoutService(
            self.cart,
            self.notices,
            auth=self.auth,
            address_repo=remote.addresses if remote is not None else None,
            order_repo=remote.orders if remote is not None else None,
            functions=remote.functions if remote is not None else None,
        )
        return self.checkout

    def current_checkout(self) -> CheckoutService:
        return self.checkout if self.checkout is not None else self.start_checkout()

    async def close(self) -> None:
        await self.cart.close()
        await self.wishlist.close()
        if self.remote is not None:
            await self.remote.close()
            self.remote = None


class SessionRegistry:
    """
    In-memory map of session id -> StorefrontSession for this process.

    Sessions are kept in least-recently-used order. A session idle for
    SESSION_IDLE_TTL_SECONDS is closed, and so are the oldest idle ones
    once SESSION_MAX_COUNT is reached. A session that holds nothing
    (guest, empty cart, no checkout, no notices) is dropped as soon as
    its last request ends; the same id simply starts over next time.
    """

    def __init__(self, remote_factory: RemoteFactory = supabase_remote_factory, settings: Settings | None = None):
        self.remote_factory = remote_factory
        self.settings = settings or get_settings()
        self.idle_ttl = self.settings.SESSION_IDLE_TTL_SECONDS
        self.max_sessions = self.settings.SESSION_MAX_COUNT
        self._sessions: dict[str, StorefrontSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def acquire(self, session_id: str) -> StorefrontSession:
        """
        Get (or create) a session for one request. Pair with `release`.
        """
        await self._evict(session_id)

        session = self._sessions.pop(session_id, None)
        if session is None:
            session = StorefrontSession(session_id, self.remote_factory, self.settings)
            logger.debug("session %s created", session_id)
        self._sessions[session_id] = session
        session.active_requests += 1
        session.last_seen = time.monotonic()
        return session

    async def release(self, session: StorefrontSession) -> None:
        session.active_requests -= 1
        session.last_seen = time.monotonic()
        if session.active_requests > 0 or not session.is_blank:
            return
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
            await session.close()

    async def _evict(self, acquiring: str) -> None:
        now = time.monotonic()
        excess = len(self._sessions) - self.max_sessions
        if acquiring not in self._sessions:
            excess += 1
        victims = []
        for session_id, session in self._sessions.items():
            if session_id == acquiring or session.active_requests:
                continue
            if excess > 0 or now - session.last_seen > self.idle_ttl:
                victims.append(session_id)
                excess -= 1

        for session_id in victims:
            session = self._sessions.pop(session_id)
            await session.close()
        if victims:
            logger.info("evicted %d storefront sessions", len(victims))

    async def close_all(self) -> None:
        sessions, self._sessions = list(self._sessions.values()), {}
        for session in sessions:
            await session.close()
        logger.info("closed %d storefront sessions", len(sessions))


async def get_storefront_session(
    request: Request,
    response: Response,
    auth: AuthSession | None = Depends(get_auth_session),
) -> AsyncIterator[StorefrontSession]:
    """
    Resolve (or start) the browser session and bring its owner in line
    with the shopper behind this request.

    The session id is echoed back in the X-Storefront-Session header;
    a missing or malformed id starts a new session.
    """
    session_id = request.headers.get(SESSION_HEADER, "")
    if not SESSION_ID_RE.match(session_id):
        session_id = uuid.uuid4().hex
    response.headers[SESSION_HEADER] = session_id

    registry: SessionRegistry = request.app.state.sessions
    session = await registry.acquire(session_id)
    try:
        await session.sync_auth(auth)
        yield session
    finally:
        await registry.release(session)
