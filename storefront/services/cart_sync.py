# storefront/services/cart_sync.py
import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront.core.errors import RemoteCallError
from storefront.core.notices import NoticeBoard
from storefront.models.cart import CartItem
from storefront.repositories.change_feed import ChangeFeed, OnChange, Subscription
from storefront.repositories.local_cart_store import LocalCartStore

logger = logging.getLogger(__name__)


class RemoteCart(Protocol):
    async def get_or_create_cart_id(self, owner_id: str) -> str: ...

    async def load_items(self, cart_id: str) -> list[CartItem]: ...

    async def replace_items(self, cart_id: str, items: list[CartItem]) -> None: ...


def merge_remote_and_local(remote: list[CartItem], local: list[CartItem]) -> list[CartItem]:
    """
    Merge a guest cart into the signed-in cart.

    Rules:
      - productId on both sides: the remote quantity wins (never summed,
        so the same cart seen from two devices does not double up);
        empty remote metadata is filled from the local line.
      - productId only local: adopted as-is, after the remote lines.
    """
    merged: dict[int, CartItem] = {}
    for item in remote:
        merged[item.product_id] = item

    for item in local:
        existing = merged.get(item.product_id)
        if existing is None:
            merged[item.product_id] = item
            continue
        merged[item.product_id] = existing.model_copy(
            update={
                "unit_price": existing.unit_price or item.unit_price,
                "title": existing.title or item.title,
                "image_url": existing.image_url or item.image_url,
            }
        )

    return list(merged.values())


def adopt_remote_quantities(remote: list[CartItem], current: list[CartItem]) -> list[CartItem]:
    """
    Adopt the server cart after a change notification.

    Lines and quantities come from the server as-is; title, price and
    image are taken from what is already in memory when we have it.
    """
    known = {item.product_id: item for item in current}
    adopted: list[CartItem] = []
    for item in remote:
        cached = known.get(item.product_id)
        if cached is None:
            adopted.append(item)
            continue
        adopted.append(
            item.model_copy(
                update={
                    "unit_price": cached.unit_price or item.unit_price,
                    "title": cached.title or item.title,
                    "image_url": cached.image_url or item.image_url,
                }
            )
        )
    return adopted


class CartSyncEngine:
    """
    Keeps the local snapshot and the owner's remote cart converging.

    Owner transitions:
      - -> anonymous: drop the change subscription; keep the local
        snapshot; no remote calls.
      - -> authenticated: resolve the remote cart, merge remote + local,
        write the merge to both sides, then subscribe to changes.

    A generation counter makes a superseded transition (account switched
    while we were loading) give up instead of clobbering the newer one.
    Remote writes and reloads are serialized so a reload never observes
    the half-way point of a delete-then-insert replace.
    """

    def __init__(
        self,
        local: LocalCartStore,
        notices: NoticeBoard,
        save_attempts: int = 3,
        save_backoff: float = 0.3,
    ):
        self.local = local
        self.notices = notices
        self.save_attempts = save_attempts
        self.save_backoff = save_backoff

        self.owner_id: str | None = None
        self.cart_id: str | None = None
        self._remote: RemoteCart | None = None
        self._subscription: Subscription | None = None
        self._generation = 0
        self._io_lock = asyncio.Lock()

    @property
    def is_remote(self) -> bool:
        return self.cart_id is not None and self._remote is not None

    async def on_owner_changed(
        self,
        owner_id: str | None,
        remote: RemoteCart | None = None,
        feed: ChangeFeed | None = None,
        on_notify: OnChange | None = None,
    ) -> list[CartItem] | None:
        """
        Switch to a new owner.

        Returns the merged cart to adopt, or None when there is nothing to
        adopt (anonymous, superseded, or the remote cart could not be read).
        """
        self._generation += 1
        generation = self._generation

        await self._unsubscribe()
        self.owner_id = owner_id
        self.cart_id = None
        self._remote = remote

        if owner_id is None or remote is None:
            logger.info("cart owner is anonymous; local snapshot only")
            return None

        try:
            cart_id = await remote.get_or_create_cart_id(owner_id)
            async with self._io_lock:
                remote_items = await remote.load_items(cart_id)
        except RemoteCallError as exc:
            # Keep the local cart; pushing it now could wipe a remote
            # cart we simply failed to read.
            logger.error("cart sync for %s failed: %s", owner_id, exc.detail)
            self.notices.error("Cart sync failed", "Your cart is saved on this device.")
            return None

        if generation != self._generation:
            logger.debug("cart sync for %s superseded", owner_id)
            return None

        merged = merge_remote_and_local(remote_items, self.local.load())
        self.local.save(merged)
        self.cart_id = cart_id
        logger.info(
            "cart %s merged for %s: %d remote + local -> %d lines",
            cart_id, owner_id, len(remote_items), len(merged),
        )

        await self.save(cart_id, merged)

        if generation != self._generation:
            return None

        if feed is not None and on_notify is not None:
            try:
                self._subscription = await feed.subscribe("cart_items", "cart_id", cart_id, on_notify)
            except RemoteCallError as exc:
                logger.warning("cart change feed unavailable for %s: %s", cart_id, exc.detail)

        return merged

    async def reload(self, current: Callable[[], list[CartItem]]) -> list[CartItem] | None:
        """
        Re-read the remote cart after a change notification.

        Server quantities are adopted outright; `current` supplies the
        in-memory lines whose metadata is reused.
        """
        if not self.is_remote:
            return None

        generation = self._generation
        cart_id = self.cart_id
        remote = self._remote
        try:
            async with self._io_lock:
                remote_items = await remote.load_items(cart_id)
        except RemoteCallError as exc:
            logger.warning("cart reload for %s failed: %s", cart_id, exc.detail)
            return None

        if generation != self._generation:
            return None
        return adopt_remote_quantities(remote_items, current())

    async def refresh(self) -> list[CartItem] | None:
        """
        Re-read the remote cart and merge it with the local snapshot.
        """
        if not self.is_remote:
            return None

        generation = self._generation
        cart_id = self.cart_id
        remote = self._remote
        try:
            async with self._io_lock:
                remote_items = await remote.load_items(cart_id)
        except RemoteCallError as exc:
            logger.warning("cart refresh for %s failed: %s", cart_id, exc.detail)
            self.notices.error("Cart refresh failed", str(exc.detail))
            return None

        if generation != self._generation:
            return None
        merged = merge_remote_and_local(remote_items, self.local.load())
        self.local.save(merged)
        return merged

    async def save(self, cart_id: str, items: list[CartItem]) -> bool:
        """
        Replace the remote cart with `items`.

        Retried with exponential backoff; if every attempt fails the
        local snapshot stays the accepted state and the next mutation or
        sign-in tries again. Never raises.
        """
        remote = self._remote
        if remote is None:
            return False

        async with self._io_lock:
            try:
                async for attempt in AsyncRetrying(
                    reraise=True,
                    stop=stop_after_attempt(self.save_attempts),
                    wait=wait_exponential(multiplier=self.save_backoff, max=self.save_backoff * 10),
                    retry=retry_if_exception_type(RemoteCallError),
                ):
                    with attempt:
                        await remote.replace_items(cart_id, items)
            except RemoteCallError as exc:
                logger.warning(
                    "saving cart %s failed after %d attempts: %s",
                    cart_id, self.save_attempts, exc.detail,
                )
                self.notices.error("Cart not synced", "We'll retry on your next change.")
                return False

        logger.debug("cart %s saved (%d lines)", cart_id, len(items))
        return True

    async def close(self) -> None:
        self._generation += 1
        await self._unsubscribe()

    async def _unsubscribe(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
