# storefront/services/cart_service.py
import asyncio
import logging
from collections.abc import Callable, Coroutine
from decimal import Decimal
from typing import Any

from storefront.core.errors import ValidationFailed
from storefront.core.notices import NoticeBoard
from storefront.models.cart import CartItem, ProductRef
from storefront.repositories.change_feed import ChangeFeed
from storefront.repositories.local_cart_store import LocalCartStore
from storefront.schemas.cart import CartSummary
from storefront.services.cart_sync import CartSyncEngine, RemoteCart

logger = logging.getLogger(__name__)

CartListener = Callable[[list[CartItem]], None]


class CartStore:
    """
    The cart every page talks to: one instance per storefront session.

    Write-back cache:
      - memory is authoritative for the session and is updated
        synchronously by every mutation (optimistic);
      - the local snapshot is rewritten immediately;
      - the remote cart is written after a debounce window, so a burst
        of edits becomes one remote write of the latest state.

    A failed remote write is never rolled back locally. Clearing is the
    exception to debouncing: it cancels any pending write and empties
    the remote cart at once.
    """

    def __init__(
        self,
        local: LocalCartStore,
        sync: CartSyncEngine,
        notices: NoticeBoard,
        debounce_seconds: float = 0.7,
        max_quantity: int = 999,
    ):
        self.local = local
        self.sync = sync
        self.notices = notices
        self.debounce_seconds = debounce_seconds
        self.max_quantity = max_quantity

        self._items: list[CartItem] = local.load()
        self._listeners: list[CartListener] = []
        self._pending_save: asyncio.TimerHandle | None = None
        self._pending_cart_id: str | None = None
        self._save_tasks: set[asyncio.Task] = set()
        self._reload_task: asyncio.Task | None = None
        self._reload_again = False
        self._syncs_in_flight = 0
        # bumped by every local edit; a reload that raced one is stale
        self._revision = 0

    # ---- read side ----

    @property
    def items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def total_items(self) -> int:
        return sum(it.quantity for it in self._items)

    @property
    def total_price(self) -> Decimal:
        return sum((it.unit_price * it.quantity for it in self._items), Decimal("0"))

    @property
    def loading(self) -> bool:
        return self._syncs_in_flight > 0

    @property
    def has_pending_save(self) -> bool:
        return self._pending_save is not None

    def summary(self) -> CartSummary:
        return CartSummary(
            items=self.items,
            total_items=self.total_items,
            total_price=self.total_price,
            loading=self.loading,
        )

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """
        Register a listener called with the item list after every change.

        Returns a function that unregisters it.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- mutations ----

    def add_item(self, product: ProductRef, quantity: int = 1) -> CartItem:
        """
        Add a product; an existing line is incremented in place (capped),
        a new line goes to the front of the cart.
        """
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")

        next_items = list(self._items)
        for idx, existing in enumerate(next_items):
            if existing.product_id == product.id:
                new_qty = min(self.max_quantity, existing.quantity + quantity)
                line = existing.model_copy(update={"quantity": new_qty})
                next_items[idx] = line
                self.notices.push(
                    "Cart Updated",
                    f"{product.name or 'Item'} quantity is now {new_qty}",
                )
                break
        else:
            line = CartItem(
                product_id=product.id,
                title=product.name,
                unit_price=product.price,
                image_url=product.image,
                quantity=min(self.max_quantity, quantity),
            )
            next_items.insert(0, line)
            self.notices.push("Added to Cart", f"{line.title or 'Product'} added")

        self._commit(next_items)
        return line

    def remove_item(self, product_id: int) -> None:
        self._commit([it for it in self._items if it.product_id != product_id])

    def update_quantity(self, product_id: int, quantity: int) -> None:
        """
        Set a line's quantity; anything below 1 removes the line.
        """
        if quantity < 1:
            self.remove_item(product_id)
            return

        quantity = min(self.max_quantity, quantity)
        self._commit(
            [
                it.model_copy(update={"quantity": quantity}) if it.product_id == product_id else it
                for it in self._items
            ]
        )

    async def clear(self) -> None:
        self._cancel_pending_save()
        self._cancel_reload()
        self._revision += 1
        self._items = []
        self.local.save([])
        self._notify()
        self.notices.push("Cart cleared", "All items removed")

        if self.sync.is_remote:
            await self.sync.save(self.sync.cart_id, [])

    # ---- owner / remote ----

    async def set_owner(
        self,
        owner_id: str | None,
        remote: RemoteCart | None = None,
        feed: ChangeFeed | None = None,
    ) -> None:
        """
        React to sign-in, sign-out or account switch.

        Any pending write still belongs to the previous owner's cart, so
        it is flushed first.
        """
        await self.flush()
        self._cancel_reload()

        self._syncs_in_flight += 1
        try:
            merged = await self.sync.on_owner_changed(owner_id, remote, feed, self._on_remote_change)
        finally:
            self._syncs_in_flight -= 1

        if merged is not None:
            self._adopt(merged)

    async def refresh(self) -> None:
        merged = await self.sync.refresh()
        if merged is not None:
            self._adopt(merged)

    async def flush(self) -> None:
        """
        Write a pending debounced save now and wait for in-flight writes.
        """
        if self._pending_save is not None:
            cart_id = self._pending_cart_id
            self._cancel_pending_save()
            await self.sync.save(cart_id, list(self._items))
        if self._save_tasks:
            await asyncio.gather(*list(self._save_tasks))

    async def close(self) -> None:
        await self.flush()
        self._cancel_reload()
        await self.sync.close()
        self._listeners.clear()

    # ---- internals ----

    def _commit(self, next_items: list[CartItem]) -> None:
        self._revision += 1
        self._items = next_items
        self.local.save(next_items)
        self._notify()
        self._schedule_save()

    def _adopt(self, items: list[CartItem]) -> None:
        self._items = list(items)
        self.local.save(self._items)
        self._notify()

    def _notify(self) -> None:
        snapshot = self.items
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("cart listener %r failed", listener)

    def _schedule_save(self) -> None:
        if not self.sync.is_remote:
            return
        self._cancel_pending_save()
        self._pending_cart_id = self.sync.cart_id
        loop = asyncio.get_running_loop()
        self._pending_save = loop.call_later(self.debounce_seconds, self._fire_save)

    def _fire_save(self) -> None:
        cart_id = self._pending_cart_id
        self._pending_save = None
        self._pending_cart_id = None
        # latest state at fire time: earlier edits in the window are
        # already folded in
        self._spawn(self.sync.save(cart_id, list(self._items)))

    def _cancel_pending_save(self) -> None:
        if self._pending_save is not None:
            self._pending_save.cancel()
        self._pending_save = None

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)
        return task

    def _on_remote_change(self) -> None:
        # Notifications arrive in bursts (a replace is one delete plus
        # one insert per line); collapse them into one reload at a time.
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_again = True
            return
        self._reload_task = asyncio.get_running_loop().create_task(self._reload_from_remote())

    async def _reload_from_remote(self) -> None:
        while True:
            self._reload_again = False
            revision = self._revision
            items = await self.sync.reload(lambda: self._items)
            # A newer local edit is still on its way to the server; its
            # own notification will bring the settled cart back.
            if items is not None and revision == self._revision and not self.has_pending_save:
                self._adopt(items)
            if not self._reload_again:
                break

    def _cancel_reload(self) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_task.cancel()
        self._reload_task = None
        self._reload_again = False
