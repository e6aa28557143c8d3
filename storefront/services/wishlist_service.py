# storefront/services/wishlist_service.py
import asyncio
import logging

from storefront.core.errors import AuthRequired, RemoteCallError
from storefront.core.notices import NoticeBoard
from storefront.repositories.change_feed import ChangeFeed, Subscription
from storefront.repositories.wishlist_repo import WishlistRepository

logger = logging.getLogger(__name__)


class WishlistService:
    """
    The shopper's wishlist for one storefront session.

    - product ids are kept newest first
    - add/remove are optimistic and rolled back when the backend refuses
      (the error is re-raised so the page can tell the shopper)
    - changes made elsewhere (another tab or device) arrive through the
      change feed and trigger a refresh
    """

    def __init__(self, notices: NoticeBoard):
        self.notices = notices
        self.user_id: str | None = None
        self.product_ids: list[int] = []
        self.loading = False
        self.mutating = False
        self._repo: WishlistRepository | None = None
        self._subscription: Subscription | None = None
        self._refresh_task: asyncio.Task | None = None

    def contains(self, product_id: int) -> bool:
        return int(product_id) in self.product_ids

    async def set_owner(
        self,
        user_id: str | None,
        repo: WishlistRepository | None = None,
        feed: ChangeFeed | None = None,
    ) -> None:
        await self._unsubscribe()
        self.user_id = user_id
        self._repo = repo if user_id is not None else None
        self.product_ids = []
        if self._repo is None:
            return

        await self.refresh()
        if feed is not None:
            try:
                self._subscription = await feed.subscribe(
                    "wishlist_items", "user_id", user_id, self._on_remote_change
                )
            except RemoteCallError as exc:
                logger.warning("wishlist change feed unavailable for %s: %s", user_id, exc.detail)

    async def refresh(self) -> list[int]:
        if self._repo is None or self.user_id is None:
            self.product_ids = []
            return []

        self.loading = True
        try:
            self.product_ids = await self._repo.list_product_ids(self.user_id)
        except RemoteCallError as exc:
            logger.error("wishlist fetch failed: %s", exc.detail)
            self.product_ids = []
        finally:
            self.loading = False
        return list(self.product_ids)

    def _require_owner(self) -> tuple[str, WishlistRepository]:
        if self.user_id is None or self._repo is None:
            self.notices.error("Login required", "Please sign in to use your wishlist.")
            raise AuthRequired("Authentication required")
        return self.user_id, self._repo

    async def add(self, product_id: int) -> None:
        user_id, repo = self._require_owner()
        pid = int(product_id)
        previous = list(self.product_ids)
        self.product_ids = [pid] + [p for p in self.product_ids if p != pid]

        self.mutating = True
        try:
            await repo.add(user_id, pid)
        except RemoteCallError:
            self.product_ids = previous
            self.notices.error("Wishlist not updated", "Could not add this product.")
            raise
        finally:
            self.mutating = False

    async def remove(self, product_id: int) -> None:
        user_id, repo = self._require_owner()
        pid = int(product_id)
        previous = list(self.product_ids)
        self.product_ids = [p for p in self.product_ids if p != pid]

        self.mutating = True
        try:
            await repo.remove(user_id, pid)
        except RemoteCallError:
            self.product_ids = previous
            self.notices.error("Wishlist not updated", "Could not remove this product.")
            raise
        finally:
            self.mutating = False

    async def toggle(self, product_id: int) -> bool:
        """Returns True when the product is in the wishlist afterwards."""
        if self.contains(product_id):
            await self.remove(product_id)
            return False
        await self.add(product_id)
        return True

    async def close(self) -> None:
        await self._unsubscribe()

    def _on_remote_change(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self.refresh())

    async def _unsubscribe(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
