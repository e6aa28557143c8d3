# storefront/repositories/wishlist_repo.py
import logging

from supabase import AsyncClient

from storefront.core.supabase_client import POSTGREST_ERRORS, remote_error

logger = logging.getLogger(__name__)


class WishlistRepository:
    """
    Data access layer for public.wishlist_items(user_id, product_id, created_at).
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    async def list_product_ids(self, user_id: str) -> list[int]:
        """Newest first."""
        try:
            res = await (
                self.client.table("wishlist_items")
                .select("product_id, created_at")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("wishlist fetch for %s failed: %s", user_id, exc)
            raise remote_error("Loading wishlist", exc) from exc
        return [int(r["product_id"]) for r in (res.data or [])]

    async def add(self, user_id: str, product_id: int) -> None:
        try:
            await (
                self.client.table("wishlist_items")
                .insert({"user_id": user_id, "product_id": product_id})
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("wishlist add %s failed: %s", product_id, exc)
            raise remote_error("Adding to wishlist", exc) from exc

    async def remove(self, user_id: str, product_id: int) -> None:
        try:
            await (
                self.client.table("wishlist_items")
                .delete()
                .eq("user_id", user_id)
                .eq("product_id", product_id)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("wishlist remove %s failed: %s", product_id, exc)
            raise remote_error("Removing from wishlist", exc) from exc
