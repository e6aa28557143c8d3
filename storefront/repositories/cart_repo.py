# storefront/repositories/cart_repo.py
import logging
from decimal import Decimal

from postgrest.exceptions import APIError
from supabase import AsyncClient

from storefront.core.supabase_client import POSTGREST_ERRORS, UNIQUE_VIOLATION, remote_error
from storefront.models.cart import CartItem

logger = logging.getLogger(__name__)


class CartRepository:
    """
    Remote cart for one authenticated owner.

    Tables:
      - carts(id uuid, user_id uuid UNIQUE)
      - cart_items(cart_id, product_id, quantity, unit_price?)
      - products(id, name, price, image)

    Only (product_id, quantity) is authoritative remotely; title, price
    and image are joined from products on load.
    """

    def __init__(self, client: AsyncClient):
        self.client = client
        self._cart_ids: dict[str, str] = {}

    async def _find_cart_id(self, owner_id: str) -> str | None:
        res = await (
            self.client.table("carts")
            .select("id")
            .eq("user_id", owner_id)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return str(rows[0]["id"]) if rows else None

    async def get_or_create_cart_id(self, owner_id: str) -> str:
        """
        Look up the owner's cart, creating it when absent.

        carts.user_id is unique: when two sessions race to create, the
        loser's insert fails with unique_violation and re-reads the
        winner's row.
        """
        cached = self._cart_ids.get(owner_id)
        if cached:
            return cached

        try:
            cart_id = await self._find_cart_id(owner_id)
            if cart_id is None:
                try:
                    res = await self.client.table("carts").insert({"user_id": owner_id}).execute()
                    cart_id = str(res.data[0]["id"])
                except APIError as exc:
                    if exc.code != UNIQUE_VIOLATION:
                        raise
                    logger.info("cart for %s created concurrently; re-reading", owner_id)
                    cart_id = await self._find_cart_id(owner_id)
        except POSTGREST_ERRORS as exc:
            logger.error("get_or_create_cart_id(%s) failed: %s", owner_id, exc)
            raise remote_error("Loading your cart", exc) from exc

        if cart_id is None:
            raise remote_error("Loading your cart", ValueError("no cart row returned"))

        self._cart_ids[owner_id] = cart_id
        return cart_id

    async def load_items(self, cart_id: str) -> list[CartItem]:
        """
        Load cart lines with current product metadata.

        Lines whose product no longer exists are dropped, and their rows
        deleted best-effort. If the product lookup itself fails, lines
        come back with zero price and no metadata.
        """
        try:
            res = await (
                self.client.table("cart_items")
                .select("product_id, quantity")
                .eq("cart_id", cart_id)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("load_items(%s) failed: %s", cart_id, exc)
            raise remote_error("Loading your cart", exc) from exc

        rows = [r for r in (res.data or []) if r.get("product_id") and int(r.get("quantity") or 0) > 0]
        if not rows:
            return []

        product_ids = sorted({int(r["product_id"]) for r in rows})

        try:
            prod_res = await (
                self.client.table("products")
                .select("id, name, price, image")
                .in_("id", product_ids)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("load_items(%s): product lookup failed: %s", cart_id, exc)
            return [
                CartItem(product_id=int(r["product_id"]), quantity=int(r["quantity"]))
                for r in rows
            ]

        products = {int(p["id"]): p for p in (prod_res.data or [])}

        orphan_ids = [pid for pid in product_ids if pid not in products]
        if orphan_ids:
            await self._delete_orphans(cart_id, orphan_ids)

        items: list[CartItem] = []
        for r in rows:
            pid = int(r["product_id"])
            product = products.get(pid)
            if product is None:
                continue
            items.append(
                CartItem(
                    product_id=pid,
                    quantity=int(r["quantity"]),
                    unit_price=Decimal(str(product.get("price") or 0)),
                    title=product.get("name") or "",
                    image_url=product.get("image") or "",
                )
            )
        return items

    async def _delete_orphans(self, cart_id: str, product_ids: list[int]) -> None:
        try:
            await (
                self.client.table("cart_items")
                .delete()
                .eq("cart_id", cart_id)
                .in_("product_id", product_ids)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.debug("deleting orphan cart_items %s failed: %s", product_ids, exc)

    async def replace_items(self, cart_id: str, items: list[CartItem]) -> None:
        """
        Replace the whole remote cart: delete all rows, then bulk insert.

        Not a diff. A failure between the two steps leaves the remote
        cart empty until the next successful save; the local snapshot
        is the recovery source.
        """
        try:
            await self.client.table("cart_items").delete().eq("cart_id", cart_id).execute()
        except POSTGREST_ERRORS as exc:
            # carry on: the insert below may still converge the cart
            logger.error("replace_items(%s): delete failed: %s", cart_id, exc)

        if not items:
            return

        rows = [
            {
                "cart_id": cart_id,
                "product_id": it.product_id,
                "quantity": it.quantity,
                "unit_price": float(it.unit_price),
            }
            for it in items
        ]

        try:
            try:
                await self.client.table("cart_items").insert(rows).execute()
            except APIError as exc:
                if "unit_price" not in (exc.message or ""):
                    raise
                # Older schema without the optional unit_price column.
                logger.debug("cart_items has no unit_price column; inserting without it")
                for row in rows:
                    row.pop("unit_price")
                await self.client.table("cart_items").insert(rows).execute()
        except POSTGREST_ERRORS as exc:
            logger.error("replace_items(%s): insert failed: %s", cart_id, exc)
            raise remote_error("Saving your cart", exc) from exc
