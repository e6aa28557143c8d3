# storefront/repositories/order_repo.py
import logging
from typing import Any

from supabase import AsyncClient

from storefront.core.supabase_client import POSTGREST_ERRORS, remote_error
from storefront.models.order import Order, OrderItem

logger = logging.getLogger(__name__)

ORDER_COLUMNS = (
    "id, user_id, created_at, status, payment_status, payment_method, "
    "total_amount, currency, waybill_number, shipping_address_snapshot"
)


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - Orders are only created through create_order_with_validation,
        which prices, checks stock and snapshots the address atomically
        server-side.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    # ---- Orders ----

    async def create_order_with_validation(
        self,
        user_id: str,
        items: list[dict[str, int]],
        shipping_address_id: int,
        payment_method: str,
    ) -> str:
        try:
            res = await self.client.rpc(
                "create_order_with_validation",
                {
                    "p_user_id": user_id,
                    "p_items": items,
                    "p_shipping_address_id": shipping_address_id,
                    "p_payment_method": payment_method,
                },
            ).execute()
        except POSTGREST_ERRORS as exc:
            logger.error("create_order_with_validation failed: %s", exc)
            raise remote_error("Placing order", exc) from exc

        if not res.data:
            raise remote_error("Placing order", ValueError("no order id returned"))
        return str(res.data)

    async def set_waybill(self, order_id: str, waybill_number: str) -> None:
        try:
            await (
                self.client.table("orders")
                .update({"waybill_number": waybill_number})
                .eq("id", order_id)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("storing waybill for %s failed: %s", order_id, exc)
            raise remote_error("Saving tracking number", exc) from exc

    async def list_for_user(self, user_id: str) -> list[Order]:
        try:
            res = await (
                self.client.table("orders")
                .select(ORDER_COLUMNS)
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("list orders for %s failed: %s", user_id, exc)
            raise remote_error("Loading orders", exc) from exc
        return await self._with_items(res.data or [])

    async def get_for_user(self, user_id: str, order_id: str) -> Order | None:
        try:
            res = await (
                self.client.table("orders")
                .select(ORDER_COLUMNS)
                .eq("user_id", user_id)
                .eq("id", order_id)
                .limit(1)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("get order %s failed: %s", order_id, exc)
            raise remote_error("Loading order", exc) from exc
        orders = await self._with_items(res.data or [])
        return orders[0] if orders else None

    # ---- Order items ----

    async def _with_items(self, order_rows: list[dict[str, Any]]) -> list[Order]:
        if not order_rows:
            return []

        order_ids = [str(r["id"]) for r in order_rows]
        try:
            res = await (
                self.client.table("order_items")
                .select("id, order_id, product_id, quantity, unit_price, subtotal")
                .in_("order_id", order_ids)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("loading order items failed: %s", exc)
            raise remote_error("Loading orders", exc) from exc

        item_rows = res.data or []
        products = await self._product_meta({int(it["product_id"]) for it in item_rows})

        items_by_order: dict[str, list[OrderItem]] = {}
        for it in item_rows:
            pid = int(it["product_id"])
            meta = products.get(pid, {})
            items_by_order.setdefault(str(it["order_id"]), []).append(
                OrderItem(
                    id=it["id"],
                    order_id=str(it["order_id"]),
                    product_id=pid,
                    name=meta.get("name"),
                    image=meta.get("image"),
                    quantity=it["quantity"],
                    unit_price=it["unit_price"],
                    subtotal=it["subtotal"],
                )
            )

        return [
            Order.model_validate({**row, "id": str(row["id"]), "items": items_by_order.get(str(row["id"]), [])})
            for row in order_rows
        ]

    async def _product_meta(self, product_ids: set[int]) -> dict[int, dict[str, Any]]:
        if not product_ids:
            return {}
        try:
            res = await (
                self.client.table("products")
                .select("id, name, image")
                .in_("id", sorted(product_ids))
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            # names/images are cosmetic; show the order without them
            logger.debug("product metadata for orders failed: %s", exc)
            return {}
        return {int(p["id"]): p for p in (res.data or [])}
