# storefront/repositories/address_repo.py
import logging
from typing import Any

from supabase import AsyncClient

from storefront.core.supabase_client import POSTGREST_ERRORS, remote_error
from storefront.models.address import Address

logger = logging.getLogger(__name__)


class AddressRepository:
    """
    Data access layer for public.addresses.

    - Pure remote operations (CRUD + the set_default_address RPC).
    - Validation and the "keep one default" rules live in the service.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    async def list_active(self, user_id: str) -> list[Address]:
        try:
            res = await (
                self.client.table("addresses")
                .select("*")
                .eq("user_id", user_id)
                .eq("is_active", True)
                .order("is_default", desc=True)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("list_active(%s) failed: %s", user_id, exc)
            raise remote_error("Loading addresses", exc) from exc
        return [Address.model_validate(row) for row in (res.data or [])]

    async def create(self, payload: dict[str, Any]) -> Address:
        try:
            res = await self.client.table("addresses").insert(payload).execute()
        except POSTGREST_ERRORS as exc:
            logger.error("create address failed: %s", exc)
            raise remote_error("Saving address", exc) from exc
        return Address.model_validate(res.data[0])

    async def update(self, user_id: str, address_id: int, payload: dict[str, Any]) -> Address | None:
        try:
            res = await (
                self.client.table("addresses")
                .update(payload)
                .eq("id", address_id)
                .eq("user_id", user_id)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("update address %s failed: %s", address_id, exc)
            raise remote_error("Saving address", exc) from exc
        rows = res.data or []
        return Address.model_validate(rows[0]) if rows else None

    async def deactivate(self, user_id: str, address_id: int) -> None:
        try:
            await (
                self.client.table("addresses")
                .update({"is_active": False})
                .eq("id", address_id)
                .eq("user_id", user_id)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("deactivate address %s failed: %s", address_id, exc)
            raise remote_error("Deleting address", exc) from exc

    async def set_default(self, user_id: str, address_id: int) -> None:
        """
        Atomically make one address the default (clears the others).
        """
        try:
            await self.client.rpc(
                "set_default_address",
                {"p_user_id": user_id, "p_address_id": address_id},
            ).execute()
        except POSTGREST_ERRORS as exc:
            logger.error("set_default_address(%s) failed: %s", address_id, exc)
            raise remote_error("Setting default address", exc) from exc
