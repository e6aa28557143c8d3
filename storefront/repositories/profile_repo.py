# storefront/repositories/profile_repo.py
import logging
from typing import Any

from supabase import AsyncClient

from storefront.core.supabase_client import POSTGREST_ERRORS, remote_error
from storefront.models.profile import Profile

logger = logging.getLogger(__name__)


class ProfileRepository:
    def __init__(self, client: AsyncClient):
        self.client = client

    async def get(self, user_id: str) -> Profile | None:
        try:
            res = await (
                self.client.table("profiles")
                .select("id, full_name, avatar")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("profile fetch for %s failed: %s", user_id, exc)
            raise remote_error("Loading profile", exc) from exc
        rows = res.data or []
        return Profile.model_validate({**rows[0], "id": str(rows[0]["id"])}) if rows else None

    async def upsert(self, user_id: str, fields: dict[str, Any]) -> Profile:
        try:
            res = await (
                self.client.table("profiles")
                .upsert({"id": user_id, **fields})
                .execute()
            )
        except POSTGREST_ERRORS as exc:
            logger.error("profile update for %s failed: %s", user_id, exc)
            raise remote_error("Saving profile", exc) from exc
        row = (res.data or [{"id": user_id, **fields}])[0]
        return Profile.model_validate({**row, "id": str(row["id"])})
