# storefront/repositories/review_repo.py
import logging

from supabase import AsyncClient

from storefront.core.supabase_client import POSTGREST_ERRORS, remote_error

logger = logging.getLogger(__name__)


class ReviewRepository:
    def __init__(self, client: AsyncClient):
        self.client = client

    async def submit(self, product_id: int, rating: int, title: str | None, body: str) -> None:
        """
        submit_product_review checks purchase history and one-review-per-user
        server-side.
        """
        try:
            await self.client.rpc(
                "submit_product_review",
                {
                    "p_product_id": product_id,
                    "p_rating": rating,
                    "p_title": title,
                    "p_body": body,
                },
            ).execute()
        except POSTGREST_ERRORS as exc:
            logger.error("submit_product_review(%s) failed: %s", product_id, exc)
            raise remote_error("Submitting review", exc) from exc
