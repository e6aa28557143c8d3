# storefront/services/review_service.py
import logging

from storefront.core.notices import NoticeBoard
from storefront.core.errors import RemoteCallError
from storefront.repositories.review_repo import ReviewRepository
from storefront.schemas.review import ReviewCreate

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(self, review_repo: ReviewRepository, notices: NoticeBoard):
        self.review_repo = review_repo
        self.notices = notices

    async def submit_review(self, product_id: int, data: ReviewCreate) -> None:
        try:
            await self.review_repo.submit(product_id, data.rating, data.title, data.body)
        except RemoteCallError as exc:
            self.notices.error("Review not submitted", str(exc.detail))
            raise
        logger.info("review submitted for product %s", product_id)
        self.notices.push("Review submitted", "Thanks for sharing your experience!")
