# storefront/routers/reviews.py
from fastapi import APIRouter, Depends, status

from storefront.core.auth import require_auth
from storefront.schemas.review import ReviewCreate
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/products", tags=["Reviews"])


@router.post(
    "/{product_id}/reviews",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_auth)],
)
async def submit_review(
    product_id: int,
    data: ReviewCreate,
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Review a purchased product (one review per product).
    """
    await session.reviews().submit_review(product_id, data)
    return {"detail": "Review submitted"}
