# storefront/routers/wishlist.py
from fastapi import APIRouter, Depends

from storefront.core.auth import require_auth
from storefront.schemas.wishlist import WishlistRead, WishlistToggleResult
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(
    prefix="/wishlist",
    tags=["Wishlist"],
    dependencies=[Depends(require_auth)],
)


@router.get("", response_model=WishlistRead)
async def get_wishlist(session: StorefrontSession = Depends(get_storefront_session)):
    """Wishlisted product ids, newest first."""
    return WishlistRead(product_ids=session.wishlist.product_ids)


@router.post("/{product_id}", response_model=WishlistRead)
async def add_to_wishlist(
    product_id: int,
    session: StorefrontSession = Depends(get_storefront_session),
):
    await session.wishlist.add(product_id)
    return WishlistRead(product_ids=session.wishlist.product_ids)


@router.delete("/{product_id}", response_model=WishlistRead)
async def remove_from_wishlist(
    product_id: int,
    session: StorefrontSession = Depends(get_storefront_session),
):
    await session.wishlist.remove(product_id)
    return WishlistRead(product_ids=session.wishlist.product_ids)


@router.post("/{product_id}/toggle", response_model=WishlistToggleResult)
async def toggle_wishlist(
    product_id: int,
    session: StorefrontSession = Depends(get_storefront_session),
):
    in_wishlist = await session.wishlist.toggle(product_id)
    return WishlistToggleResult(product_id=product_id, in_wishlist=in_wishlist)
