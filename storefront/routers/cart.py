# storefront/routers/cart.py
from fastapi import APIRouter, Depends

from storefront.schemas.cart import CartItemCreate, CartItemUpdate, CartSummary
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/cart", tags=["Cart"])


@router.get("", response_model=CartSummary)
async def get_cart(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Current cart for this browser session.

    Works for guests (device-local cart) and signed-in shoppers (synced
    with the account cart; `loading` is true while a sign-in merge runs).
    """
    return session.cart.summary()


@router.post("/items", response_model=CartSummary)
async def add_cart_item(
    data: CartItemCreate,
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Add a product to the cart.

    - Existing line: quantity is incremented (capped at 999).
    - New line: inserted at the top of the cart.
    The account cart is updated shortly after (debounced).
    """
    session.cart.add_item(data.product, data.quantity)
    return session.cart.summary()


@router.patch("/items/{product_id}", response_model=CartSummary)
async def update_cart_item(
    product_id: int,
    data: CartItemUpdate,
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Set a line's quantity. Zero or less removes the line.
    """
    session.cart.update_quantity(product_id, data.quantity)
    return session.cart.summary()


@router.delete("/items/{product_id}", response_model=CartSummary)
async def remove_cart_item(
    product_id: int,
    session: StorefrontSession = Depends(get_storefront_session),
):
    session.cart.remove_item(product_id)
    return session.cart.summary()


@router.delete("", response_model=CartSummary)
async def clear_cart(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Empty the cart everywhere right away (no debounce).
    """
    await session.cart.clear()
    return session.cart.summary()


@router.post("/refresh", response_model=CartSummary)
async def refresh_cart(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Re-read the account cart and merge it with this device's cart.
    """
    await session.cart.refresh()
    return session.cart.summary()
