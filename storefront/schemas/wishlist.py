# storefront/schemas/wishlist.py
from sqlmodel import SQLModel


class WishlistRead(SQLModel):
    """Product ids, newest first."""

    product_ids: list[int]


class WishlistToggleResult(SQLModel):
    product_id: int
    in_wishlist: bool
