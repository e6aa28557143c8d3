# storefront/schemas/cart.py
from decimal import Decimal

from sqlmodel import SQLModel, Field

from storefront.models.cart import CartItem, ProductRef


class CartItemCreate(SQLModel):
    """
    Payload for adding to cart.

    The page sends the product fields it already shows, so no product
    lookup is needed to render the line.
    """

    product: ProductRef
    quantity: int = Field(default=1, gt=0)


class CartItemUpdate(SQLModel):
    """
    Payload for changing a line's quantity.

    Zero or negative removes the line.
    """

    quantity: int


class CartSummary(SQLModel):
    """
    Full cart response model with totals.
    """

    items: list[CartItem]
    total_items: int
    total_price: Decimal
    loading: bool = False
