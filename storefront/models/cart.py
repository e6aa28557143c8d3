# storefront/models/cart.py
from decimal import Decimal

from sqlmodel import SQLModel, Field


class CartItem(SQLModel):
    """
    One line of a cart.

    productId is unique within a cart. Title, price and image are a
    metadata cache of the product row; the remote cart only stores
    (product_id, quantity).
    """

    product_id: int = Field(description="Unique key within the cart")
    title: str = ""
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    image_url: str = ""
    quantity: int = Field(ge=1, description="Must be >= 1")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class ProductRef(SQLModel):
    """
    The product fields a page hands to the cart when adding.
    """

    id: int = Field(gt=0)
    name: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)
    image: str = ""
