# storefront/models/order.py
from datetime import datetime
from decimal import Decimal
from typing import Literal

from sqlmodel import SQLModel, Field

from storefront.models.address import AddressSnapshot

PaymentMethod = Literal["card", "upi", "netbanking", "cod"]
PaymentStatus = Literal[
    "pending", "requires_action", "paid", "failed", "refunded", "cod_pending"
]
# pending | shipped | delivered | cancelled
FulfillmentStatus = Literal["pending", "shipped", "delivered", "cancelled"]
ReturnRequestType = Literal["return", "replacement"]

PREPAID_METHODS: frozenset[str] = frozenset({"card", "upi", "netbanking"})


class OrderItem(SQLModel):
    """
    Line item inside an order, with product name/image for display.
    """

    id: int
    order_id: str
    product_id: int
    name: str | None = None
    image: str | None = None
    quantity: int = Field(ge=1)
    unit_price: Decimal
    subtotal: Decimal


class Order(SQLModel):
    """
    Customer order as created by create_order_with_validation.

    items and shipping_address_snapshot never change after creation.
    payment_status and status (fulfillment) evolve independently and
    are only ever changed server-side.
    """

    id: str
    user_id: str | None = None
    created_at: datetime
    status: FulfillmentStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: str | None = None
    total_amount: Decimal
    currency: str = "INR"
    waybill_number: str | None = None
    shipping_address_snapshot: AddressSnapshot | None = None
    items: list[OrderItem] = Field(default_factory=list)

    @property
    def can_retry_payment(self) -> bool:
        return self.payment_status == "pending" and self.status == "pending"

    @property
    def can_request_return(self) -> bool:
        return self.status == "delivered" and self.payment_status == "paid"


class PaymentIntent(SQLModel):
    """
    Gateway order created server-side for one storefront order.
    """

    order_id: str
    gateway_order_id: str
    amount: int
    currency: str


class GatewayCheckout(SQLModel):
    """
    Options the browser passes to the hosted payment overlay.
    """

    key: str
    order_id: str
    amount: int
    currency: str
    name: str
    description: str | None = None
    storefront_order_id: str
