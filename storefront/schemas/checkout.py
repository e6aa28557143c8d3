# storefront/schemas/checkout.py
from typing import Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

from storefront.models.address import Address
from storefront.models.cart import CartItem
from storefront.models.order import GatewayCheckout, PaymentMethod
from storefront.services.pricing import PriceQuote

CheckoutKind = Literal["empty", "wizard", "placed"]


class AddressSelection(SQLModel):
    model_config = ConfigDict(extra="forbid")

    address_id: int


class PaymentMethodChoice(SQLModel):
    model_config = ConfigDict(extra="forbid")

    method: PaymentMethod


class PromoCodeApply(SQLModel):
    model_config = ConfigDict(extra="forbid")

    code: str

    @field_validator("code")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("promo code cannot be empty")
        return v


class PaymentConfirmation(SQLModel):
    """
    Fields the hosted payment overlay hands to its success callback.
    Forwarded verbatim to verify-razorpay-payment.
    """

    razorpay_payment_id: str
    razorpay_order_id: str
    razorpay_signature: str


class CheckoutView(SQLModel):
    """
    Everything the checkout page renders.

    kind:
      - empty  : the cart is empty and no order was placed
      - wizard : steps 1-3 (Shipping, Payment, Confirm)
      - placed : order confirmed
    """

    kind: CheckoutKind
    order_placed: bool
    state: str
    step: int | None = None
    items: list[CartItem] = []
    addresses: list[Address] = []
    loading_addresses: bool = False
    selected_address_id: int | None = None
    serviceability_verified: bool = False
    checking_serviceability: bool = False
    payment_method: str | None = None
    promo_code: str | None = None
    quote: PriceQuote | None = None
    is_submitting: bool = False
    order_id: str | None = None
    failure_reason: str | None = None
    gateway_checkout: GatewayCheckout | None = None
