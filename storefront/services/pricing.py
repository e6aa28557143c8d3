# storefront/services/pricing.py
from decimal import ROUND_HALF_UP, Decimal

from sqlmodel import SQLModel

from storefront.core.config import get_settings
from storefront.core.errors import ValidationFailed

settings = get_settings()

# code -> percentage of subtotal (Decimal < 1) or flat rupees (Decimal >= 1)
PROMO_CODES: dict[str, Decimal] = {
    "MATICA10": Decimal("0.10"),
    "WELCOME": Decimal("100"),
}


class PriceQuote(SQLModel):
    """
    Checkout order summary (whole rupees, display only; the order RPC
    prices the order authoritatively).
    """

    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def _round_rupees(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def shipping_fee(subtotal: Decimal) -> Decimal:
    """Free strictly above the threshold (₹999), flat fee otherwise."""
    if subtotal > settings.FREE_SHIPPING_THRESHOLD:
        return Decimal("0")
    return Decimal(settings.SHIPPING_FEE)


def tax(subtotal: Decimal) -> Decimal:
    return _round_rupees(subtotal * Decimal(str(settings.TAX_RATE)))


def promo_discount(code: str, subtotal: Decimal) -> Decimal:
    """
    Resolve a promo code into a discount for the given subtotal.

    Raises:
        ValidationFailed: unknown code.
    """
    rule = PROMO_CODES.get(code.strip().upper())
    if rule is None:
        raise ValidationFailed("This promo code doesn't exist")
    if rule < 1:
        return _round_rupees(subtotal * rule)
    return rule


def quote(subtotal: Decimal, discount: Decimal = Decimal("0")) -> PriceQuote:
    ship = shipping_fee(subtotal)
    tax_amount = tax(subtotal)
    return PriceQuote(
        subtotal=subtotal,
        shipping=ship,
        tax=tax_amount,
        discount=discount,
        total=subtotal + ship + tax_amount - discount,
    )
