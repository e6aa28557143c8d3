# storefront/services/checkout_machine.py
"""
Checkout wizard as explicit states and a pure transition function.

    Shipping --Next--> Payment --Next--> Confirm --OrderCreated--> Placed (cod)
       ^                  |  ^              |                  +-> AwaitingPayment (prepaid)
       +------Back--------+  +----Back------+
                                            --SubmitFailed--> Failed --Back--> Confirm

    AwaitingPayment --PaymentSucceeded--> Placed
    AwaitingPayment --PaymentDismissed--> PaymentCancelled --PaymentReopened--> AwaitingPayment
    AwaitingPayment --SubmitFailed------> Failed (order kept)

Entered data lives in CheckoutDraft and travels with every non-terminal
state, so going back never loses it. Forward gates are checked here and
nowhere else.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Union

from storefront.core.errors import InvalidTransition
from storefront.models.order import PREPAID_METHODS

PAYMENT_METHODS = frozenset({"card", "upi", "netbanking", "cod"})
DEFAULT_PAYMENT_METHOD = "card"


@dataclass(frozen=True)
class CheckoutDraft:
    selected_address_id: int | None = None
    serviceability_verified: bool = False
    payment_method: str | None = DEFAULT_PAYMENT_METHOD
    promo_code: str | None = None
    discount: Decimal = Decimal("0")


# ---- states ----


@dataclass(frozen=True)
class Shipping:
    draft: CheckoutDraft = CheckoutDraft()


@dataclass(frozen=True)
class Payment:
    draft: CheckoutDraft


@dataclass(frozen=True)
class Confirm:
    draft: CheckoutDraft


@dataclass(frozen=True)
class AwaitingPayment:
    """Order exists; the hosted payment overlay is open."""

    draft: CheckoutDraft
    order_id: str


@dataclass(frozen=True)
class PaymentCancelled:
    """Shopper closed the overlay; the order stays payable."""

    draft: CheckoutDraft
    order_id: str


@dataclass(frozen=True)
class Placed:
    order_id: str
    payment_method: str


@dataclass(frozen=True)
class Failed:
    draft: CheckoutDraft
    reason: str
    order_id: str | None = None


CheckoutState = Union[Shipping, Payment, Confirm, AwaitingPayment, PaymentCancelled, Placed, Failed]


# ---- events ----


@dataclass(frozen=True)
class SelectAddress:
    address_id: int


@dataclass(frozen=True)
class ServiceabilityChecked:
    address_id: int
    serviceable: bool


@dataclass(frozen=True)
class ChoosePaymentMethod:
    method: str


@dataclass(frozen=True)
class ApplyPromo:
    code: str
    discount: Decimal


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class GoToStep:
    step: int


@dataclass(frozen=True)
class OrderCreated:
    order_id: str


@dataclass(frozen=True)
class PaymentSucceeded:
    pass


@dataclass(frozen=True)
class PaymentDismissed:
    pass


@dataclass(frozen=True)
class PaymentReopened:
    pass


@dataclass(frozen=True)
class SubmitFailed:
    reason: str


CheckoutEvent = Union[
    SelectAddress,
    ServiceabilityChecked,
    ChoosePaymentMethod,
    ApplyPromo,
    Next,
    Back,
    GoToStep,
    OrderCreated,
    PaymentSucceeded,
    PaymentDismissed,
    PaymentReopened,
    SubmitFailed,
]

_EDITABLE = (Shipping, Payment, Confirm)


def step_of(state: CheckoutState) -> int | None:
    """Wizard step shown for a state (None once the order is placed)."""
    if isinstance(state, Shipping):
        return 1
    if isinstance(state, Payment):
        return 2
    if isinstance(state, Placed):
        return None
    return 3


def _reject(state: CheckoutState, event: CheckoutEvent, why: str | None = None) -> InvalidTransition:
    detail = f"Cannot {type(event).__name__} from {type(state).__name__}"
    return InvalidTransition(f"{detail}: {why}" if why else detail)


def _at_step(step: int, draft: CheckoutDraft) -> CheckoutState:
    if step == 1:
        return Shipping(draft)
    if step == 2:
        return Payment(draft)
    return Confirm(draft)


def transition(state: CheckoutState, event: CheckoutEvent) -> CheckoutState:
    """
    Apply one event to the checkout.

    Raises:
        InvalidTransition: the event is not allowed from `state`, or a
        forward gate is not satisfied.
    """
    if isinstance(event, SelectAddress):
        if not isinstance(state, Shipping):
            raise _reject(state, event)
        # Any selection, even of the same address, must be re-verified.
        return Shipping(
            replace(state.draft, selected_address_id=event.address_id, serviceability_verified=False)
        )

    if isinstance(event, ServiceabilityChecked):
        if not isinstance(state, Shipping):
            raise _reject(state, event)
        if event.address_id != state.draft.selected_address_id:
            # result for an address that is no longer selected
            return state
        return Shipping(replace(state.draft, serviceability_verified=event.serviceable))

    if isinstance(event, ChoosePaymentMethod):
        if not isinstance(state, Payment):
            raise _reject(state, event)
        if event.method not in PAYMENT_METHODS:
            raise _reject(state, event, f"unknown payment method {event.method!r}")
        return Payment(replace(state.draft, payment_method=event.method))

    if isinstance(event, ApplyPromo):
        if not isinstance(state, _EDITABLE):
            raise _reject(state, event)
        if state.draft.promo_code:
            raise _reject(state, event, "a promo code is already applied")
        draft = replace(state.draft, promo_code=event.code.upper(), discount=event.discount)
        return type(state)(draft)

    if isinstance(event, Next):
        if isinstance(state, Shipping):
            if state.draft.selected_address_id is None:
                raise _reject(state, event, "select a shipping address")
            if not state.draft.serviceability_verified:
                raise _reject(state, event, "delivery to this pincode is not verified")
            return Payment(state.draft)
        if isinstance(state, Payment):
            if not state.draft.payment_method:
                raise _reject(state, event, "choose a payment method")
            return Confirm(state.draft)
        raise _reject(state, event)

    if isinstance(event, Back):
        if isinstance(state, Payment):
            return Shipping(state.draft)
        if isinstance(state, Confirm):
            return Payment(state.draft)
        if isinstance(state, Failed) and state.order_id is None:
            return Confirm(state.draft)
        raise _reject(state, event)

    if isinstance(event, GoToStep):
        current = step_of(state)
        if not isinstance(state, _EDITABLE) or current is None:
            raise _reject(state, event)
        if event.step < 1 or event.step >= current:
            raise _reject(state, event, "only earlier steps can be revisited")
        return _at_step(event.step, state.draft)

    if isinstance(event, OrderCreated):
        if not isinstance(state, Confirm):
            raise _reject(state, event)
        method = state.draft.payment_method or DEFAULT_PAYMENT_METHOD
        if method in PREPAID_METHODS:
            return AwaitingPayment(state.draft, event.order_id)
        return Placed(event.order_id, method)

    if isinstance(event, PaymentSucceeded):
        if not isinstance(state, AwaitingPayment):
            raise _reject(state, event)
        return Placed(state.order_id, state.draft.payment_method or DEFAULT_PAYMENT_METHOD)

    if isinstance(event, PaymentDismissed):
        if not isinstance(state, AwaitingPayment):
            raise _reject(state, event)
        return PaymentCancelled(state.draft, state.order_id)

    if isinstance(event, PaymentReopened):
        if not isinstance(state, PaymentCancelled):
            raise _reject(state, event)
        return AwaitingPayment(state.draft, state.order_id)

    if isinstance(event, SubmitFailed):
        if isinstance(state, Confirm):
            return Failed(state.draft, event.reason)
        if isinstance(state, (AwaitingPayment, PaymentCancelled)):
            return Failed(state.draft, event.reason, state.order_id)
        raise _reject(state, event)

    raise _reject(state, event, "unknown event")
