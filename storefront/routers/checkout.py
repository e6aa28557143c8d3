# storefront/routers/checkout.py
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from storefront.schemas.checkout import (
    AddressSelection,
    CheckoutView,
    PaymentConfirmation,
    PaymentMethodChoice,
    PromoCodeApply,
)
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/checkout", tags=["Checkout"])

IN_FLIGHT = {"detail": "A request for this checkout is already in progress"}


def _in_flight() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=IN_FLIGHT)


@router.post("/start", response_model=CheckoutView)
async def start_checkout(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Open checkout: a fresh attempt that loads saved addresses, selects
    the default one and checks delivery to its pincode.
    """
    return await session.start_checkout().start()


@router.get("", response_model=CheckoutView)
async def get_checkout(session: StorefrontSession = Depends(get_storefront_session)):
    """
    What the checkout page shows:
      - kind=empty   : nothing in the cart
      - kind=wizard  : steps 1-3 with order summary
      - kind=placed  : confirmation
    """
    return session.current_checkout().view()


@router.post("/address", response_model=CheckoutView)
async def select_address(
    data: AddressSelection,
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Select a shipping address; delivery to it is re-checked every time.
    """
    return await session.current_checkout().select_address(data.address_id)


@router.post("/serviceability", response_model=CheckoutView)
async def check_serviceability(session: StorefrontSession = Depends(get_storefront_session)):
    checkout = session.current_checkout()
    await checkout.check_serviceability()
    return checkout.view()


@router.post("/payment-method", response_model=CheckoutView)
async def choose_payment_method(
    data: PaymentMethodChoice,
    session: StorefrontSession = Depends(get_storefront_session),
):
    return session.current_checkout().choose_payment_method(data.method)


@router.post("/promo", response_model=CheckoutView)
async def apply_promo(
    data: PromoCodeApply,
    session: StorefrontSession = Depends(get_storefront_session),
):
    return session.current_checkout().apply_promo(data.code)


@router.post("/next", response_model=CheckoutView)
async def next_step(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Continue to the next step.

    Shipping -> Payment needs a selected, serviceable address.
    Payment -> Confirm needs a payment method.
    """
    return session.current_checkout().next()


@router.post("/back", response_model=CheckoutView)
async def previous_step(session: StorefrontSession = Depends(get_storefront_session)):
    return session.current_checkout().back()


@router.post("/step/{step}", response_model=CheckoutView)
async def go_to_step(step: int, session: StorefrontSession = Depends(get_storefront_session)):
    """
    Jump back to an earlier step (step indicator). Forward jumps are refused.
    """
    return session.current_checkout().go_to_step(step)


@router.post("/submit", response_model=CheckoutView)
async def submit_order(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Place the order.

    - COD: the order is placed and the cart cleared.
    - Card/UPI/Netbanking: the response carries `gateway_checkout`, the
      options to open the payment overlay with.

    409 while a previous submit is still running.
    """
    view = await session.current_checkout().submit()
    return _in_flight() if view is None else view


@router.post("/payment/success", response_model=CheckoutView)
async def payment_success(
    data: PaymentConfirmation,
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Payment overlay success callback: verified server-side before the
    order counts as placed.
    """
    view = await session.current_checkout().payment_succeeded(data)
    return _in_flight() if view is None else view


@router.post("/payment/dismiss", response_model=CheckoutView)
async def payment_dismissed(session: StorefrontSession = Depends(get_storefront_session)):
    """
    The shopper closed the overlay. The order stays payable.
    """
    return session.current_checkout().payment_dismissed()


@router.post("/payment/retry", response_model=CheckoutView)
async def retry_payment(session: StorefrontSession = Depends(get_storefront_session)):
    """
    Reopen the overlay for the same order (no new order is created).
    """
    view = await session.current_checkout().retry_payment()
    return _in_flight() if view is None else view
