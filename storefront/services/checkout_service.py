# storefront/services/checkout_service.py
import logging
from decimal import Decimal
from typing import Any

from storefront.core.edge_functions import EdgeFunctionsClient
from storefront.core.errors import (
    AuthRequired,
    InvalidTransition,
    NotFound,
    RemoteCallError,
    ValidationFailed,
)
from storefront.core.notices import NoticeBoard
from storefront.models.address import Address
from storefront.models.auth import AuthSession
from storefront.models.cart import CartItem
from storefront.models.order import GatewayCheckout
from storefront.repositories.address_repo import AddressRepository
from storefront.repositories.order_repo import OrderRepository
from storefront.schemas.checkout import CheckoutView, PaymentConfirmation
from storefront.services import pricing
from storefront.services.cart_service import CartStore
from storefront.services.checkout_machine import (
    ApplyPromo,
    AwaitingPayment,
    Back,
    CheckoutEvent,
    CheckoutState,
    ChoosePaymentMethod,
    Confirm,
    Failed,
    GoToStep,
    Next,
    OrderCreated,
    Payment,
    PaymentCancelled,
    PaymentDismissed,
    PaymentReopened,
    PaymentSucceeded,
    Placed,
    SelectAddress,
    ServiceabilityChecked,
    Shipping,
    SubmitFailed,
    step_of,
    transition,
)
from storefront.services.payment_service import open_hosted_checkout

logger = logging.getLogger(__name__)

STATE_NAMES: dict[type, str] = {
    Shipping: "shipping",
    Payment: "payment",
    Confirm: "confirm",
    AwaitingPayment: "awaiting_payment",
    PaymentCancelled: "payment_cancelled",
    Placed: "placed",
    Failed: "failed",
}


def shipment_items(items: list[CartItem]) -> list[dict[str, Any]]:
    """Cart lines in the shape delhivery-create-shipment reads."""
    return [
        {
            "productId": it.product_id,
            "title": it.title,
            "price": float(it.unit_price),
            "imageUrl": it.image_url,
            "quantity": it.quantity,
        }
        for it in items
    ]


class CheckoutService:
    """
    One checkout attempt: the wizard state plus the I/O around it.

    Responsibilities:
      - load the shopper's addresses and verify pincode serviceability
      - feed shopper actions through `transition()` (all gates live there)
      - place the order exactly once per attempt (in-flight guard)
      - COD: request a shipment and clear the cart
      - prepaid: open the hosted payment overlay; clear the cart only
        after the payment is verified

    A new instance is created each time the shopper opens checkout.
    """

    def __init__(
        self,
        cart: CartStore,
        notices: NoticeBoard,
        auth: AuthSession | None = None,
        address_repo: AddressRepository | None = None,
        order_repo: OrderRepository | None = None,
        functions: EdgeFunctionsClient | None = None,
    ):
        self.cart = cart
        self.notices = notices
        self.auth = auth
        self.address_repo = address_repo
        self.order_repo = order_repo
        self.functions = functions

        self.state: CheckoutState = Shipping()
        self.addresses: list[Address] = []
        self.loading_addresses = False
        self.checking_serviceability = False
        self.is_submitting = False
        self.gateway_checkout: GatewayCheckout | None = None

    # ---- internal helpers ----

    def _apply(self, event: CheckoutEvent) -> CheckoutState:
        self.state = transition(self.state, event)
        logger.debug("checkout -> %s", type(self.state).__name__)
        return self.state

    def _require_remote(self) -> AuthSession:
        if (
            self.auth is None
            or self.address_repo is None
            or self.order_repo is None
            or self.functions is None
        ):
            self.notices.error("Login required", "Please sign in to place your order.")
            raise AuthRequired("Authentication required")
        return self.auth

    def _address(self, address_id: int | None) -> Address | None:
        for addr in self.addresses:
            if addr.id == address_id:
                return addr
        return None

    def _draft(self):
        return getattr(self.state, "draft", None)

    # ---- shipping step ----

    async def start(self) -> CheckoutView:
        """
        Load active addresses (default first), select the first one and
        check whether we deliver to its pincode.
        """
        if self.auth is None or self.address_repo is None:
            return self.view()

        self.loading_addresses = True
        try:
            self.addresses = await self.address_repo.list_active(self.auth.user_id)
        except RemoteCallError as exc:
            logger.error("loading addresses for checkout failed: %s", exc.detail)
            self.notices.error("Failed to load addresses", str(exc.detail))
            self.addresses = []
        finally:
            self.loading_addresses = False

        if self.addresses and isinstance(self.state, Shipping):
            self._apply(SelectAddress(self.addresses[0].id))
            await self.check_serviceability()
        return self.view()

    async def select_address(self, address_id: int) -> CheckoutView:
        if self._address(address_id) is None:
            raise NotFound("Address not found")
        self._apply(SelectAddress(address_id))
        await self.check_serviceability()
        return self.view()

    async def check_serviceability(self) -> bool:
        """
        Ask the courier whether the selected address's pincode is served.

        A failed check counts as "not serviceable"; the shopper can try
        again or pick another address.
        """
        if not isinstance(self.state, Shipping):
            raise InvalidTransition("Serviceability is checked on the shipping step")
        address = self._address(self.state.draft.selected_address_id)
        if address is None:
            raise ValidationFailed("Select a shipping address")
        if self.functions is None:
            raise AuthRequired("Authentication required")

        self.checking_serviceability = True
        try:
            serviceable = await self.functions.check_pincode(address.postal_code)
        except RemoteCallError as exc:
            logger.warning("pincode check for %s failed: %s", address.postal_code, exc.detail)
            serviceable = False
        finally:
            self.checking_serviceability = False

        # the shopper may have moved on while we waited
        if isinstance(self.state, Shipping):
            self._apply(ServiceabilityChecked(address.id, serviceable))

        if not serviceable:
            self.notices.error(
                "Location Unserviceable",
                "Sorry, we don't deliver to this pincode yet.",
            )
        return serviceable

    # ---- payment step / navigation ----

    def choose_payment_method(self, method: str) -> CheckoutView:
        self._apply(ChoosePaymentMethod(method))
        return self.view()

    def apply_promo(self, code: str) -> CheckoutView:
        try:
            discount = pricing.promo_discount(code, self.cart.total_price)
        except ValidationFailed:
            self.notices.error("Invalid Code", "This promo code doesn't exist")
            raise

        self._apply(ApplyPromo(code, discount))
        if code.strip().upper() == "WELCOME":
            self.notices.push("Welcome Discount Applied!", f"₹{discount} off on your first order")
        else:
            self.notices.push("Promo Applied!", f"You saved ₹{discount}")
        return self.view()

    def next(self) -> CheckoutView:
        self._apply(Next())
        return self.view()

    def back(self) -> CheckoutView:
        self._apply(Back())
        return self.view()

    def go_to_step(self, step: int) -> CheckoutView:
        self._apply(GoToStep(step))
        return self.view()

    # ---- placing the order ----

    async def submit(self) -> CheckoutView | None:
        """
        Place the order.

        Returns None (and does nothing) while a previous submit is still
        in flight, so a double click creates one order.

        Raises:
            InvalidTransition: not on the confirm step.
            AuthRequired: guest shopper.
            ValidationFailed: empty cart or no address.
        """
        if self.is_submitting:
            logger.info("order submission already in flight; ignoring")
            return None
        if not isinstance(self.state, Confirm):
            raise InvalidTransition(f"Cannot submit from {type(self.state).__name__}")

        auth = self._require_remote()
        items = self.cart.items
        if not items:
            self.notices.error("Cart is empty", "Add something before checking out.")
            raise ValidationFailed("Cart is empty")
        draft = self.state.draft
        address = self._address(draft.selected_address_id)
        if address is None:
            raise ValidationFailed("Select a shipping address")

        self.is_submitting = True
        try:
            try:
                order_id = await self.order_repo.create_order_with_validation(
                    auth.user_id,
                    [{"product_id": it.product_id, "quantity": it.quantity} for it in items],
                    address.id,
                    draft.payment_method,
                )
            except RemoteCallError as exc:
                logger.error("placing order failed: %s", exc.detail)
                self._apply(SubmitFailed(str(exc.detail)))
                self.notices.error("Unable to place order", str(exc.detail))
                return self.view()

            logger.info("order %s created (%s)", order_id, draft.payment_method)
            self._apply(OrderCreated(order_id))

            if isinstance(self.state, Placed):
                await self._request_shipment(order_id, address, items)
                await self.cart.clear()
                self.notices.push("Order placed", "Pay on delivery when your order arrives.")
            else:
                await self._open_payment(order_id)
        finally:
            self.is_submitting = False

        return self.view()

    async def _request_shipment(self, order_id: str, address: Address, items: list[CartItem]) -> None:
        """
        COD orders are shipped right away. The order already exists, so a
        courier failure is reported but does not fail the checkout.
        """
        try:
            waybill = await self.functions.create_shipment(
                order_id,
                address.model_dump(mode="json"),
                shipment_items(items),
            )
            if waybill:
                await self.order_repo.set_waybill(order_id, waybill)
            else:
                logger.warning("shipment for order %s returned no waybill", order_id)
        except RemoteCallError as exc:
            logger.error("shipment for order %s failed: %s", order_id, exc.detail)
            self.notices.error(
                "Shipment pending",
                "Your order is placed; we'll arrange delivery shortly.",
            )

    async def _open_payment(self, order_id: str) -> None:
        try:
            self.gateway_checkout = await open_hosted_checkout(
                self.functions, order_id, description=f"Order {order_id}"
            )
        except RemoteCallError as exc:
            logger.error("payment init for order %s failed: %s", order_id, exc.detail)
            self.gateway_checkout = None
            # the order exists and stays payable through retry_payment
            self._apply(PaymentDismissed())
            self.notices.error("Payment Error", "Payment initialization failed. Please try again.")

    async def payment_succeeded(self, confirmation: PaymentConfirmation) -> CheckoutView | None:
        """
        The overlay reported success: verify server-side, then clear the
        cart. A failed verification keeps both the order and the cart.
        """
        if self.is_submitting:
            return None
        if not isinstance(self.state, AwaitingPayment):
            raise InvalidTransition(f"No payment in progress ({type(self.state).__name__})")
        order_id = self.state.order_id

        self.is_submitting = True
        try:
            try:
                await self.functions.verify_payment(order_id, confirmation.model_dump())
            except RemoteCallError as exc:
                logger.error("payment verification for %s failed: %s", order_id, exc.detail)
                self._apply(SubmitFailed("Payment verification failed"))
                self.notices.error(
                    "Payment verification failed",
                    "If money was debited it will be reconciled. Check My Orders.",
                )
                return self.view()

            self._apply(PaymentSucceeded())
            self.gateway_checkout = None
            await self.cart.clear()
            self.notices.push("Payment successful", "Your order has been placed.")
        finally:
            self.is_submitting = False
        return self.view()

    def payment_dismissed(self) -> CheckoutView:
        self._apply(PaymentDismissed())
        self.gateway_checkout = None
        self.notices.error("Payment cancelled", "You closed the payment window")
        return self.view()

    async def retry_payment(self) -> CheckoutView | None:
        """
        Reopen the overlay for the order created earlier in this attempt.
        Never creates a second order.
        """
        if self.is_submitting:
            return None
        if not isinstance(self.state, PaymentCancelled):
            raise InvalidTransition(f"Nothing to retry from {type(self.state).__name__}")
        order_id = self.state.order_id

        self.is_submitting = True
        try:
            try:
                self.gateway_checkout = await open_hosted_checkout(
                    self.functions, order_id, description=f"Order {order_id}"
                )
            except RemoteCallError as exc:
                logger.error("payment retry for %s failed: %s", order_id, exc.detail)
                self.notices.error("Payment Error", str(exc.detail))
                return self.view()
            self._apply(PaymentReopened())
        finally:
            self.is_submitting = False
        return self.view()

    # ---- read side ----

    def view(self) -> CheckoutView:
        state = self.state
        items = self.cart.items
        order_id = getattr(state, "order_id", None)

        if isinstance(state, Placed):
            kind = "placed"
        elif not items and not isinstance(state, (AwaitingPayment, PaymentCancelled)):
            kind = "empty"
        else:
            kind = "wizard"

        draft = self._draft()
        quote = None
        if kind == "wizard":
            quote = pricing.quote(
                self.cart.total_price,
                draft.discount if draft is not None else Decimal("0"),
            )

        return CheckoutView(
            kind=kind,
            order_placed=isinstance(state, Placed),
            state=STATE_NAMES[type(state)],
            step=step_of(state),
            items=items,
            addresses=self.addresses,
            loading_addresses=self.loading_addresses,
            selected_address_id=draft.selected_address_id if draft else None,
            serviceability_verified=draft.serviceability_verified if draft else False,
            checking_serviceability=self.checking_serviceability,
            payment_method=draft.payment_method if draft else getattr(state, "payment_method", None),
            promo_code=draft.promo_code if draft else None,
            quote=quote,
            is_submitting=self.is_submitting,
            order_id=order_id,
            failure_reason=state.reason if isinstance(state, Failed) else None,
            gateway_checkout=self.gateway_checkout,
        )
