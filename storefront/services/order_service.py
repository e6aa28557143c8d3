# storefront/services/order_service.py
import logging
from typing import Literal

from storefront.core.edge_functions import EdgeFunctionsClient
from storefront.core.errors import NotFound, RemoteCallError, ValidationFailed
from storefront.core.notices import NoticeBoard
from storefront.models.auth import AuthSession
from storefront.models.order import GatewayCheckout, Order, ReturnRequestType
from storefront.repositories.order_repo import OrderRepository
from storefront.schemas.checkout import PaymentConfirmation
from storefront.schemas.order import OrderRead
from storefront.services.payment_service import open_hosted_checkout

logger = logging.getLogger(__name__)

OrderTab = Literal["all", "pending", "shipped", "delivered", "cancelled"]

PAYMENT_LABELS = {
    "paid": "Paid",
    "pending": "Payment Pending",
    "cod_pending": "Cash on Delivery",
    "failed": "Payment Failed",
    "refunded": "Refunded",
    "requires_action": "Action Required",
}

FULFILLMENT_LABELS = {
    "pending": "Order Placed",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}


def display_order_id(order_id: str) -> str:
    return f"ML-{order_id[:8].upper()}"


def display_status(order: Order) -> str:
    """
    Badge for an order: the payment state until the order is paid, the
    fulfillment state afterwards.
    """
    if order.payment_status != "paid":
        return PAYMENT_LABELS[order.payment_status]
    return FULFILLMENT_LABELS[order.status]


def in_tab(order: Order, tab: OrderTab) -> bool:
    if tab == "all":
        return True
    if tab == "cancelled":
        return order.status == "cancelled"
    return order.status == tab and order.payment_status == "paid"


class OrderService:
    """
    Business logic for My Orders.

    Responsibilities:
      - list/read the shopper's own orders (read-only; the backend owns
        every status change)
      - retry payment of a pending prepaid order, reusing the same order
      - file return/replacement requests for delivered, paid orders
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        functions: EdgeFunctionsClient,
        notices: NoticeBoard,
    ):
        self.order_repo = order_repo
        self.functions = functions
        self.notices = notices

    # ---- internal helpers ----

    def _read(self, order: Order) -> OrderRead:
        return OrderRead(
            order=order,
            display_id=display_order_id(order.id),
            display_status=display_status(order),
            can_retry_payment=order.can_retry_payment,
            can_request_return=order.can_request_return,
        )

    async def _get_owned(self, auth: AuthSession, order_id: str) -> Order:
        order = await self.order_repo.get_for_user(auth.user_id, order_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    # ---- public operations ----

    async def list_orders(self, auth: AuthSession, tab: OrderTab = "all") -> list[OrderRead]:
        """Newest first."""
        orders = await self.order_repo.list_for_user(auth.user_id)
        return [self._read(o) for o in orders if in_tab(o, tab)]

    async def get_order(self, auth: AuthSession, order_id: str) -> OrderRead:
        return self._read(await self._get_owned(auth, order_id))

    async def retry_payment(self, auth: AuthSession, order_id: str) -> GatewayCheckout:
        """
        Reopen payment for an order whose payment and fulfillment are both
        still pending. Creates a new gateway order for the same storefront
        order; never creates a storefront order.
        """
        order = await self._get_owned(auth, order_id)
        if not order.can_retry_payment:
            raise ValidationFailed("Payment can only be retried for pending orders")

        try:
            return await open_hosted_checkout(
                self.functions, order.id, description="Retry Order Payment"
            )
        except RemoteCallError:
            self.notices.error("Payment Error", "Failed to retry payment")
            raise

    async def verify_payment(
        self,
        auth: AuthSession,
        order_id: str,
        confirmation: PaymentConfirmation,
    ) -> OrderRead:
        order = await self._get_owned(auth, order_id)
        try:
            await self.functions.verify_payment(order.id, confirmation.model_dump())
        except RemoteCallError:
            self.notices.error(
                "Payment verification failed",
                "If money was debited it will be reconciled automatically.",
            )
            raise
        self.notices.push("Payment successful", "Your order has been placed.")
        return await self.get_order(auth, order_id)

    async def request_return(
        self,
        auth: AuthSession,
        order_id: str,
        request_type: ReturnRequestType,
        reason: str,
    ) -> None:
        """
        File a return or replacement request (append-only; the request
        is reviewed server-side and never changes the order here).
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed("Please describe the reason for your request")

        order = await self._get_owned(auth, order_id)
        if not order.can_request_return:
            raise ValidationFailed("Only delivered, paid orders can be returned or replaced")

        try:
            await self.functions.request_return(order.id, request_type, reason)
        except RemoteCallError:
            self.notices.error("Request failed", "Could not submit your request. Please try again.")
            raise

        logger.info("%s requested for order %s", request_type, order.id)
        self.notices.push(
            "Request submitted",
            f"Your {request_type} request for {display_order_id(order.id)} has been received.",
        )
