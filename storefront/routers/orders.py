# storefront/routers/orders.py
from fastapi import APIRouter, Depends, status

from storefront.core.auth import require_auth
from storefront.models.auth import AuthSession
from storefront.models.order import GatewayCheckout
from storefront.schemas.checkout import PaymentConfirmation
from storefront.schemas.order import OrderRead, ReturnRequestCreate
from storefront.services.order_service import OrderTab
from storefront.session import StorefrontSession, get_storefront_session

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get("", response_model=list[OrderRead])
async def list_my_orders(
    tab: OrderTab = "all",
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    The shopper's orders, newest first.

    Tabs: all | pending | shipped | delivered (paid orders in that
    state) | cancelled.
    """
    return await session.orders().list_orders(auth, tab)


@router.get("/{order_id}", response_model=OrderRead)
async def get_my_order(
    order_id: str,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    return await session.orders().get_order(auth, order_id)


@router.post("/{order_id}/retry-payment", response_model=GatewayCheckout)
async def retry_order_payment(
    order_id: str,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Options to reopen the payment overlay for a pending order.

    Only when both payment and fulfillment are still pending.
    """
    return await session.orders().retry_payment(auth, order_id)


@router.post("/{order_id}/verify-payment", response_model=OrderRead)
async def verify_order_payment(
    order_id: str,
    data: PaymentConfirmation,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    return await session.orders().verify_payment(auth, order_id, data)


@router.post("/{order_id}/return", status_code=status.HTTP_202_ACCEPTED)
async def request_order_return(
    order_id: str,
    data: ReturnRequestCreate,
    auth: AuthSession = Depends(require_auth),
    session: StorefrontSession = Depends(get_storefront_session),
):
    """
    Request a return or replacement for a delivered, paid order.
    """
    await session.orders().request_return(auth, order_id, data.request_type, data.reason)
    return {"detail": "Request submitted"}
