# storefront/services/payment_service.py
import logging

from storefront.core.config import get_settings
from storefront.core.edge_functions import EdgeFunctionsClient
from storefront.models.order import GatewayCheckout

logger = logging.getLogger(__name__)

settings = get_settings()


async def open_hosted_checkout(
    functions: EdgeFunctionsClient,
    order_id: str,
    description: str | None = None,
) -> GatewayCheckout:
    """
    Create (or re-create) the gateway order for an existing storefront
    order and return the options the browser opens the overlay with.

    Never creates a storefront order: retries reuse `order_id`.

    Raises:
        RemoteCallError: the gateway order could not be created.
    """
    intent = await functions.create_payment_order(order_id)
    logger.info(
        "gateway order %s opened for order %s (%s %s)",
        intent.gateway_order_id, order_id, intent.amount, intent.currency,
    )
    return GatewayCheckout(
        key=settings.RAZORPAY_KEY_ID,
        order_id=intent.gateway_order_id,
        amount=intent.amount,
        currency=intent.currency,
        name=settings.STORE_NAME,
        description=description,
        storefront_order_id=order_id,
    )
