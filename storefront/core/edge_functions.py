# storefront/core/edge_functions.py
"""
Client for the storefront's Supabase edge functions.

Functions used:
  - create-razorpay-order     POST {order_id} -> {razorpay_order_id, amount, currency}
  - verify-razorpay-payment   POST {order_id, razorpay_*} -> ack
  - delhivery-check-pincode   GET ?pincode=X -> {is_serviceable}
  - delhivery-create-shipment POST {order_id, address, items} -> {waybill_number}
  - request-return            POST {order_id, request_type, reason} -> ack

Every call carries the shopper's bearer token; the functions authorize
against it. `functions.invoke` cannot carry a query string, so the pincode
check goes out as a plain GET through httpx.
"""

import logging
from typing import Any

import httpx
from supabase import AsyncClient
from supabase_functions.errors import FunctionsError

from storefront.core.errors import RemoteCallError
from storefront.models.order import PaymentIntent

logger = logging.getLogger(__name__)

CREATE_PAYMENT_ORDER = "create-razorpay-order"
VERIFY_PAYMENT = "verify-razorpay-payment"
CHECK_PINCODE = "delhivery-check-pincode"
CREATE_SHIPMENT = "delhivery-create-shipment"
REQUEST_RETURN = "request-return"


class EdgeFunctionsClient:
    """
    Thin wrapper over `client.functions.invoke`.

    Raises RemoteCallError for relay/HTTP errors, transport errors and
    responses missing the fields a caller depends on.
    """

    def __init__(
        self,
        client: AsyncClient,
        access_token: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client = client
        self.access_token = access_token
        self.http_client = http_client

    def _fail(self, name: str, exc: Exception) -> RemoteCallError:
        logger.error("edge function %s failed: %s", name, exc)
        return RemoteCallError(f"{name} failed: {exc}")

    async def _invoke(self, name: str, body: dict[str, Any]) -> Any:
        try:
            return await self.client.functions.invoke(
                name,
                invoke_options={
                    "body": body,
                    "headers": {"Authorization": f"Bearer {self.access_token}"},
                    "responseType": "json",
                },
            )
        except (FunctionsError, httpx.HTTPError, ValueError) as exc:
            raise self._fail(name, exc) from exc

    async def _get(self, name: str, params: dict[str, str]) -> Any:
        functions = self.client.functions
        url = f"{str(functions.url).rstrip('/')}/{name}"
        headers = {**functions.headers, "Authorization": f"Bearer {self.access_token}"}
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30) as http:
                    response = await http.get(url, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise self._fail(name, exc) from exc

    async def check_pincode(self, pincode: str) -> bool:
        data = await self._get(CHECK_PINCODE, {"pincode": pincode})
        return bool((data or {}).get("is_serviceable"))

    async def create_payment_order(self, order_id: str) -> PaymentIntent:
        data = await self._invoke(CREATE_PAYMENT_ORDER, {"order_id": order_id})
        if not data or not data.get("razorpay_order_id"):
            raise RemoteCallError("Payment initialization failed: gateway order not created")
        return PaymentIntent(
            order_id=order_id,
            gateway_order_id=data["razorpay_order_id"],
            amount=int(data.get("amount") or 0),
            currency=data.get("currency") or "INR",
        )

    async def verify_payment(self, order_id: str, gateway_fields: dict[str, Any]) -> None:
        await self._invoke(VERIFY_PAYMENT, {"order_id": order_id, **gateway_fields})

    async def create_shipment(
        self,
        order_id: str,
        address: dict[str, Any],
        items: list[dict[str, Any]],
    ) -> str | None:
        data = await self._invoke(
            CREATE_SHIPMENT,
            {"order_id": order_id, "address": address, "items": items},
        )
        return (data or {}).get("waybill_number")

    async def request_return(self, order_id: str, request_type: str, reason: str) -> None:
        await self._invoke(
            REQUEST_RETURN,
            {"order_id": order_id, "request_type": request_type, "reason": reason},
        )
