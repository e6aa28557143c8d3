# storefront/schemas/order.py
from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

from storefront.models.order import Order, ReturnRequestType


class OrderRead(SQLModel):
    """
    Order as shown in My Orders: the record plus the badge to display
    and which follow-up actions are offered.
    """

    order: Order
    display_id: str
    display_status: str
    can_retry_payment: bool
    can_request_return: bool


class ReturnRequestCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    request_type: ReturnRequestType = "return"
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Please describe the reason for your request")
        return v
