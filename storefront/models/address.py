# storefront/models/address.py
from sqlmodel import SQLModel, Field


class Address(SQLModel):
    """
    Saved shipping address (public.addresses).

    At most one active address per user has is_default = true; that is
    enforced by the set_default_address RPC, not here.
    Deleting is a soft delete (is_active = false).
    """

    id: int
    user_id: str
    label: str | None = None
    full_name: str
    phone: str
    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str = "India"
    is_default: bool = False
    is_active: bool = True

    def snapshot(self) -> "AddressSnapshot":
        return AddressSnapshot(
            label=self.label,
            full_name=self.full_name,
            phone=self.phone,
            line1=self.line1,
            line2=self.line2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


class AddressSnapshot(SQLModel):
    """
    Immutable copy of an address stored on an order at creation time.
    """

    label: str | None = None
    full_name: str = ""
    phone: str = ""
    line1: str = ""
    line2: str | None = None
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "India"
