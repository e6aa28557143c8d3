# storefront/schemas/address.py
import re

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

PHONE_RE = re.compile(r"^\+?\d{6,15}$")
PINCODE_RE = re.compile(r"^\d{6}$")


def _required(v: str, label: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError(f"{label} is required")
    return v


def _phone(v: str) -> str:
    v = (v or "").replace(" ", "")
    if not PHONE_RE.match(v):
        raise ValueError("Enter a valid phone number")
    return v


def _pincode(v: str) -> str:
    v = (v or "").strip()
    if not PINCODE_RE.match(v):
        raise ValueError("Enter a valid 6-digit pincode")
    return v


class AddressCreate(SQLModel):
    """
    Payload for saving a new shipping address.

    Validation runs here, before anything is sent to the backend.
    Country is fixed to India.
    """

    model_config = ConfigDict(extra="forbid")

    label: str | None = None
    full_name: str
    phone: str
    line1: str
    line2: str | None = None
    city: str
    state: str
    postal_code: str

    @field_validator("full_name", "line1", "city", "state")
    @classmethod
    def not_blank(cls, v: str, info) -> str:
        return _required(v, info.field_name.replace("_", " ").capitalize())

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: str) -> str:
        return _phone(v)

    @field_validator("postal_code")
    @classmethod
    def valid_pincode(cls, v: str) -> str:
        return _pincode(v)


class AddressUpdate(SQLModel):
    """
    Partial update; fields that are sent are validated like on create.
    """

    model_config = ConfigDict(extra="forbid")

    label: str | None = None
    full_name: str | None = None
    phone: str | None = None
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None

    @field_validator("full_name", "line1", "city", "state")
    @classmethod
    def not_blank(cls, v: str | None, info) -> str | None:
        if v is None:
            return v
        return _required(v, info.field_name.replace("_", " ").capitalize())

    @field_validator("phone")
    @classmethod
    def valid_phone(cls, v: str | None) -> str | None:
        return v if v is None else _phone(v)

    @field_validator("postal_code")
    @classmethod
    def valid_pincode(cls, v: str | None) -> str | None:
        return v if v is None else _pincode(v)
