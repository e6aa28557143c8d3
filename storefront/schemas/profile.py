# storefront/schemas/profile.py
from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel


class ProfileRead(SQLModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    avatar_path: str | None = None
    avatar_url: str | None = None


class ProfileUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    full_name: str

    @field_validator("full_name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        return v
