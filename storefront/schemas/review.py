# storefront/schemas/review.py
from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class ReviewCreate(SQLModel):
    """
    A product review. Purchase history and one-review-per-product are
    checked by the backend.
    """

    model_config = ConfigDict(extra="forbid")

    rating: int = Field(ge=1, le=5)
    title: str | None = None
    body: str

    @field_validator("body")
    @classmethod
    def body_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Please write a few words about the product")
        return v
