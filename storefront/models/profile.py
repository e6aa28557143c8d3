# storefront/models/profile.py
from sqlmodel import SQLModel


class Profile(SQLModel):
    """
    Shopper profile (public.profiles).

    avatar holds the object path inside the avatars bucket; older rows
    may still hold a full public URL.
    """

    id: str
    full_name: str | None = None
    avatar: str | None = None
