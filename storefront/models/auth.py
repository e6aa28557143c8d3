# storefront/models/auth.py
from sqlmodel import SQLModel


class AuthSession(SQLModel):
    """
    The authenticated shopper behind a request.

    Identity:
      - user_id: Supabase auth.users.id (JWT "sub")
      - access_token: the raw bearer token, forwarded to the backend so
        row-level security and edge functions see the shopper, not us.
    """

    user_id: str
    email: str | None = None
    access_token: str
