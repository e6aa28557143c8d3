# storefront/core/supabase_client.py
import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from storefront.core.config import get_settings
from storefront.core.errors import RemoteCallError

settings = get_settings()

# Postgres unique_violation, surfaced by PostgREST as the error code.
UNIQUE_VIOLATION = "23505"

# Errors a PostgREST call can raise: HTTP-level (APIError) or transport.
POSTGREST_ERRORS = (APIError, httpx.HTTPError)


async def supabase_for_user(access_token: str) -> AsyncClient:
    """
    Create an async Supabase client acting as the shopper.

    The anon key identifies the project; the shopper's access token is
    applied to PostgREST and realtime so row-level security sees the
    shopper's own rows only.

    One client per authenticated identity; a new sign-in builds a new one.
    """
    options = AsyncClientOptions(headers={"Authorization": f"Bearer {access_token}"})
    client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_KEY, options=options)
    client.postgrest.auth(access_token)
    await client.realtime.set_auth(access_token)
    return client


def remote_error(action: str, exc: Exception) -> RemoteCallError:
    """
    Wrap a Supabase/transport exception into RemoteCallError with a
    message fit for a notice.
    """
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    return RemoteCallError(f"{action} failed: {message}")
