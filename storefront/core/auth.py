# storefront/core/auth.py
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from storefront.core.config import get_settings
from storefront.models.auth import AuthSession

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so guests can keep a local-only cart.
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def get_auth_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthSession | None:
    """
    Resolve the shopper behind the request.

    Flow:
      1. No Authorization header => guest => None.
      2. Decode JWT => 'sub' becomes the owner id of cart, orders, etc.
      3. Keep the raw token; the backend is called on the shopper's behalf.

    Raises:
        HTTPException(401): if token is malformed or has no 'sub'.
    """
    if credentials is None:
        return None  # guest mode

    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub",
        )

    return AuthSession(
        user_id=str(sub),
        email=payload.get("email"),
        access_token=credentials.credentials,
    )


def require_auth(auth: AuthSession | None = Depends(get_auth_session)) -> AuthSession:
    """
    Enforce authentication.

    Attach to routes that only make sense for a signed-in shopper
    (orders, addresses, wishlist, profile).

    Raises:
        HTTPException(401): if the request is anonymous.
    """
    if auth is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return auth
