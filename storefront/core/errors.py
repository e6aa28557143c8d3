# storefront/core/errors.py
from fastapi import status


class StorefrontError(Exception):
    """
    Base class for errors surfaced to the shopper.

    Each subclass carries the HTTP status the API layer answers with;
    `detail` is rendered as-is in the `{"detail": ...}` response body.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str | dict):
        super().__init__(detail if isinstance(detail, str) else str(detail))
        self.detail = detail


class ValidationFailed(StorefrontError):
    """Input rejected client-side; nothing was sent to the backend."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthRequired(StorefrontError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(StorefrontError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(StorefrontError):
    """A checkout event that is not allowed from the current step."""

    status_code = status.HTTP_409_CONFLICT


class RemoteCallError(StorefrontError):
    """
    A call to the remote backend failed (network error, non-2xx,
    malformed response).
    """

    status_code = status.HTTP_502_BAD_GATEWAY
