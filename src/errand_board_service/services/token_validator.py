"""Bearer token extraction and verification."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from errand_board_service.exceptions import (
    AuthError,
    IdentityServiceUnavailableError,
    ServiceError,
)
from errand_board_service.models import Identity

if TYPE_CHECKING:
    from errand_board_service.clients.identity_client import IdentityClient


def extract_bearer_token(authorization: str | None) -> str:
    """
    Pull the token out of an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthError: 401 when the header is missing or not a Bearer credential.
    """
    if authorization is None:
        raise AuthError("Missing Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        raise AuthError("Authorization header must use the Bearer scheme")
    token = token.strip()
    if not token:
        raise AuthError("Bearer token must not be empty")
    return token


class TokenValidator:
    """Turns an Authorization header into a verified ``Identity``."""

    def __init__(self, identity_client: IdentityClient) -> None:
        self._identity_client = identity_client

    async def authenticate(self, authorization: str | None) -> Identity:
        """
        Error precedence:
        - AUTH_ERROR 401: header missing or malformed
        - IDENTITY_SERVICE_UNAVAILABLE 502: oracle unreachable
        - AUTH_ERROR 403: oracle rejected the token

        Raises:
            ServiceError: AuthError or IdentityServiceUnavailableError
        """
        token = extract_bearer_token(authorization)

        result: Any
        try:
            result = await self._identity_client.verify_token(token)
        except ServiceError:
            raise
        except Exception as exc:
            raise IdentityServiceUnavailableError("Cannot connect to Identity service") from exc

        if not isinstance(result, dict):
            raise IdentityServiceUnavailableError("Identity service returned an invalid response")

        uid = result.get("uid")
        if not isinstance(uid, str) or not uid:
            raise AuthError("Token does not identify a user", status_code=403)

        claims = result.get("claims")
        return Identity(uid=uid, claims=claims if isinstance(claims, dict) else {})
