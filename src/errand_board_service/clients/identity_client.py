"""Async HTTP client for the identity oracle."""

from __future__ import annotations

from typing import Any

import httpx

from errand_board_service.exceptions import AuthError, IdentityServiceUnavailableError
from errand_board_service.logging import get_logger


class IdentityClient:
    """
    Client for bearer token verification.

    The service never inspects tokens itself. It posts them to the
    identity oracle and trusts the ``uid`` and ``claims`` it returns.
    """

    def __init__(
        self,
        base_url: str,
        verify_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._verify_path = verify_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def verify_token(self, token: str) -> dict[str, Any]:
        """
        Verify a bearer token via the identity oracle.

        Returns:
            dict with keys: uid (str), claims (dict), and optionally valid (bool)

        Raises:
            AuthError: 403 if the oracle says valid=false or names no uid
            IdentityServiceUnavailableError: on connection/timeout/unexpected errors
        """
        logger = get_logger(__name__)

        try:
            response = await self._client.post(
                self._verify_path,
                json={"token": token},
            )
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Identity service connection failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise IdentityServiceUnavailableError("Cannot connect to Identity service") from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Identity service HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise IdentityServiceUnavailableError("Identity service request failed") from exc

        if response.status_code != 200:
            logger.warning(
                "Identity service unexpected status",
                extra={
                    "status_code": response.status_code,
                    "base_url": self._base_url,
                },
            )
            raise IdentityServiceUnavailableError("Identity service returned unexpected status")

        try:
            result = response.json()
        except ValueError as exc:
            raise IdentityServiceUnavailableError(
                "Identity service returned invalid JSON"
            ) from exc

        if not isinstance(result, dict) or result.get("valid") is False:
            raise AuthError("Token verification failed", status_code=403)

        uid = result.get("uid")
        if not isinstance(uid, str) or not uid:
            raise AuthError("Token verification failed", status_code=403)

        return result

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
