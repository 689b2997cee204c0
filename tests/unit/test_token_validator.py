"""Unit tests for TokenValidator."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from errand_board_service.exceptions import AuthError, ServiceError
from errand_board_service.services.token_validator import TokenValidator, extract_bearer_token


@pytest.mark.unit
@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer    ", "Token abc"])
def test_extract_bearer_token_rejects_malformed_headers(header) -> None:
    with pytest.raises(AuthError) as exc_info:
        extract_bearer_token(header)
    assert exc_info.value.status_code == 401
    assert exc_info.value.error == "AUTH_ERROR"


@pytest.mark.unit
def test_extract_bearer_token_is_case_insensitive_on_scheme() -> None:
    assert extract_bearer_token("Bearer abc.def") == "abc.def"
    assert extract_bearer_token("bearer  xyz ") == "xyz"


@pytest.mark.unit
async def test_authenticate_returns_identity() -> None:
    mock_identity = AsyncMock()
    mock_identity.verify_token = AsyncMock(
        return_value={"valid": True, "uid": "u-1", "claims": {"email": "a@example.com"}}
    )
    validator = TokenValidator(identity_client=mock_identity)

    identity = await validator.authenticate("Bearer token-1")

    assert identity.uid == "u-1"
    assert identity.claims == {"email": "a@example.com"}
    mock_identity.verify_token.assert_awaited_once_with("token-1")


@pytest.mark.unit
async def test_authenticate_missing_header_skips_identity_call() -> None:
    mock_identity = AsyncMock()
    validator = TokenValidator(identity_client=mock_identity)

    with pytest.raises(AuthError):
        await validator.authenticate(None)

    mock_identity.verify_token.assert_not_called()


@pytest.mark.unit
async def test_authenticate_identity_unavailable() -> None:
    """Connection errors from the identity oracle become IDENTITY_SERVICE_UNAVAILABLE."""
    mock_identity = AsyncMock()
    mock_identity.verify_token = AsyncMock(side_effect=ConnectionError("unavailable"))
    validator = TokenValidator(identity_client=mock_identity)

    with pytest.raises(ServiceError) as exc_info:
        await validator.authenticate("Bearer token-1")

    assert exc_info.value.error == "IDENTITY_SERVICE_UNAVAILABLE"
    assert exc_info.value.status_code == 502


@pytest.mark.unit
async def test_authenticate_propagates_service_errors() -> None:
    expected = AuthError("Token verification failed", status_code=403)
    mock_identity = AsyncMock()
    mock_identity.verify_token = AsyncMock(side_effect=expected)
    validator = TokenValidator(identity_client=mock_identity)

    with pytest.raises(ServiceError) as exc_info:
        await validator.authenticate("Bearer token-1")

    assert exc_info.value is expected


@pytest.mark.unit
async def test_authenticate_rejects_non_dict_response() -> None:
    mock_identity = AsyncMock()
    mock_identity.verify_token = AsyncMock(return_value=["u-1"])
    validator = TokenValidator(identity_client=mock_identity)

    with pytest.raises(ServiceError) as exc_info:
        await validator.authenticate("Bearer token-1")

    assert exc_info.value.status_code == 502


@pytest.mark.unit
@pytest.mark.parametrize("uid", [None, "", 17])
async def test_authenticate_requires_uid(uid) -> None:
    mock_identity = AsyncMock()
    mock_identity.verify_token = AsyncMock(return_value={"valid": True, "uid": uid})
    validator = TokenValidator(identity_client=mock_identity)

    with pytest.raises(AuthError) as exc_info:
        await validator.authenticate("Bearer token-1")

    assert exc_info.value.status_code == 403


@pytest.mark.unit
async def test_authenticate_ignores_malformed_claims() -> None:
    mock_identity = AsyncMock()
    mock_identity.verify_token = AsyncMock(
        return_value={"valid": True, "uid": "u-1", "claims": "admin"}
    )
    validator = TokenValidator(identity_client=mock_identity)

    identity = await validator.authenticate("Bearer token-1")

    assert identity.claims == {}
