"""Router test fixtures with a mocked identity oracle."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from errand_board_service.app import create_app
from errand_board_service.config import clear_settings_cache
from errand_board_service.core.lifespan import lifespan
from errand_board_service.core.state import get_app_state, reset_app_state
from errand_board_service.exceptions import AuthError
from errand_board_service.models import PAYMENT_PREPAID, USERS
from tests.helpers import task_payload

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

# ---------------------------------------------------------------------------
# Fixed user IDs
# ---------------------------------------------------------------------------
ALICE_ID = "u-alice"
BOB_ID = "u-bob"
CAROL_ID = "u-carol"

TOKEN_PREFIX = "token-"


def _verify_token(token: str) -> dict[str, Any]:
    """Fake oracle: ``token-<uid>`` is valid for ``<uid>``, anything else is rejected."""
    if not token.startswith(TOKEN_PREFIX):
        raise AuthError("Token verification failed", status_code=403)
    return {"valid": True, "uid": token[len(TOKEN_PREFIX) :], "claims": {}}


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path) -> AsyncIterator[Any]:
    """Create a test app with a temp database and a mocked identity oracle."""
    db_path = tmp_path / "test.db"
    log_dir = tmp_path / "logs"
    config_content = f"""\
service:
  name: "errand-board"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{log_dir}"
database:
  backend: "sqlite"
  path: "{db_path}"
store:
  max_transaction_attempts: 5
  change_log_retention: 1000
identity:
  base_url: "http://localhost:8001"
  verify_path: "/tokens/verify"
  timeout_seconds: 10
request:
  max_body_size: 4096
limits:
  max_title_length: 200
  max_description_length: 2000
  max_address_length: 500
  max_comment_length: 1000
  max_fee: 100000
  max_duration_hours: 168
stream:
  poll_interval_seconds: 0.01
  keepalive_interval_seconds: 15
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Mock identity oracle. Default: token-<uid> verifies as <uid>
        mock_identity = AsyncMock()
        mock_identity.close = AsyncMock()
        mock_identity.verify_token = AsyncMock(side_effect=_verify_token)
        state.identity_client = mock_identity
        if state.token_validator is not None:
            state.token_validator._identity_client = mock_identity

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Mock override fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_identity_unavailable(_app: Any) -> None:
    """Configure the identity mock to simulate an unreachable oracle."""
    state = get_app_state()
    state.identity_client.verify_token = AsyncMock(
        side_effect=ConnectionError("Identity service unreachable")
    )


@pytest.fixture
def mock_identity_without_uid(_app: Any) -> None:
    """Configure the identity mock to accept tokens but omit the uid."""
    state = get_app_state()
    state.identity_client.verify_token = AsyncMock(return_value={"valid": True, "claims": {}})


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------
def auth(uid: str) -> dict[str, str]:
    """Authorization header the fake oracle accepts for ``uid``."""
    return {"Authorization": f"Bearer {TOKEN_PREFIX}{uid}"}


def fund(uid: str, balance: str) -> None:
    """Set a user's balance directly in the store."""
    state = get_app_state()
    state.store.update(USERS, uid, {"balance": balance})


async def register_user(
    client: AsyncClient, uid: str, role: str, display_name: str | None = None
) -> Any:
    """Create a profile via POST /api/users."""
    body: dict[str, Any] = {"role": role}
    if display_name is not None:
        body["displayName"] = display_name
    return await client.post("/api/users", json=body, headers=auth(uid))


async def create_task(
    client: AsyncClient,
    uid: str,
    *,
    payment_method: str = PAYMENT_PREPAID,
    **fields: Any,
) -> Any:
    """Post a task via POST /api/tasks and return the response."""
    return await client.post(
        "/api/tasks",
        json={"taskData": task_payload(**fields), "paymentMethod": payment_method},
        headers=auth(uid),
    )


async def accept_task(client: AsyncClient, uid: str, task_id: str) -> Any:
    return await client.post(f"/api/tasks/{task_id}/accept", headers=auth(uid))


async def complete_task(client: AsyncClient, uid: str, task_id: str) -> Any:
    return await client.post(f"/api/tasks/{task_id}/complete", headers=auth(uid))


async def setup_users(client: AsyncClient, requester_balance: str = "100.00") -> None:
    """Register Alice as a funded requester and Bob and Carol as marshals."""
    await register_user(client, ALICE_ID, "requester", "Alice")
    await register_user(client, BOB_ID, "marshal", "Bob")
    await register_user(client, CAROL_ID, "marshal", "Carol")
    fund(ALICE_ID, requester_balance)


async def setup_task_in_progress(
    client: AsyncClient, *, payment_method: str = PAYMENT_PREPAID, **fields: Any
) -> str:
    """Create a task as Alice and have Bob accept it. Returns the task id."""
    response = await create_task(client, ALICE_ID, payment_method=payment_method, **fields)
    task_id = response.json()["id"]
    await accept_task(client, BOB_ID, task_id)
    return task_id


async def setup_completed_task(
    client: AsyncClient, *, payment_method: str = PAYMENT_PREPAID, **fields: Any
) -> str:
    task_id = await setup_task_in_progress(client, payment_method=payment_method, **fields)
    await complete_task(client, BOB_ID, task_id)
    return task_id
