"""Unit test fixtures: cache clearing plus shared store and service builders."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from errand_board_service.config import LimitsConfig, clear_settings_cache
from errand_board_service.core.state import reset_app_state
from errand_board_service.models import ROLE_MARSHAL, ROLE_REQUESTER, Identity
from errand_board_service.services.memory_document_store import InMemoryDocumentStore
from errand_board_service.services.rating_aggregator import RatingAggregator
from errand_board_service.services.sqlite_document_store import SQLiteDocumentStore
from errand_board_service.services.task_manager import TaskManager
from errand_board_service.services.user_registry import UserRegistry
from tests.helpers import MARSHAL_ID, OTHER_MARSHAL_ID, REQUESTER_ID, seed_user

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from errand_board_service.services.document_store import BaseDocumentStore


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def limits() -> LimitsConfig:
    return LimitsConfig(
        max_title_length=200,
        max_description_length=5000,
        max_address_length=500,
        max_comment_length=1000,
        max_fee=100000,
        max_duration_hours=168,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[BaseDocumentStore]:
    """Each store-backed test runs once per adapter."""
    adapter: BaseDocumentStore
    if request.param == "memory":
        adapter = InMemoryDocumentStore(max_transaction_attempts=5)
    else:
        adapter = SQLiteDocumentStore(
            db_path=str(tmp_path / "errand-board.db"), max_transaction_attempts=5
        )
    yield adapter
    adapter.close()


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterator[SQLiteDocumentStore]:
    adapter = SQLiteDocumentStore(
        db_path=str(tmp_path / "errand-board.db"), max_transaction_attempts=5
    )
    yield adapter
    adapter.close()


@pytest.fixture
def task_manager(store: BaseDocumentStore, limits: LimitsConfig) -> TaskManager:
    return TaskManager(store=store, limits=limits)


@pytest.fixture
def rating_aggregator(store: BaseDocumentStore, limits: LimitsConfig) -> RatingAggregator:
    return RatingAggregator(store=store, limits=limits)


@pytest.fixture
def user_registry(store: BaseDocumentStore) -> UserRegistry:
    return UserRegistry(store=store)


@pytest.fixture
def requester() -> Identity:
    return Identity(uid=REQUESTER_ID)


@pytest.fixture
def marshal() -> Identity:
    return Identity(uid=MARSHAL_ID)


@pytest.fixture
def other_marshal() -> Identity:
    return Identity(uid=OTHER_MARSHAL_ID)


@pytest.fixture
def seeded_users(store: BaseDocumentStore) -> None:
    """A requester with 100.00 and two marshals with empty balances."""
    seed_user(store, REQUESTER_ID, ROLE_REQUESTER, balance="100.00")
    seed_user(store, MARSHAL_ID, ROLE_MARSHAL)
    seed_user(store, OTHER_MARSHAL_ID, ROLE_MARSHAL)
