"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from errand_board_service.clients.identity_client import IdentityClient
from errand_board_service.config import get_safe_config, get_settings
from errand_board_service.core.state import init_app_state
from errand_board_service.logging import get_logger, setup_logging
from errand_board_service.services.memory_document_store import InMemoryDocumentStore
from errand_board_service.services.rating_aggregator import RatingAggregator
from errand_board_service.services.sqlite_document_store import SQLiteDocumentStore
from errand_board_service.services.task_manager import TaskManager
from errand_board_service.services.token_validator import TokenValidator
from errand_board_service.services.user_registry import UserRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

    from errand_board_service.config import Settings
    from errand_board_service.services.document_store import BaseDocumentStore


def build_store(settings: Settings) -> BaseDocumentStore:
    """Create the document store adapter selected by ``database.backend``."""
    attempts = settings.store.max_transaction_attempts
    retention = settings.store.change_log_retention
    if settings.database.backend == "memory":
        return InMemoryDocumentStore(
            max_transaction_attempts=attempts, change_log_retention=retention
        )
    return SQLiteDocumentStore(
        db_path=settings.database.path,
        max_transaction_attempts=attempts,
        change_log_retention=retention,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)
    logger.debug("Effective configuration", extra={"config": get_safe_config()})

    state = init_app_state()

    store = build_store(settings)
    state.store = store

    # Initialize IdentityClient (HTTP client for bearer token verification)
    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        verify_path=settings.identity.verify_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client
    state.token_validator = TokenValidator(identity_client=identity_client)

    state.task_manager = TaskManager(store=store, limits=settings.limits)
    state.rating_aggregator = RatingAggregator(store=store, limits=settings.limits)
    state.user_registry = UserRegistry(store=store)
    state.stream_config = settings.stream

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "host": settings.server.host,
            "port": settings.server.port,
            "database_backend": settings.database.backend,
            "db_path": settings.database.path,
            "identity_base_url": settings.identity.base_url,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    store.close()
    await identity_client.close()
