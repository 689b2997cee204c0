"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from errand_board_service.clients.identity_client import IdentityClient
    from errand_board_service.config import StreamConfig
    from errand_board_service.services.document_store import DocumentStore
    from errand_board_service.services.rating_aggregator import RatingAggregator
    from errand_board_service.services.task_manager import TaskManager
    from errand_board_service.services.token_validator import TokenValidator
    from errand_board_service.services.user_registry import UserRegistry


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: DocumentStore | None = None
    identity_client: IdentityClient | None = None
    token_validator: TokenValidator | None = None
    task_manager: TaskManager | None = None
    rating_aggregator: RatingAggregator | None = None
    user_registry: UserRegistry | None = None
    stream_config: StreamConfig | None = None

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
