"""API routers."""

from errand_board_service.routers import health, ratings, tasks, users

__all__ = ["health", "ratings", "tasks", "users"]
