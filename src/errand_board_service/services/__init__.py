"""Service layer components."""

from errand_board_service.services.document_store import BaseDocumentStore, DocumentStore
from errand_board_service.services.memory_document_store import InMemoryDocumentStore
from errand_board_service.services.rating_aggregator import RatingAggregator
from errand_board_service.services.sqlite_document_store import SQLiteDocumentStore
from errand_board_service.services.task_manager import TaskManager
from errand_board_service.services.token_validator import TokenValidator
from errand_board_service.services.user_registry import UserRegistry

__all__ = [
    "BaseDocumentStore",
    "DocumentStore",
    "InMemoryDocumentStore",
    "RatingAggregator",
    "SQLiteDocumentStore",
    "TaskManager",
    "TokenValidator",
    "UserRegistry",
]
