"""
Document store port.

The lifecycle engine never talks to a concrete database. It depends on the
``DocumentStore`` interface below, which offers two capability groups:

- transactional CRUD: ``get``/``add``/``set``/``update`` plus
  ``run_transaction(fn)``, an optimistic read-then-conditional-commit
  primitive that re-runs ``fn`` when a document it read changed before commit;
- a change stream: ``changes()`` for a page of change events and ``watch()``,
  a lazy, infinite async sequence that can be restarted from any sequence
  number.

Concrete adapters only implement reading a single document, committing a
batch of version-checked writes, and querying.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeVar

from errand_board_service.exceptions import NotFoundError, TransactionAbortedError
from errand_board_service.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

T = TypeVar("T")

WriteKind = Literal["create", "set", "update"]


class TransactionConflictError(Exception):
    """A document read by a transaction changed before the transaction committed."""


class DuplicateDocumentError(Exception):
    """Raised when creating a document whose id already exists in the collection."""


@dataclass(frozen=True)
class DocumentSnapshot:
    """A point-in-time view of one document. ``version`` is 0 for a missing document."""

    collection: str
    id: str
    data: dict[str, Any] | None
    version: int

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass(frozen=True)
class ChangeEvent:
    """One committed write, in commit order."""

    sequence: int
    collection: str
    doc_id: str
    data: dict[str, Any] | None
    changed_at: str


@dataclass(frozen=True)
class PendingWrite:
    """A write buffered by a transaction until commit."""

    kind: WriteKind
    collection: str
    doc_id: str
    data: dict[str, Any]


class Transaction:
    """
    Buffers reads and writes for one transaction attempt.

    Reads go straight to the store and record the version observed. Writes
    are only buffered; nothing is visible to other callers until the store
    commits the whole batch after re-checking every recorded version.
    All reads must happen before the first write.
    """

    def __init__(self, store: BaseDocumentStore) -> None:
        self._store = store
        self._snapshots: dict[tuple[str, str], DocumentSnapshot] = {}
        self._writes: list[PendingWrite] = []

    @property
    def read_versions(self) -> dict[tuple[str, str], int]:
        return {key: snapshot.version for key, snapshot in self._snapshots.items()}

    @property
    def writes(self) -> list[PendingWrite]:
        return list(self._writes)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        """Read a document and remember its version for the commit-time check."""
        if self._writes:
            msg = "Transactions must perform all reads before any writes"
            raise RuntimeError(msg)
        key = (collection, doc_id)
        if key not in self._snapshots:
            self._snapshots[key] = self._store.get(collection, doc_id)
        return self._snapshots[key]

    def create(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        """Buffer the creation of a new document and return its id."""
        new_id = doc_id if doc_id is not None else self._store.new_id(collection)
        self._writes.append(PendingWrite("create", collection, new_id, copy.deepcopy(data)))
        return new_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Buffer a full overwrite (or creation) of a document."""
        self._writes.append(PendingWrite("set", collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Buffer a merge of top-level fields into an existing document."""
        self._writes.append(PendingWrite("update", collection, doc_id, copy.deepcopy(fields)))


class DocumentStore(Protocol):
    """Interface the service layer depends on."""

    def new_id(self, collection: str) -> str: ...

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot: ...

    def add(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str: ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        *,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    def count(self, collection: str, where: dict[str, Any] | None = None) -> int: ...

    def count_by(self, collection: str, field_name: str) -> dict[str, int]: ...

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T: ...

    def changes(
        self, after_sequence: int, collection: str | None = None, limit: int = 100
    ) -> list[ChangeEvent]: ...

    def watch(
        self,
        collection: str | None = None,
        after_sequence: int = 0,
        poll_interval: float = 0.5,
    ) -> AsyncIterator[ChangeEvent]: ...

    def close(self) -> None: ...


class BaseDocumentStore(ABC):
    """Shared transaction and change-stream behaviour for store adapters."""

    def __init__(
        self, max_transaction_attempts: int, change_log_retention: int | None = None
    ) -> None:
        if max_transaction_attempts < 1:
            msg = "max_transaction_attempts must be >= 1"
            raise ValueError(msg)
        if change_log_retention is not None and change_log_retention < 1:
            msg = "change_log_retention must be >= 1"
            raise ValueError(msg)
        self._max_transaction_attempts = max_transaction_attempts
        # Newest change events kept for replay. None keeps all of them.
        self._change_log_retention = change_log_retention
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Adapter hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def new_id(self, collection: str) -> str:
        """Generate a fresh document id for a collection."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        """Read the latest committed state of one document."""

    @abstractmethod
    def _commit(
        self,
        read_versions: dict[tuple[str, str], int],
        writes: list[PendingWrite],
    ) -> None:
        """
        Atomically verify ``read_versions`` and apply ``writes``.

        Raises:
            TransactionConflictError: a read document changed since it was read.
            DuplicateDocumentError: a ``create`` targeted an existing id.
            NotFoundError: an ``update`` targeted a missing document.
        """

    @abstractmethod
    def query(
        self,
        collection: str,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        *,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[DocumentSnapshot]:
        """Query documents by top-level field equality."""

    @abstractmethod
    def count(self, collection: str, where: dict[str, Any] | None = None) -> int:
        """Count documents matching top-level field equality."""

    @abstractmethod
    def count_by(self, collection: str, field_name: str) -> dict[str, int]:
        """Count documents grouped by the value of one field."""

    @abstractmethod
    def changes(
        self, after_sequence: int, collection: str | None = None, limit: int = 100
    ) -> list[ChangeEvent]:
        """Return committed changes with sequence > after_sequence, oldest first."""

    @abstractmethod
    def close(self) -> None:
        """Release resources held by the adapter."""

    # ------------------------------------------------------------------
    # Non-transactional writes (single-batch commits without reads)
    # ------------------------------------------------------------------

    def add(self, collection: str, data: dict[str, Any], doc_id: str | None = None) -> str:
        """Create a document and return its id."""
        new_id = doc_id if doc_id is not None else self.new_id(collection)
        self._commit({}, [PendingWrite("create", collection, new_id, copy.deepcopy(data))])
        return new_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Overwrite (or create) a document."""
        self._commit({}, [PendingWrite("set", collection, doc_id, copy.deepcopy(data))])

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        self._commit({}, [PendingWrite("update", collection, doc_id, copy.deepcopy(fields))])

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """
        Run ``fn`` inside an optimistic transaction and return its result.

        ``fn`` may be called several times: whenever a document it read is
        modified by someone else before this attempt commits, the attempt is
        thrown away and ``fn`` runs again against fresh snapshots. Exceptions
        raised by ``fn`` propagate immediately and nothing is written.

        Raises:
            TransactionAbortedError: every attempt lost to a concurrent write.
        """
        for attempt in range(1, self._max_transaction_attempts + 1):
            transaction = Transaction(self)
            result = fn(transaction)
            try:
                self._commit(transaction.read_versions, transaction.writes)
            except TransactionConflictError as exc:
                self._logger.debug(
                    "Transaction conflict, retrying",
                    extra={"attempt": attempt, "reason": str(exc)},
                )
                continue
            return result

        self._logger.warning(
            "Transaction aborted after retries",
            extra={"attempts": self._max_transaction_attempts},
        )
        raise TransactionAbortedError(
            "Transaction could not be committed due to concurrent modification",
            {"attempts": self._max_transaction_attempts},
        )

    # ------------------------------------------------------------------
    # Change stream
    # ------------------------------------------------------------------

    async def watch(
        self,
        collection: str | None = None,
        after_sequence: int = 0,
        poll_interval: float = 0.5,
    ) -> AsyncIterator[ChangeEvent]:
        """
        Yield change events forever, starting after ``after_sequence``.

        A consumer that remembers the last sequence it processed can restart
        the stream from that point without missing or repeating events.
        """
        cursor = after_sequence
        while True:
            events = self.changes(after_sequence=cursor, collection=collection)
            for event in events:
                yield event
                cursor = event.sequence
            if not events:
                await asyncio.sleep(poll_interval)

    # ------------------------------------------------------------------
    # Helpers for adapters
    # ------------------------------------------------------------------

    @staticmethod
    def _merged(
        write: PendingWrite, current: dict[str, Any] | None
    ) -> dict[str, Any]:
        """Compute the document body produced by applying ``write`` to ``current``."""
        if write.kind == "create":
            if current is not None:
                raise DuplicateDocumentError(
                    f"Document {write.collection}/{write.doc_id} already exists"
                )
            return copy.deepcopy(write.data)
        if write.kind == "set":
            return copy.deepcopy(write.data)
        if current is None:
            raise NotFoundError(
                f"Document {write.collection}/{write.doc_id} not found",
                details={"collection": write.collection, "id": write.doc_id},
            )
        merged = copy.deepcopy(current)
        merged.update(copy.deepcopy(write.data))
        return merged
