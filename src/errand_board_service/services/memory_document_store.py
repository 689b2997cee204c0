"""In-memory document store with the same transaction semantics as the SQLite adapter."""

from __future__ import annotations

import copy
import uuid
from threading import RLock
from typing import Any

from errand_board_service.models import now_iso
from errand_board_service.services.document_store import (
    BaseDocumentStore,
    ChangeEvent,
    DocumentSnapshot,
    PendingWrite,
    TransactionConflictError,
)

_ID_PREFIXES: dict[str, str] = {"tasks": "t", "ratings": "r"}


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts first, then by value
    if value is None:
        return (0, "")
    return (1, value)


class InMemoryDocumentStore(BaseDocumentStore):
    """Dictionary-backed store. Nothing survives process exit."""

    def __init__(
        self, max_transaction_attempts: int, change_log_retention: int | None = None
    ) -> None:
        super().__init__(max_transaction_attempts, change_log_retention)
        self._lock = RLock()
        self._documents: dict[tuple[str, str], tuple[int, dict[str, Any]]] = {}
        self._changes: list[ChangeEvent] = []
        self._last_sequence = 0

    def new_id(self, collection: str) -> str:
        prefix = _ID_PREFIXES.get(collection, collection[:1] or "d")
        return f"{prefix}-{uuid.uuid4()}"

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._lock:
            entry = self._documents.get((collection, doc_id))
        if entry is None:
            return DocumentSnapshot(collection=collection, id=doc_id, data=None, version=0)
        version, data = entry
        return DocumentSnapshot(
            collection=collection, id=doc_id, data=copy.deepcopy(data), version=version
        )

    def _apply_write(
        self,
        write: PendingWrite,
        staged: dict[tuple[str, str], tuple[int, dict[str, Any]]],
    ) -> dict[str, Any]:
        """Stage one write on top of earlier writes from the same batch."""
        key = (write.collection, write.doc_id)
        entry = staged.get(key, self._documents.get(key))
        version, current = entry if entry is not None else (0, None)
        merged = self._merged(write, current)
        staged[key] = (version + 1, merged)
        return copy.deepcopy(merged)

    def _commit(
        self,
        read_versions: dict[tuple[str, str], int],
        writes: list[PendingWrite],
    ) -> None:
        if not writes:
            return
        with self._lock:
            for key, expected in read_versions.items():
                entry = self._documents.get(key)
                actual = entry[0] if entry is not None else 0
                if actual != expected:
                    raise TransactionConflictError(
                        f"{key[0]}/{key[1]} changed (read v{expected}, now v{actual})"
                    )

            staged: dict[tuple[str, str], tuple[int, dict[str, Any]]] = {}
            bodies = [self._apply_write(write, staged) for write in writes]

            changed_at = now_iso()
            for write, data in zip(writes, bodies, strict=True):
                self._last_sequence += 1
                self._changes.append(
                    ChangeEvent(
                        sequence=self._last_sequence,
                        collection=write.collection,
                        doc_id=write.doc_id,
                        data=data,
                        changed_at=changed_at,
                    )
                )
            retention = self._change_log_retention
            if retention is not None and len(self._changes) > retention:
                del self._changes[: len(self._changes) - retention]
            self._documents.update(staged)

    def _matching(
        self, collection: str, where: dict[str, Any] | None
    ) -> list[tuple[str, int, dict[str, Any]]]:
        conditions = where or {}
        with self._lock:
            return [
                (doc_id, version, copy.deepcopy(data))
                for (coll, doc_id), (version, data) in self._documents.items()
                if coll == collection
                and all(data.get(name) == value for name, value in conditions.items())
            ]

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
        matches = self._matching(collection, where)
        if order_by is not None:
            matches.sort(
                key=lambda item: (_sort_key(item[2].get(order_by)), item[0]),
                reverse=descending,
            )
        else:
            matches.sort(key=lambda item: item[0], reverse=descending)

        start = offset or 0
        end = start + limit if limit is not None else None
        return [
            DocumentSnapshot(collection=collection, id=doc_id, data=data, version=version)
            for doc_id, version, data in matches[start:end]
        ]

    def count(self, collection: str, where: dict[str, Any] | None = None) -> int:
        return len(self._matching(collection, where))

    def count_by(self, collection: str, field_name: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for _, _, data in self._matching(collection, None):
            value = str(data.get(field_name))
            counts[value] = counts.get(value, 0) + 1
        return counts

    def changes(
        self, after_sequence: int, collection: str | None = None, limit: int = 100
    ) -> list[ChangeEvent]:
        with self._lock:
            if not self._changes:
                return []
            # Sequences are contiguous from the oldest retained event
            first = self._changes[0].sequence
            pending = self._changes[max(after_sequence - first + 1, 0) :]
        selected = [
            event for event in pending if collection is None or event.collection == collection
        ]
        return [copy.deepcopy(event) for event in selected[:limit]]

    def close(self) -> None:
        with self._lock:
            self._documents.clear()
            self._changes.clear()
