"""SQLite-backed document store."""

from __future__ import annotations

import contextlib
import json
import re
import sqlite3
import uuid
from pathlib import Path
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

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_ID_PREFIXES: dict[str, str] = {"tasks": "t", "ratings": "r"}


def _json_path(field_name: str) -> str:
    if not _FIELD_NAME.match(field_name):
        msg = f"Invalid field name: {field_name!r}"
        raise ValueError(msg)
    return f"$.{field_name}"


def _sql_value(value: Any) -> Any:
    # json_extract returns 1/0 for JSON booleans
    if isinstance(value, bool):
        return int(value)
    return value


class SQLiteDocumentStore(BaseDocumentStore):
    """
    Stores each document as a JSON body with a version counter.

    Every committed write bumps the document version and appends a row to
    the ``changes`` table, whose autoincrement key is the change-stream
    sequence number. With a retention set, only that many of the newest
    change rows are kept. AUTOINCREMENT keeps sequence numbers from being
    reused after older rows are dropped.
    """

    def __init__(
        self,
        db_path: str,
        max_transaction_attempts: int,
        change_log_retention: int | None = None,
    ) -> None:
        super().__init__(max_transaction_attempts, change_log_retention)
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                );

                CREATE TABLE IF NOT EXISTS changes (
                    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    data TEXT,
                    changed_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_changes_collection
                    ON changes (collection, sequence);
                """
            )
            self._db.commit()

    def new_id(self, collection: str) -> str:
        prefix = _ID_PREFIXES.get(collection, collection[:1] or "d")
        return f"{prefix}-{uuid.uuid4()}"

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._lock:
            row = self._db.execute(
                "SELECT version, data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()
        if row is None:
            return DocumentSnapshot(collection=collection, id=doc_id, data=None, version=0)
        return DocumentSnapshot(
            collection=collection,
            id=doc_id,
            data=json.loads(row["data"]),
            version=int(row["version"]),
        )

    def _current(self, collection: str, doc_id: str) -> tuple[int, dict[str, Any] | None]:
        row = self._db.execute(
            "SELECT version, data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return 0, None
        return int(row["version"]), json.loads(row["data"])

    def _apply_write(self, write: PendingWrite, changed_at: str) -> None:
        """Apply one write inside the open SQLite transaction."""
        version, current = self._current(write.collection, write.doc_id)
        merged = self._merged(write, current)
        body = json.dumps(merged, sort_keys=True)
        self._db.execute(
            "INSERT INTO documents (collection, doc_id, version, data) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(collection, doc_id) DO UPDATE SET "
            "version = excluded.version, data = excluded.data",
            (write.collection, write.doc_id, version + 1, body),
        )
        self._db.execute(
            "INSERT INTO changes (collection, doc_id, version, data, changed_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (write.collection, write.doc_id, version + 1, body, changed_at),
        )

    def _trim_changes(self) -> None:
        """Drop change rows older than the newest ``change_log_retention``."""
        if self._change_log_retention is None:
            return
        self._db.execute(
            "DELETE FROM changes WHERE sequence <= (SELECT MAX(sequence) FROM changes) - ?",
            (self._change_log_retention,),
        )

    def _commit(
        self,
        read_versions: dict[tuple[str, str], int],
        writes: list[PendingWrite],
    ) -> None:
        if not writes:
            return
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                for (collection, doc_id), expected in read_versions.items():
                    actual, _ = self._current(collection, doc_id)
                    if actual != expected:
                        raise TransactionConflictError(
                            f"{collection}/{doc_id} changed (read v{expected}, now v{actual})"
                        )
                changed_at = now_iso()
                for write in writes:
                    self._apply_write(write, changed_at)
                self._trim_changes()
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def _where_clause(
        self, collection: str, where: dict[str, Any] | None
    ) -> tuple[str, list[object]]:
        clauses = ["collection = ?"]
        params: list[object] = [collection]
        for field_name, value in (where or {}).items():
            if value is None:
                clauses.append("json_extract(data, ?) IS NULL")
                params.append(_json_path(field_name))
            else:
                clauses.append("json_extract(data, ?) = ?")
                params.extend([_json_path(field_name), _sql_value(value)])
        return " WHERE " + " AND ".join(clauses), params

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
        where_sql, params = self._where_clause(collection, where)
        query = "SELECT doc_id, version, data FROM documents" + where_sql  # nosec B608

        direction = "DESC" if descending else "ASC"
        if order_by is not None:
            query += f" ORDER BY json_extract(data, ?) {direction}, doc_id {direction}"
            params.append(_json_path(order_by))
        else:
            query += f" ORDER BY doc_id {direction}"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        if offset is not None:
            if limit is None:
                query += " LIMIT -1"
            query += " OFFSET ?"
            params.append(offset)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [
            DocumentSnapshot(
                collection=collection,
                id=row["doc_id"],
                data=json.loads(row["data"]),
                version=int(row["version"]),
            )
            for row in rows
        ]

    def count(self, collection: str, where: dict[str, Any] | None = None) -> int:
        where_sql, params = self._where_clause(collection, where)
        with self._lock:
            row = self._db.execute(
                "SELECT COUNT(*) FROM documents" + where_sql,  # nosec B608
                params,
            ).fetchone()
        return int(row[0]) if row is not None else 0

    def count_by(self, collection: str, field_name: str) -> dict[str, int]:
        path = _json_path(field_name)
        with self._lock:
            rows = self._db.execute(
                "SELECT json_extract(data, ?) AS value, COUNT(*) FROM documents "
                "WHERE collection = ? GROUP BY value",
                (path, collection),
            ).fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def changes(
        self, after_sequence: int, collection: str | None = None, limit: int = 100
    ) -> list[ChangeEvent]:
        query = "SELECT sequence, collection, doc_id, data, changed_at FROM changes WHERE sequence > ?"
        params: list[object] = [after_sequence]
        if collection is not None:
            query += " AND collection = ?"
            params.append(collection)
        query += " ORDER BY sequence LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [
            ChangeEvent(
                sequence=int(row["sequence"]),
                collection=row["collection"],
                doc_id=row["doc_id"],
                data=json.loads(row["data"]) if row["data"] is not None else None,
                changed_at=row["changed_at"],
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
