"""Task lifecycle: create, accept and complete, plus PREPAID settlement."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from errand_board_service.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from errand_board_service.logging import get_logger
from errand_board_service.models import (
    PAYMENT_PREPAID,
    ROLE_MARSHAL,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    TASKS,
    USERS,
    VALID_STATUSES,
    format_money,
    money_to_json,
    now_iso,
    to_money,
)
from errand_board_service.services.task_validation import (
    validate_payment_method,
    validate_status_filter,
    validate_task_fields,
)

if TYPE_CHECKING:
    from errand_board_service.config import LimitsConfig
    from errand_board_service.models import Identity
    from errand_board_service.services.document_store import DocumentStore, Transaction

# Accept and complete report every domain failure as 400 with a distinct error code
LIFECYCLE_ERROR_STATUS = 400

MAX_PAGE_SIZE = 100


def task_to_response(task: dict[str, Any]) -> dict[str, Any]:
    """Render a stored task document for API responses."""
    location = task.get("location") or {}
    return {
        "id": task["id"],
        "title": task["title"],
        "description": task["description"],
        "location": {
            "address": location.get("address"),
            "lat": location.get("lat"),
            "lng": location.get("lng"),
        },
        "fee": money_to_json(task["fee"]),
        "duration": task["duration"],
        "paymentMethod": task["paymentMethod"],
        "requesterId": task["requesterId"],
        "marshalId": task.get("marshalId"),
        "status": task["status"],
        "requesterRated": bool(task.get("requesterRated", False)),
        "marshalRated": bool(task.get("marshalRated", False)),
        "createdAt": task["createdAt"],
        "acceptedAt": task.get("acceptedAt"),
        "completedAt": task.get("completedAt"),
    }


class TaskManager:
    """
    Owns the task state machine: Open -> In Progress -> Completed.

    Every mutation of an existing task runs inside a single document-store
    transaction that re-reads the task (and any user it depends on), so two
    callers racing on the same task can never both succeed.
    """

    def __init__(self, store: DocumentStore, limits: LimitsConfig) -> None:
        self._store = store
        self._limits = limits
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public methods, called by routers
    # ------------------------------------------------------------------

    async def create_task(
        self, identity: Identity, task_data: object, payment_method: object
    ) -> dict[str, Any]:
        """
        Create an Open task owned by the calling requester.

        Raises:
            ValidationError: any field missing, malformed or out of range.
            AuthorizationError: the caller is registered as a marshal.
        """
        fields = validate_task_fields(task_data, self._limits)
        method = validate_payment_method(payment_method)

        profile = self._store.get(USERS, identity.uid)
        if profile.exists and profile.data is not None and profile.data.get("role") == ROLE_MARSHAL:
            raise AuthorizationError(
                "Marshals cannot post tasks.", details={"uid": identity.uid}
            )

        task_id = self._store.new_id(TASKS)
        task = {
            "id": task_id,
            "title": fields["title"],
            "description": fields["description"],
            "location": fields["location"],
            "fee": format_money(fields["fee"]),
            "duration": fields["duration"],
            "paymentMethod": method,
            "requesterId": identity.uid,
            "marshalId": None,
            "status": STATUS_OPEN,
            "requesterRated": False,
            "marshalRated": False,
            "createdAt": now_iso(),
            "acceptedAt": None,
            "completedAt": None,
        }
        self._store.add(TASKS, task, doc_id=task_id)

        self._logger.info(
            "Task created",
            extra={"task_id": task_id, "requester_id": identity.uid, "payment_method": method},
        )
        return task_to_response(task)

    async def accept_task(self, identity: Identity, task_id: str) -> None:
        """
        Assign an Open task to the calling marshal.

        The read of the task and the user and the conditional write commit
        together. When two marshals race, the loser's transaction is retried
        by the store, sees the task is no longer Open and fails.

        Raises:
            NotFoundError: task does not exist.
            AuthorizationError: caller has no profile or is not a marshal.
            ConflictError: task is no longer Open.
        """
        uid = identity.uid

        def _accept(tx: Transaction) -> None:
            task_snapshot = tx.get(TASKS, task_id)
            user_snapshot = tx.get(USERS, uid)

            if task_snapshot.data is None:
                raise NotFoundError(
                    "Task not found.", LIFECYCLE_ERROR_STATUS, {"taskId": task_id}
                )
            task = task_snapshot.data

            if user_snapshot.data is None or user_snapshot.data.get("role") != ROLE_MARSHAL:
                raise AuthorizationError(
                    "User is not authorized to accept tasks.",
                    LIFECYCLE_ERROR_STATUS,
                    {"uid": uid},
                )
            if task["requesterId"] == uid:
                raise AuthorizationError(
                    "Requesters cannot accept their own task.",
                    LIFECYCLE_ERROR_STATUS,
                    {"uid": uid},
                )

            if task["status"] != STATUS_OPEN or task.get("marshalId") is not None:
                raise ConflictError(
                    "Task is no longer available.",
                    LIFECYCLE_ERROR_STATUS,
                    {"taskId": task_id, "status": task["status"]},
                )

            tx.update(
                TASKS,
                task_id,
                {"status": STATUS_IN_PROGRESS, "marshalId": uid, "acceptedAt": now_iso()},
            )

        self._store.run_transaction(_accept)
        self._logger.info("Task accepted", extra={"task_id": task_id, "marshal_id": uid})

    async def complete_task(self, identity: Identity, task_id: str) -> None:
        """
        Complete an In Progress task and settle its fee.

        For PREPAID tasks the requester is debited and the marshal credited
        in the same transaction that marks the task Completed. Either every
        write lands or none does. ON_THE_SPOT tasks only change status.

        Raises:
            NotFoundError: task, requester or marshal account missing.
            AuthorizationError: caller is not the assigned marshal.
            InvalidStateError: task is not In Progress.
            InsufficientFundsError: requester balance is below the fee.
        """
        uid = identity.uid

        def _complete(tx: Transaction) -> dict[str, Any]:
            task_snapshot = tx.get(TASKS, task_id)
            if task_snapshot.data is None:
                raise NotFoundError(
                    "Task not found.", LIFECYCLE_ERROR_STATUS, {"taskId": task_id}
                )
            task = task_snapshot.data

            if task.get("marshalId") != uid:
                raise AuthorizationError(
                    "Only the assigned marshal can complete this task.",
                    LIFECYCLE_ERROR_STATUS,
                    {"taskId": task_id, "uid": uid},
                )
            if task["status"] != STATUS_IN_PROGRESS:
                raise InvalidStateError(
                    "Task cannot be completed as it's not in progress.",
                    LIFECYCLE_ERROR_STATUS,
                    {"taskId": task_id, "status": task["status"]},
                )

            settlement: dict[str, Any] = {"paymentMethod": task["paymentMethod"]}
            if task["paymentMethod"] == PAYMENT_PREPAID:
                requester_id = task["requesterId"]
                requester_snapshot = tx.get(USERS, requester_id)
                marshal_snapshot = tx.get(USERS, uid)
                if requester_snapshot.data is None or marshal_snapshot.data is None:
                    raise NotFoundError(
                        "Requester or marshal account not found.",
                        LIFECYCLE_ERROR_STATUS,
                        {"requesterId": requester_id, "marshalId": uid},
                    )

                fee = to_money(task["fee"])
                requester_balance = to_money(requester_snapshot.data.get("balance"))
                marshal_balance = to_money(marshal_snapshot.data.get("balance"))
                if requester_balance < fee:
                    raise InsufficientFundsError(
                        "Requester has insufficient funds. Please contact support.",
                        LIFECYCLE_ERROR_STATUS,
                        {"taskId": task_id},
                    )

                tx.update(USERS, requester_id, {"balance": format_money(requester_balance - fee)})
                tx.update(USERS, uid, {"balance": format_money(marshal_balance + fee)})
                settlement["amount"] = format_money(fee)

            tx.update(
                TASKS, task_id, {"status": STATUS_COMPLETED, "completedAt": now_iso()}
            )
            return settlement

        settlement = self._store.run_transaction(_complete)
        self._logger.info(
            "Task completed",
            extra={"task_id": task_id, "marshal_id": uid, **settlement},
        )

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """
        Get a single task by ID.

        Raises:
            NotFoundError: task does not exist.
        """
        snapshot = self._store.get(TASKS, task_id)
        if snapshot.data is None:
            raise NotFoundError("Task not found.", details={"taskId": task_id})
        return task_to_response(snapshot.data)

    async def list_tasks(
        self,
        status: str | None,
        requester_id: str | None,
        marshal_id: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks newest first. All filters use AND logic."""
        validate_status_filter(status)
        if limit is not None and not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"field": "limit"}
            )
        if offset is not None and offset < 0:
            raise ValidationError("offset must not be negative", details={"field": "offset"})

        where: dict[str, Any] = {}
        if status is not None:
            where["status"] = status
        if requester_id is not None:
            where["requesterId"] = requester_id
        if marshal_id is not None:
            where["marshalId"] = marshal_id

        snapshots = self._store.query(
            TASKS,
            where,
            order_by="createdAt",
            descending=True,
            limit=limit,
            offset=offset,
        )
        return [task_to_response(s.data) for s in snapshots if s.data is not None]

    def get_stats(self) -> dict[str, Any]:
        """Return aggregate task statistics for health reporting."""
        counts: dict[str, int] = dict.fromkeys(sorted(VALID_STATUSES), 0)
        for status_val, count in self._store.count_by(TASKS, "status").items():
            if status_val in counts:
                counts[status_val] = int(count)
        return {
            "total_tasks": self._store.count(TASKS),
            "tasks_by_status": counts,
        }
