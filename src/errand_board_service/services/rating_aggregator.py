"""Running-average ratings for users, updated atomically with the rating log."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from errand_board_service.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from errand_board_service.logging import get_logger
from errand_board_service.models import (
    MAX_SCORE,
    MIN_SCORE,
    RATINGS,
    STATUS_COMPLETED,
    TASKS,
    USERS,
    now_iso,
)
from errand_board_service.services.task_validation import validate_comment

if TYPE_CHECKING:
    from errand_board_service.config import LimitsConfig
    from errand_board_service.models import Identity
    from errand_board_service.services.document_store import DocumentStore, Transaction


def next_average(old_average: float | None, old_count: int, score: int) -> float:
    """Fold one more score into a running mean."""
    if old_count == 0 or old_average is None:
        return float(score)
    return (old_average * old_count + score) / (old_count + 1)


def rating_to_response(rating: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": rating["id"],
        "taskId": rating["taskId"],
        "ratedUserId": rating["ratedUserId"],
        "ratedByUserId": rating["ratedByUserId"],
        "score": rating["score"],
        "comment": rating.get("comment"),
        "createdAt": rating["createdAt"],
    }


class RatingAggregator:
    """Records ratings and keeps each user's averageRating/ratingCount current."""

    def __init__(self, store: DocumentStore, limits: LimitsConfig) -> None:
        self._store = store
        self._limits = limits
        self._logger = get_logger(__name__)

    async def add_rating(
        self,
        identity: Identity,
        task_id: str,
        rated_user_id: object,
        score: object,
        comment: object = None,
    ) -> dict[str, Any]:
        """
        Rate the other party of a completed task.

        The rated user's aggregate, the new Rating record and the task's
        rated flag for the rater's side are written in one transaction, so a
        second rating from the same side is rejected even under concurrency.

        Raises:
            ValidationError: score not an integer in [1, 5] or bad comment.
            NotFoundError: task or rated user missing.
            AuthorizationError: rater is not a party, or rates the wrong user.
            InvalidStateError: task is not Completed.
            ConflictError: this side of the task was already rated.
        """
        if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
            raise ValidationError(
                f"score must be an integer between {MIN_SCORE} and {MAX_SCORE}",
                details={"field": "score"},
            )
        if not isinstance(rated_user_id, str) or not rated_user_id:
            raise ValidationError(
                "ratedUserId must be a non-empty string", details={"field": "ratedUserId"}
            )
        clean_comment = validate_comment(comment, self._limits.max_comment_length)
        uid = identity.uid
        rating_id = self._store.new_id(RATINGS)

        def _rate(tx: Transaction) -> dict[str, Any]:
            task_snapshot = tx.get(TASKS, task_id)
            rater_snapshot = tx.get(USERS, uid)
            if task_snapshot.data is None:
                raise NotFoundError("Task not found.", details={"taskId": task_id})
            if rater_snapshot.data is None:
                raise AuthorizationError(
                    "User profile is required to rate.", details={"uid": uid}
                )
            task = task_snapshot.data

            if uid == task["requesterId"]:
                flag, counterpart = "requesterRated", task.get("marshalId")
            elif uid == task.get("marshalId"):
                flag, counterpart = "marshalRated", task["requesterId"]
            else:
                raise AuthorizationError(
                    "Only the requester or the assigned marshal can rate this task.",
                    details={"taskId": task_id, "uid": uid},
                )
            if task["status"] != STATUS_COMPLETED:
                raise InvalidStateError(
                    "Only completed tasks can be rated.",
                    details={"taskId": task_id, "status": task["status"]},
                )
            if rated_user_id != counterpart:
                raise AuthorizationError(
                    "Ratings may only be given to the other party of the task.",
                    details={"taskId": task_id, "ratedUserId": rated_user_id},
                )
            if task.get(flag):
                raise ConflictError(
                    "This task has already been rated by you.",
                    details={"taskId": task_id, "flag": flag},
                )

            rated_snapshot = tx.get(USERS, rated_user_id)
            if rated_snapshot.data is None:
                raise NotFoundError("Rated user not found.", details={"uid": rated_user_id})

            old_count = int(rated_snapshot.data.get("ratingCount") or 0)
            old_average = rated_snapshot.data.get("averageRating")
            new_average = next_average(old_average, old_count, score)

            rating = {
                "id": rating_id,
                "taskId": task_id,
                "ratedUserId": rated_user_id,
                "ratedByUserId": uid,
                "score": score,
                "comment": clean_comment,
                "createdAt": now_iso(),
            }
            tx.update(
                USERS, rated_user_id, {"averageRating": new_average, "ratingCount": old_count + 1}
            )
            tx.create(RATINGS, rating, doc_id=rating_id)
            tx.update(TASKS, task_id, {flag: True})
            return rating

        rating = self._store.run_transaction(_rate)
        self._logger.info(
            "Rating recorded",
            extra={
                "task_id": task_id,
                "rated_user_id": rated_user_id,
                "rated_by_user_id": uid,
                "score": score,
            },
        )
        return rating_to_response(rating)

    async def list_ratings(self, user_id: str) -> list[dict[str, Any]]:
        """Ratings received by ``user_id``, oldest first."""
        snapshots = self._store.query(RATINGS, {"ratedUserId": user_id}, order_by="createdAt")
        return [rating_to_response(s.data) for s in snapshots if s.data is not None]
