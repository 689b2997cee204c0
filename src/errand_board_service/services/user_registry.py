"""User profiles: role, balance and rating aggregate per verified identity."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from errand_board_service.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from errand_board_service.logging import get_logger
from errand_board_service.models import (
    ROLE_MARSHAL,
    STATUS_IN_PROGRESS,
    TASKS,
    USERS,
    VALID_ROLES,
    money_to_json,
    now_iso,
)
from errand_board_service.services.document_store import DuplicateDocumentError
from errand_board_service.services.task_validation import validate_coordinates

if TYPE_CHECKING:
    from errand_board_service.models import Identity
    from errand_board_service.services.document_store import DocumentStore, Transaction

MAX_DISPLAY_NAME_LENGTH = 100


def user_to_response(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "role": user["role"],
        "displayName": user.get("displayName"),
        "balance": money_to_json(user.get("balance")),
        "averageRating": user.get("averageRating"),
        "ratingCount": int(user.get("ratingCount") or 0),
        "location": user.get("location"),
        "createdAt": user["createdAt"],
    }


class UserRegistry:
    """Creates and reads user profiles keyed by identity uid."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    async def register_user(
        self, identity: Identity, role: object, display_name: object = None
    ) -> dict[str, Any]:
        """
        Create the caller's profile with a zero balance and no ratings.

        Raises:
            ValidationError: unknown role or malformed display name.
            ConflictError: a profile already exists for this uid.
        """
        if not isinstance(role, str) or role not in VALID_ROLES:
            raise ValidationError(
                f"role must be one of {sorted(VALID_ROLES)}", details={"field": "role"}
            )
        if display_name is not None and (
            not isinstance(display_name, str)
            or not display_name.strip()
            or len(display_name) > MAX_DISPLAY_NAME_LENGTH
        ):
            raise ValidationError(
                f"displayName must be a non-empty string of at most "
                f"{MAX_DISPLAY_NAME_LENGTH} characters",
                details={"field": "displayName"},
            )

        user = {
            "id": identity.uid,
            "role": role,
            "displayName": display_name.strip() if isinstance(display_name, str) else None,
            "balance": "0.00",
            "averageRating": None,
            "ratingCount": 0,
            "createdAt": now_iso(),
        }
        try:
            self._store.add(USERS, user, doc_id=identity.uid)
        except DuplicateDocumentError as exc:
            raise ConflictError(
                "User profile already exists.", details={"uid": identity.uid}
            ) from exc

        self._logger.info("User registered", extra={"uid": identity.uid, "role": role})
        return user_to_response(user)

    async def get_user(self, uid: str) -> dict[str, Any]:
        """
        Raises:
            NotFoundError: no profile for ``uid``.
        """
        snapshot = self._store.get(USERS, uid)
        if snapshot.data is None:
            raise NotFoundError("User not found.", details={"uid": uid})
        return user_to_response(snapshot.data)

    async def update_location(self, identity: Identity, location: object) -> dict[str, Any]:
        """
        Record the calling marshal's current position.

        Only marshals are tracked. The position replaces whatever was stored
        before and carries the time it was reported.

        Raises:
            ValidationError: lat/lng missing or out of range.
            AuthorizationError: caller has no profile or is not a marshal.
        """
        lat, lng = validate_coordinates(location)
        uid = identity.uid

        def _update(tx: Transaction) -> dict[str, Any]:
            snapshot = tx.get(USERS, uid)
            if snapshot.data is None:
                raise AuthorizationError(
                    "User profile is required to share a location.", details={"uid": uid}
                )
            if snapshot.data.get("role") != ROLE_MARSHAL:
                raise AuthorizationError(
                    "Only marshals can share their location.", details={"uid": uid}
                )
            position = {"lat": lat, "lng": lng, "updatedAt": now_iso()}
            tx.update(USERS, uid, {"location": position})
            return {**snapshot.data, "location": position}

        user = self._store.run_transaction(_update)
        self._logger.debug("Marshal location updated", extra={"uid": uid})
        return user_to_response(user)

    async def get_marshal_location(self, identity: Identity, task_id: str) -> dict[str, Any]:
        """
        Where the marshal working on the caller's task currently is.

        Raises:
            NotFoundError: task missing, or the marshal has not shared a location.
            AuthorizationError: caller is not the requester, or the task is
                not In Progress.
        """
        task_snapshot = self._store.get(TASKS, task_id)
        if task_snapshot.data is None:
            raise NotFoundError("Task not found.", details={"taskId": task_id})
        task = task_snapshot.data
        if task["requesterId"] != identity.uid:
            raise AuthorizationError(
                "Only the requester can track this task's marshal.",
                details={"taskId": task_id, "uid": identity.uid},
            )
        if task["status"] != STATUS_IN_PROGRESS:
            raise AuthorizationError(
                "The marshal can only be tracked while the task is in progress.",
                details={"taskId": task_id, "status": task["status"]},
            )

        marshal_id = task["marshalId"]
        marshal_snapshot = self._store.get(USERS, marshal_id)
        location = marshal_snapshot.data.get("location") if marshal_snapshot.data else None
        if location is None:
            raise NotFoundError(
                "Marshal location not available.", details={"marshalId": marshal_id}
            )
        return {"taskId": task_id, "marshalId": marshal_id, "location": location}
