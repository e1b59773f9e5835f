"""Mutation dispatch: validate a client request, apply it to a board, persist.

Each handler receives a private copy of the session's board. The copy is
swapped in only after the handler returns, so a rejected request never leaves
a partially applied board behind.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter
from pydantic import ValidationError as SchemaError

from planboard import board as ops
from planboard.errors import PlanboardError, ValidationError
from planboard.models import BoardState, Dependency
from planboard.observability import record_mutation, start_span
from planboard.session_store import SessionStore

logger = logging.getLogger("planboard.mutations")


@dataclass(frozen=True)
class MutationResult:
    event: str
    data: Any
    include_sender: bool = True


# ── Request models ──────────────────────────────────────────────────

class FeatureInput(BaseModel):
    title: str = ""
    teamId: str = Field(validation_alias=AliasChoices("teamId", "team"))
    sprintId: int = Field(validation_alias=AliasChoices("sprintId", "sprint"))
    assignee: Optional[str] = None
    description: Optional[str] = None


class FeaturePatch(BaseModel):
    id: int
    deleted: bool = False
    title: Optional[str] = None
    teamId: Optional[str] = Field(default=None, validation_alias=AliasChoices("teamId", "team"))
    sprintId: Optional[int] = Field(default=None, validation_alias=AliasChoices("sprintId", "sprint"))
    assignee: Optional[str] = None
    description: Optional[str] = None


class MoveFeatureRequest(BaseModel):
    featureId: int
    teamId: str = Field(validation_alias=AliasChoices("teamId", "team"))
    sprintId: int = Field(validation_alias=AliasChoices("sprintId", "sprint"))


class TeamInput(BaseModel):
    name: str = ""
    id: Optional[str] = None
    colorClass: Optional[str] = Field(default=None, validation_alias=AliasChoices("colorClass", "color"))


class SprintInput(BaseModel):
    name: str = ""
    id: Optional[int] = None


_DEPENDENCY_LIST = TypeAdapter(list[Dependency])


def _target(payload: Any, key: str, cast: Callable[[Any], Any]) -> Any:
    """Accept either a bare id or an object carrying it under ``key`` or ``id``."""
    value = payload.get(key, payload.get("id")) if isinstance(payload, dict) else payload
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError(f"Missing {key}", field=key)
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {key}: {value!r}", field=key) from exc


# ── Handlers ────────────────────────────────────────────────────────

def _create_feature(board: BoardState, payload: Any) -> MutationResult:
    request = FeatureInput.model_validate(payload)
    feature = ops.create_feature(
        board,
        request.title,
        request.teamId,
        request.sprintId,
        assignee=request.assignee,
        description=request.description,
    )
    return MutationResult("feature-created", feature.model_dump())


def _update_feature(board: BoardState, payload: Any) -> MutationResult:
    request = FeaturePatch.model_validate(payload)
    if request.deleted:
        return _delete(board, request.id)
    patch = request.model_dump(exclude_unset=True, exclude={"id", "deleted"})
    feature = ops.update_feature(board, request.id, patch)
    return MutationResult("feature-updated", feature.model_dump())


def _delete_feature(board: BoardState, payload: Any) -> MutationResult:
    return _delete(board, _target(payload, "featureId", int))


def _delete(board: BoardState, feature_id: int) -> MutationResult:
    ops.delete_feature(board, feature_id)
    return MutationResult("feature-deleted", {"featureId": feature_id})


def _move_feature(board: BoardState, payload: Any) -> MutationResult:
    request = MoveFeatureRequest.model_validate(payload)
    ops.move_feature(board, request.featureId, request.teamId, request.sprintId)
    return MutationResult("feature-moved", request.model_dump())


def _update_dependencies(board: BoardState, payload: Any) -> MutationResult:
    submitted = _DEPENDENCY_LIST.validate_python(payload or [])
    accepted = ops.replace_dependencies(board, list(submitted))
    # The sender only needs the list back when entries were dropped.
    return MutationResult(
        "dependencies-updated",
        [dep.model_dump() for dep in accepted],
        include_sender=accepted != submitted,
    )


def _add_dependency(board: BoardState, payload: Any) -> MutationResult:
    ops.add_dependency(board, Dependency.model_validate(payload))
    return MutationResult("dependencies-updated", [dep.model_dump() for dep in board.dependencies])


def _add_team(board: BoardState, payload: Any) -> MutationResult:
    request = TeamInput.model_validate(payload)
    team = ops.add_team(board, request.name, team_id=request.id, color_class=request.colorClass)
    return MutationResult("team-added", team.model_dump())


def _remove_team(board: BoardState, payload: Any) -> MutationResult:
    team_id = _target(payload, "teamId", str)
    removed = ops.remove_team(board, team_id)
    if removed:
        logger.info(f"Removing team {team_id} also removed features {removed}")
    return MutationResult("team-removed", team_id)


def _add_sprint(board: BoardState, payload: Any) -> MutationResult:
    request = SprintInput.model_validate(payload)
    sprint = ops.add_sprint(board, request.name, sprint_id=request.id)
    return MutationResult("sprint-added", sprint.model_dump())


def _remove_sprint(board: BoardState, payload: Any) -> MutationResult:
    sprint_id = _target(payload, "sprintId", int)
    removed = ops.remove_sprint(board, sprint_id)
    if removed:
        logger.info(f"Removing sprint {sprint_id} also removed features {removed}")
    return MutationResult("sprint-removed", sprint_id)


MUTATION_HANDLERS: dict[str, Callable[[BoardState, Any], MutationResult]] = {
    "create-feature": _create_feature,
    "update-feature": _update_feature,
    "delete-feature": _delete_feature,
    "move-feature": _move_feature,
    "update-dependencies": _update_dependencies,
    "add-dependency": _add_dependency,
    "add-team": _add_team,
    "remove-team": _remove_team,
    "add-sprint": _add_sprint,
    "remove-sprint": _remove_sprint,
}


class MutationProcessor:
    """Applies one mutation at a time against the sessions held by a store."""

    def __init__(self, store: SessionStore):
        self._store = store
        self._lock = asyncio.Lock()
        self._handlers = dict(MUTATION_HANDLERS)

    async def apply(self, session_id: str, kind: str, payload: Any) -> MutationResult:
        """Validate and apply a mutation, then persist the store.

        Raises ``ValidationError`` or ``NotFoundError``; in that case the
        session's board and the snapshot are untouched.
        """
        async with self._lock:
            try:
                result = self._apply_locked(session_id, kind, payload)
            except PlanboardError:
                record_mutation(kind, "rejected")
                raise
            record_mutation(kind, "applied")
            return result

    def _apply_locked(self, session_id: str, kind: str, payload: Any) -> MutationResult:
        handler = self._handlers.get(kind)
        if handler is None:
            raise ValidationError(f"Unknown mutation {kind!r}", kind=kind)
        session = self._store.find_by_id(session_id)

        draft = session.boardState.model_copy(deep=True)
        with start_span("planboard.mutation", {"mutation.kind": kind, "session.id": session_id}):
            try:
                result = handler(draft, payload)
            except SchemaError as exc:
                raise ValidationError(f"Malformed {kind} payload: {exc.error_count()} error(s)", kind=kind) from exc

        session.boardState = draft
        self._store.persist()
        return result
