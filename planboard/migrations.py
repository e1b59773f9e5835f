"""Upgrade persisted board and session documents to the current schema.

Stored shapes seen in the wild, oldest first:

* v0: ``departments`` instead of ``teams`` (colour classes ``department-*``),
  features carry ``dept``, dependencies may lack ``relationship`` and
  ``additionalInfo``.
* v1: ``teams`` with ``color``, features carry ``team``/``sprint``,
  dependencies use ``from``/``to``/``additionalInfo``. No ``schemaVersion``.
* v2 (current): ``colorClass``, ``teamId``/``sprintId``,
  ``fromFeatureId``/``toFeatureId``/``note`` and an explicit ``schemaVersion``.

Each step only touches documents that still carry its legacy keys, so running
``migrate_board`` on an already-current document returns it unchanged.
"""
from __future__ import annotations

from copy import deepcopy
from typing import Any, Callable

from planboard.models import (
    CURRENT_SCHEMA_VERSION,
    DEFAULT_RELATIONSHIP,
    BoardState,
    Session,
)


def _rename_key(record: dict[str, Any], old: str, new: str) -> dict[str, Any]:
    """Rename ``old`` to ``new`` in place of the old key, keeping key order."""
    if old not in record or new in record:
        return record
    return {(new if key == old else key): value for key, value in record.items()}


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _departments_to_teams(board: dict[str, Any]) -> dict[str, Any]:
    if "departments" in board and "teams" not in board:
        teams = []
        for dept in _dicts(board["departments"]):
            color = str(dept.get("color") or "")
            teams.append({**dept, "color": color.replace("department-", "team-", 1)})
        board = _rename_key(board, "departments", "teams")
        board["teams"] = teams

    if isinstance(board.get("features"), list):
        board["features"] = [
            _rename_key(feature, "dept", "team") if isinstance(feature, dict) else feature
            for feature in board["features"]
        ]

    if isinstance(board.get("dependencies"), list):
        for dep in _dicts(board["dependencies"]):
            if "fromFeatureId" in dep:
                continue
            if not dep.get("relationship"):
                dep["relationship"] = DEFAULT_RELATIONSHIP
            if not dep.get("additionalInfo"):
                dep["additionalInfo"] = ""
    return board


def _current_field_names(board: dict[str, Any]) -> dict[str, Any]:
    if isinstance(board.get("teams"), list):
        board["teams"] = [
            _rename_key(team, "color", "colorClass") if isinstance(team, dict) else team
            for team in board["teams"]
        ]

    features = []
    for feature in _dicts(board.get("features")):
        feature = _rename_key(feature, "team", "teamId")
        features.append(_rename_key(feature, "sprint", "sprintId"))
    if "features" in board:
        board["features"] = features

    dependencies = []
    for dep in _dicts(board.get("dependencies")):
        dep = _rename_key(dep, "from", "fromFeatureId")
        dep = _rename_key(dep, "to", "toFeatureId")
        dependencies.append(_rename_key(dep, "additionalInfo", "note"))
    if "dependencies" in board:
        board["dependencies"] = dependencies

    highest = max((_coerce_int(f.get("id"), 0) for f in features), default=0)
    if _coerce_int(board.get("nextFeatureId"), 0) <= highest:
        board["nextFeatureId"] = highest + 1

    if "schemaVersion" not in board:
        board = {"schemaVersion": CURRENT_SCHEMA_VERSION, **board}
    board["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return board


# (schema version produced, step) ordered oldest to newest
_BOARD_STEPS: list[tuple[int, Callable[[dict[str, Any]], dict[str, Any]]]] = [
    (1, _departments_to_teams),
    (2, _current_field_names),
]


def migrate_board(raw: Any) -> dict[str, Any]:
    """Return ``raw`` upgraded to the current board schema. ``raw`` is not modified."""
    if not isinstance(raw, dict):
        raise ValueError(f"Board document must be an object, got {type(raw).__name__}")
    board = deepcopy(raw)
    version = _coerce_int(board.get("schemaVersion"), 0)
    for produces, step in _BOARD_STEPS:
        if version < produces:
            board = step(board)
    return board


def migrate_session(raw: Any) -> dict[str, Any]:
    """Upgrade a persisted session record.

    Legacy records use ``code``/``created``/``boardData``/``activeUsers``. The
    participant sequence becomes a ``set`` here and nowhere else.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Session record must be an object, got {type(raw).__name__}")
    record = deepcopy(raw)
    for old, new in (
        ("code", "accessCode"),
        ("created", "createdAt"),
        ("boardData", "boardState"),
        ("activeUsers", "participants"),
    ):
        record = _rename_key(record, old, new)
    # Pre-release records kept an unused ``users`` list next to ``activeUsers``.
    record.pop("users", None)

    record["accessCode"] = str(record.get("accessCode") or "").strip().upper()
    record["createdAt"] = str(record.get("createdAt") or "")
    record["boardState"] = migrate_board(record.get("boardState") or {})

    participants = record.get("participants")
    if isinstance(participants, (list, tuple, set, frozenset)):
        record["participants"] = {str(item) for item in participants}
    else:
        record["participants"] = set()
    return record


def load_session(session_id: str, raw: Any) -> Session:
    record = migrate_session(raw)
    return Session(
        id=session_id,
        accessCode=record["accessCode"],
        createdAt=record["createdAt"],
        boardState=BoardState.model_validate(record["boardState"]),
        participants=record["participants"],
    )


def serialize_session(session: Session) -> dict[str, Any]:
    """Inverse of ``load_session``: participant set becomes a sorted list."""
    return {
        "accessCode": session.accessCode,
        "createdAt": session.createdAt,
        "boardState": session.boardState.model_dump(),
        "participants": sorted(session.participants),
    }
