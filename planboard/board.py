"""Board state operations.

Every function here works on a single ``BoardState`` and either returns the
affected entity or raises ``ValidationError`` / ``NotFoundError``. Callers that
need all-or-nothing semantics apply them to a copy (see ``mutations.py``).
"""
from __future__ import annotations

import re
from copy import deepcopy
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError as SchemaError

from planboard.errors import NotFoundError, ValidationError
from planboard.models import BoardState, Dependency, Feature, Sprint, Team

_WHITESPACE_RE = re.compile(r"\s+")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9-]")
_PATCHABLE_FEATURE_FIELDS = ("title", "teamId", "sprintId", "assignee", "description")

_DEFAULT_BOARD: dict[str, Any] = {
    "schemaVersion": 2,
    "teams": [
        {"id": "dev", "name": "IT Devs", "colorClass": "team-dev"},
        {"id": "design", "name": "R&G", "colorClass": "team-design"},
        {"id": "qa", "name": "People Ops", "colorClass": "team-qa"},
        {"id": "devops", "name": "Payments", "colorClass": "team-devops"},
        {"id": "product", "name": "Mortgage", "colorClass": "team-product"},
        {"id": "marketing", "name": "Other", "colorClass": "team-marketing"},
    ],
    "sprints": [{"id": n, "name": f"Sprint {n}"} for n in range(1, 9)],
    "features": [
        {"id": 1, "title": "User Authentication System", "teamId": "dev", "sprintId": 1, "assignee": "Sarah",
         "description": "Implement secure login/logout with session management, password hashing and MFA support."},
        {"id": 2, "title": "Database Performance Optimization", "teamId": "dev", "sprintId": 1, "assignee": "John",
         "description": "Tune slow queries, add indexes and connection pooling for high-traffic scenarios."},
        {"id": 3, "title": "Mobile App UI Redesign", "teamId": "design", "sprintId": 2, "assignee": "Mike",
         "description": "Responsive mobile interface with improved navigation and accessibility."},
        {"id": 4, "title": "Payment Gateway Integration", "teamId": "dev", "sprintId": 3, "assignee": "Lisa",
         "description": "Integrate payment providers with refunds and fraud detection."},
        {"id": 5, "title": "Automated Testing Suite", "teamId": "qa", "sprintId": 3, "assignee": "Tom",
         "description": "Unit, integration and end-to-end test automation framework."},
        {"id": 6, "title": "CI/CD Pipeline Setup", "teamId": "devops", "sprintId": 2, "assignee": "Alex",
         "description": "Automated build, test and deployment pipeline with staging and rollback."},
        {"id": 7, "title": "Employee Onboarding Portal", "teamId": "product", "sprintId": 1, "assignee": "Emma",
         "description": "Self-service portal for new employee registration and document uploads."},
        {"id": 8, "title": "Customer Support Chat", "teamId": "product", "sprintId": 4, "assignee": "David",
         "description": "Real-time chat with agent routing, history and ticketing integration."},
        {"id": 9, "title": "Load Testing & Performance", "teamId": "qa", "sprintId": 4, "assignee": "Amy",
         "description": "Validate performance under expected traffic and find bottlenecks."},
        {"id": 10, "title": "Security Vulnerability Assessment", "teamId": "devops", "sprintId": 5, "assignee": "Ryan",
         "description": "Penetration testing, code review and compliance validation."},
        {"id": 11, "title": "User Feedback Dashboard", "teamId": "product", "sprintId": 3, "assignee": "Emma",
         "description": "Collect, categorize and visualize user feedback."},
        {"id": 12, "title": "Data Analytics Platform", "teamId": "dev", "sprintId": 6, "assignee": "John",
         "description": "Real-time data processing with dashboards and data export."},
    ],
    "dependencies": [
        {"fromFeatureId": 1, "toFeatureId": 4, "relationship": "prerequisite for",
         "note": "Users must be authenticated before they can make payments"},
        {"fromFeatureId": 2, "toFeatureId": 12, "relationship": "enables",
         "note": "Optimized database is required for real-time analytics performance"},
        {"fromFeatureId": 6, "toFeatureId": 5, "relationship": "enables",
         "note": "CI/CD pipeline must be in place before automated testing is effective"},
        {"fromFeatureId": 4, "toFeatureId": 9, "relationship": "requires",
         "note": "Payment system needs load testing to handle transaction volumes"},
        {"fromFeatureId": 10, "toFeatureId": 4, "relationship": "blocks",
         "note": "Security assessment must complete before the payment gateway goes live"},
    ],
    "nextFeatureId": 13,
}


def default_board() -> BoardState:
    """Return a fresh copy of the built-in template board."""
    return BoardState.model_validate(deepcopy(_DEFAULT_BOARD))


def slugify(name: str) -> str:
    token = _WHITESPACE_RE.sub("-", (name or "").strip().lower())
    return _SLUG_STRIP_RE.sub("", token)


def find_feature(board: BoardState, feature_id: int) -> Feature:
    for feature in board.features:
        if feature.id == feature_id:
            return feature
    raise NotFoundError(f"Feature {feature_id} not found", featureId=feature_id)


def dependencies_for(board: BoardState, feature_id: int) -> list[Dependency]:
    return [
        dep for dep in board.dependencies
        if dep.fromFeatureId == feature_id or dep.toFeatureId == feature_id
    ]


def next_sprint_id(board: BoardState) -> int:
    return max((sprint.id for sprint in board.sprints), default=0) + 1


def _reserve_feature_id(board: BoardState) -> int:
    highest = max((feature.id for feature in board.features), default=0)
    # A hand-edited data file can leave the counter behind the issued ids.
    feature_id = max(board.nextFeatureId, highest + 1)
    board.nextFeatureId = feature_id + 1
    return feature_id


def _drop_features(board: BoardState, predicate: Callable[[Feature], bool]) -> list[int]:
    removed = [feature.id for feature in board.features if predicate(feature)]
    if not removed:
        return removed
    gone = set(removed)
    board.features = [feature for feature in board.features if feature.id not in gone]
    board.dependencies = [
        dep for dep in board.dependencies
        if dep.fromFeatureId not in gone and dep.toFeatureId not in gone
    ]
    return removed


# ── Features ────────────────────────────────────────────────────────

def create_feature(
    board: BoardState,
    title: str,
    team_id: str,
    sprint_id: int,
    assignee: Optional[str] = None,
    description: Optional[str] = None,
) -> Feature:
    clean_title = (title or "").strip()
    if not clean_title:
        raise ValidationError("Feature title is required", field="title")
    feature = Feature(
        id=_reserve_feature_id(board),
        title=clean_title,
        teamId=team_id,
        sprintId=sprint_id,
        assignee=assignee,
        description=description,
    )
    board.features.append(feature)
    return feature


def update_feature(board: BoardState, feature_id: int, patch: dict[str, Any]) -> Feature:
    """Merge the present patch fields into a feature; absent fields are kept."""
    current = find_feature(board, feature_id)
    changes = {key: value for key, value in patch.items() if key in _PATCHABLE_FEATURE_FIELDS}
    if "title" in changes:
        changes["title"] = str(changes["title"] or "").strip()
        if not changes["title"]:
            raise ValidationError("Feature title is required", field="title")
    try:
        updated = Feature.model_validate({**current.model_dump(), **changes})
    except SchemaError as exc:
        raise ValidationError(f"Invalid feature update: {exc.error_count()} error(s)", featureId=feature_id) from exc

    board.features = [updated if feature is current else feature for feature in board.features]
    return updated


def delete_feature(board: BoardState, feature_id: int) -> Feature:
    feature = find_feature(board, feature_id)
    _drop_features(board, lambda candidate: candidate.id == feature_id)
    return feature


def move_feature(board: BoardState, feature_id: int, team_id: str, sprint_id: int) -> Feature:
    # Target team/sprint are not checked: the board UI only offers existing cells.
    feature = find_feature(board, feature_id)
    feature.teamId = team_id
    feature.sprintId = sprint_id
    return feature


# ── Teams and sprints ───────────────────────────────────────────────

def add_team(board: BoardState, name: str, team_id: Optional[str] = None, color_class: Optional[str] = None) -> Team:
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Team name is required", field="name")
    slug = slugify(team_id or clean_name)
    if not slug:
        raise ValidationError(f"Team name {clean_name!r} does not produce a usable id", field="id")
    if any(team.id == slug for team in board.teams):
        raise ValidationError(f"Team {slug} already exists", field="id")
    team = Team(id=slug, name=clean_name, colorClass=(color_class or "").strip() or f"team-{slug}")
    board.teams.append(team)
    return team


def remove_team(board: BoardState, team_id: str) -> list[int]:
    """Remove a team and every feature placed in it. Returns the removed feature ids."""
    known = any(team.id == team_id for team in board.teams)
    if not known and not any(feature.teamId == team_id for feature in board.features):
        raise NotFoundError(f"Team {team_id} not found", teamId=team_id)
    board.teams = [team for team in board.teams if team.id != team_id]
    return _drop_features(board, lambda feature: feature.teamId == team_id)


def add_sprint(board: BoardState, name: str, sprint_id: Optional[int] = None) -> Sprint:
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Sprint name is required", field="name")
    if sprint_id is None:
        sprint_id = next_sprint_id(board)
    if any(sprint.id == sprint_id for sprint in board.sprints):
        raise ValidationError(f"Sprint {sprint_id} already exists", field="id")
    sprint = Sprint(id=sprint_id, name=clean_name)
    board.sprints.append(sprint)
    return sprint


def remove_sprint(board: BoardState, sprint_id: int) -> list[int]:
    """Remove a sprint and every feature scheduled in it. Returns the removed feature ids."""
    known = any(sprint.id == sprint_id for sprint in board.sprints)
    if not known and not any(feature.sprintId == sprint_id for feature in board.features):
        raise NotFoundError(f"Sprint {sprint_id} not found", sprintId=sprint_id)
    board.sprints = [sprint for sprint in board.sprints if sprint.id != sprint_id]
    return _drop_features(board, lambda feature: feature.sprintId == sprint_id)


# ── Dependencies ────────────────────────────────────────────────────

def add_dependency(board: BoardState, dependency: Dependency) -> Dependency:
    if dependency.fromFeatureId == dependency.toFeatureId:
        raise ValidationError("A feature cannot depend on itself", featureId=dependency.fromFeatureId)
    find_feature(board, dependency.fromFeatureId)
    find_feature(board, dependency.toFeatureId)
    pair = dependency.pair()
    if any(existing.pair() == pair for existing in board.dependencies):
        raise ValidationError(
            f"Features {dependency.fromFeatureId} and {dependency.toFeatureId} are already linked",
            field="dependencies",
        )
    board.dependencies.append(dependency)
    return dependency


def replace_dependencies(board: BoardState, dependencies: Iterable[Dependency]) -> list[Dependency]:
    """Swap in a client-computed dependency list.

    Links to features that no longer exist, self-links and repeated unordered
    pairs are dropped (first occurrence wins).
    """
    live = {feature.id for feature in board.features}
    seen: set[frozenset[int]] = set()
    accepted: list[Dependency] = []
    for dep in dependencies:
        pair = dep.pair()
        if len(pair) != 2 or pair in seen or not pair <= live:
            continue
        seen.add(pair)
        accepted.append(dep)
    board.dependencies = accepted
    return accepted
