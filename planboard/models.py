"""Pydantic models matching the board UI's wire and persisted shapes."""
from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

CURRENT_SCHEMA_VERSION = 2
DEFAULT_ASSIGNEE = "Unassigned"
DEFAULT_RELATIONSHIP = "depends on"


# ── Board entities ──────────────────────────────────────────────────

class Team(BaseModel):
    id: str
    name: str
    colorClass: str = Field(default="", validation_alias=AliasChoices("colorClass", "color"))


class Sprint(BaseModel):
    id: int
    name: str


class Feature(BaseModel):
    id: int
    title: str
    teamId: str = Field(validation_alias=AliasChoices("teamId", "team"))
    sprintId: int = Field(validation_alias=AliasChoices("sprintId", "sprint"))
    assignee: str = DEFAULT_ASSIGNEE
    description: str = ""

    @field_validator("assignee", mode="before")
    @classmethod
    def _blank_assignee(cls, value):
        if value is None or not str(value).strip():
            return DEFAULT_ASSIGNEE
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value):
        return "" if value is None else value


class Dependency(BaseModel):
    fromFeatureId: int = Field(validation_alias=AliasChoices("fromFeatureId", "from"))
    toFeatureId: int = Field(validation_alias=AliasChoices("toFeatureId", "to"))
    relationship: str = DEFAULT_RELATIONSHIP
    note: str = Field(default="", validation_alias=AliasChoices("note", "additionalInfo"))

    @field_validator("relationship", mode="before")
    @classmethod
    def _blank_relationship(cls, value):
        if value is None or not str(value).strip():
            return DEFAULT_RELATIONSHIP
        return value

    @field_validator("note", mode="before")
    @classmethod
    def _none_note(cls, value):
        return "" if value is None else value

    def pair(self) -> frozenset[int]:
        """Unordered endpoint pair; a board holds at most one dependency per pair."""
        return frozenset((self.fromFeatureId, self.toFeatureId))


class BoardState(BaseModel):
    schemaVersion: int = CURRENT_SCHEMA_VERSION
    teams: list[Team] = Field(default_factory=list)
    sprints: list[Sprint] = Field(default_factory=list)
    features: list[Feature] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)
    nextFeatureId: int = 1


# ── Sessions ────────────────────────────────────────────────────────

class Session(BaseModel):
    id: str
    accessCode: str
    createdAt: str
    boardState: BoardState = Field(default_factory=BoardState)
    participants: set[str] = Field(default_factory=set)


class SessionHandle(BaseModel):
    sessionId: str
    accessCode: str


class JoinSessionRequest(BaseModel):
    code: Optional[str] = None


class JoinSessionResponse(BaseModel):
    sessionId: str
    boardState: BoardState
