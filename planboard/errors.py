"""Error taxonomy shared by the board, the session store and the realtime channel."""
from __future__ import annotations

from typing import Any


class PlanboardError(Exception):
    """Base exception for all planboard errors."""

    error_code: str = "PLANBOARD_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.error_code,
            "message": self.message,
            **self.details,
        }


class ValidationError(PlanboardError):
    """A mutation carried an empty required field or a structurally invalid value."""

    error_code = "VALIDATION_ERROR"


class NotFoundError(PlanboardError):
    """Unknown session, access code, feature or dependency target."""

    error_code = "NOT_FOUND"


class PersistenceError(PlanboardError):
    """Writing or reading the snapshot store failed."""

    error_code = "PERSISTENCE_ERROR"
