"""
Scheduling Errors

Exception taxonomy shared by the scheduling core, repositories and HTTP layer.
Every error carries a stable code and the HTTP status it maps to.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional


def format_validation_errors(errors: Iterable[Mapping[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into JSON-safe ``{field, message}`` pairs."""
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": str(error.get("msg", "")),
        }
        for error in errors
    ]


class SchedulingError(Exception):
    """Base exception for booking engine errors."""

    code = "SCHEDULING_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SchedulingError):
    """Missing or malformed input."""

    code = "VALIDATION_ERROR"


class InvalidFormat(ValidationError):
    """Clock time that is not "HH:MM"."""


class InvalidTimestamp(ValidationError):
    """Unparseable or ambiguous timestamp."""

    code = "INVALID_TIMESTAMP"


class NotFound(SchedulingError):
    code = "NOT_FOUND"
    status_code = 404


class ProfessionalNotFound(NotFound):
    code = "PROFESSIONAL_NOT_FOUND"


class SlotUnavailable(SchedulingError):
    """Requested interval overlaps an active booking of the professional."""

    code = "SLOT_UNAVAILABLE"
    status_code = 409

    def __init__(
        self,
        message: str = "The requested time is not available.",
        conflicts: Optional[List[Dict[str, Any]]] = None,
    ):
        details = {"conflicts": conflicts} if conflicts else None
        super().__init__(message, details)
        self.conflicts = conflicts or []


class InvalidStatusTransition(SchedulingError):
    code = "INVALID_STATUS_TRANSITION"
    status_code = 409


class TenantRequired(SchedulingError):
    code = "TENANT_REQUIRED"
    status_code = 401


class PersistenceError(SchedulingError):
    """Storage collaborator failure."""

    code = "PERSISTENCE_ERROR"
    status_code = 500


class OverlapConstraintError(PersistenceError):
    """The store rejected a write through its booking exclusion constraint."""
