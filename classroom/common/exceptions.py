"""Error taxonomy shared by the assessment features.

Expected outcomes (policy denial, unscorable types) are returned as values by
the pure scoring/policy helpers; these exceptions are raised by the services
that must reject a request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from classroom.features.assessments.policy import AttemptStatus


class AssessmentError(Exception):
    """Base class for assessment errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PayloadValidationError(AssessmentError, ValueError):
    """Payload or answers do not match the declared assessment type."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class UnknownAssessmentType(AssessmentError, ValueError):
    """The `type` tag is not registered."""

    def __init__(self, kind: str, type_: Any) -> None:
        super().__init__(f"unknown_{kind}_type:{type_}")
        self.kind = kind
        self.type = type_


class PolicyViolation(AssessmentError):
    """An attempt was submitted while the attempt policy was not OPEN."""

    def __init__(self, status: "AttemptStatus", message: Optional[str] = None) -> None:
        super().__init__(message or f"attempt_rejected:{status.value}")
        self.status = status


class ReviewConflict(AssessmentError):
    """Another review landed since the reviewer loaded the response."""


class ResponseLocked(AssessmentError):
    """The response has been approved by a teacher and can no longer be replaced."""


class NotFoundError(AssessmentError, LookupError):
    """A referenced row (evaluation, challenge, response, class) does not exist."""


class AccessDenied(AssessmentError, PermissionError):
    """The caller does not own the resource it tries to read or review."""


__all__ = [
    "AssessmentError",
    "PayloadValidationError",
    "UnknownAssessmentType",
    "PolicyViolation",
    "ReviewConflict",
    "ResponseLocked",
    "NotFoundError",
    "AccessDenied",
]
