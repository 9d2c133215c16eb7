"""Error taxonomy shared by the workflow services."""

from __future__ import annotations

# purpose: give services one family of exceptions the HTTP layer can translate
# status: active


class WorkflowError(RuntimeError):
    """Base error for content lifecycle workflows."""

    status_code = 400
    default_code = "workflow_error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class NotFound(WorkflowError):
    """Raised when an item, participant record or notification is absent."""

    status_code = 404
    default_code = "not_found"


class Forbidden(WorkflowError):
    """Raised when the acting principal's scope or ownership does not cover the item."""

    status_code = 403
    default_code = "forbidden"


class Conflict(WorkflowError):
    """Raised for invalid state transitions and participation conflicts."""

    status_code = 409
    default_code = "conflict"


class ValidationFailed(WorkflowError):
    """Raised when supplied fields are malformed."""

    status_code = 400
    default_code = "validation"


class Unavailable(WorkflowError):
    """Raised when the entity store or notification transport cannot be reached."""

    status_code = 503
    default_code = "unavailable"


NOT_PENDING = "not_pending"
ALREADY_JOINED = "already_joined"
EVENT_FULL = "full"
NOT_UPCOMING = "not_upcoming"
NOT_PARTICIPANT = "not_participant"
NOT_APPROVED = "not_approved"
