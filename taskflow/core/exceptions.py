"""
Platform-wide exception hierarchy.

Services raise these; the app-level handlers registered in
``taskflow.create_app`` turn them into the standard error body
``{"success": false, "message": ..., "code": ..., "errors": [...]}``.

Usage:
    from taskflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("Validation failed", errors=[
        {"field": "title", "message": "Task title is required", "value": ""},
    ])
"""


class TaskFlowError(Exception):
    """Base class. ``status_code`` and ``code`` drive the HTTP mapping."""

    status_code = 500
    code = "ERR_INTERNAL"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(TaskFlowError):
    """Malformed or missing input, rejected before any persistence call.

    Args:
        message: Human-readable summary.
        errors: Field-level list of ``{"field", "message", "value"}`` dicts.
    """

    status_code = 400
    code = "ERR_VALIDATION_INVALID"

    def __init__(self, message: str = "Validation failed", errors: list[dict] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class AuthenticationError(TaskFlowError):
    """Missing, invalid or expired credential, or a deactivated account."""

    status_code = 401
    code = "ERR_UNAUTHENTICATED"


class AuthorizationError(TaskFlowError):
    """Authenticated, but the caller may not perform this operation."""

    status_code = 403
    code = "ERR_FORBIDDEN"


class NotFoundError(TaskFlowError):
    """Raised when an entity id does not resolve.

    Existence is checked before authorization, so a missing entity yields
    404 even to a caller who could not have seen it.

    Args:
        resource: Entity name (e.g. "Project", "Subtask").
        resource_id: The id that was looked up. Logged, not echoed to clients.
    """

    status_code = 404
    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ConflictError(TaskFlowError):
    """Duplicate of something that must be unique (email, project member).

    Reported as 400, matching the existing API clients.
    """

    status_code = 400
    code = "ERR_CONFLICT_DUPLICATE"

    def __init__(self, message: str, resource: str | None = None, field: str | None = None,
                 value: str | int | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message)


class InvalidOperationError(TaskFlowError):
    """Well-formed request that breaks a domain rule (e.g. removing the owner)."""

    status_code = 400
    code = "ERR_INVALID_OPERATION"
