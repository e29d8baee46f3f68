"""
Engine-wide exception hierarchy.

Every service raises these types; blueprints register one handler per type
and map them to HTTP status codes, so callers always get a structured
failure result instead of a crash.

Usage:
    from app.core.exceptions import NotFoundError, InvalidStateError

    raise NotFoundError(resource="Journey", resource_id=42)
    raise InvalidStateError("Journey is not paused", current_state="IN_PROGRESS")
"""


class JourneyEngineError(Exception):
    """Base class for all recoverable engine errors."""


class NotFoundError(JourneyEngineError):
    """Raised when a journey, phase or user does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Journey", "Phase").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(JourneyEngineError):
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(JourneyEngineError):
    """Raised when an operation would create a duplicate (e.g. a second active journey).

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | int | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class ForbiddenError(JourneyEngineError):
    """Raised when an operation is not permitted for this employee type or role."""


class InvalidStateError(JourneyEngineError):
    """Raised for an illegal transition (completing a completed phase,
    resuming a journey that is not paused, deleting a started phase).

    Args:
        message: Human-readable explanation.
        current_state: The state that made the transition illegal.
    """

    def __init__(self, message: str, current_state: str | None = None) -> None:
        self.current_state = current_state
        super().__init__(message)


class ConcurrencyError(JourneyEngineError):
    """Raised when a unit of work keeps losing to concurrent writers.

    The caller may retry the whole operation later.
    """
