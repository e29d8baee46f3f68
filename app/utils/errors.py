"""Standardised API error responses.

Usage
-----
    from app.utils.errors import api_error, error_from_exception, E

    return api_error(E.VALIDATION_REQUIRED, "employee_id is required")
    return error_from_exception(exc)   # for app.core.exceptions types
"""

from __future__ import annotations

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import (
    ConcurrencyError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    JourneyEngineError,
    NotFoundError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"

    # Permissions – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"

    # Protocol-level – raised by Flask/werkzeug
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "ERR_RATE_LIMITED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.CONFLICT_CONCURRENT: 409,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
    E.METHOD_NOT_ALLOWED: 405,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
}

# werkzeug HTTP status -> error code, for aborts raised outside the services.
_HTTP_CODES: dict[int, str] = {
    401: E.UNAUTHORIZED,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    413: E.PAYLOAD_TOO_LARGE,
    415: E.UNSUPPORTED_MEDIA_TYPE,
    429: E.RATE_LIMITED,
}

# Most specific first: isinstance() is checked in order.
_EXCEPTION_CODES: tuple[tuple[type[JourneyEngineError], str], ...] = (
    (NotFoundError, E.NOT_FOUND),
    (ValidationError, E.VALIDATION_RULE),
    (ConflictError, E.CONFLICT_DUPLICATE),
    (ForbiddenError, E.FORBIDDEN),
    (InvalidStateError, E.CONFLICT_STATE),
    (ConcurrencyError, E.CONFLICT_CONCURRENT),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, current state, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_code_for(exc: JourneyEngineError) -> str:
    """Return the ``E.*`` code for an engine exception."""
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code
    return E.INTERNAL


def error_from_exception(exc: JourneyEngineError):
    """Translate an engine exception into a structured error response."""
    details = None
    if isinstance(exc, ValidationError) and exc.details:
        details = exc.details
    elif isinstance(exc, InvalidStateError) and exc.current_state:
        details = {"current_state": exc.current_state}
    return api_error(error_code_for(exc), str(exc), details=details)


def http_error(exc: HTTPException):
    """Structured response for a werkzeug HTTPException (abort(), routing)."""
    code = _HTTP_CODES.get(exc.code, E.INTERNAL if (exc.code or 500) >= 500 else E.VALIDATION_INVALID)
    return api_error(code, exc.description or exc.name, status=exc.code)


def register_error_handlers(bp, logger) -> None:
    """Attach the engine exception handlers to a blueprint."""

    @bp.errorhandler(JourneyEngineError)
    def _handle_engine_error(error: JourneyEngineError):
        return error_from_exception(error)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return http_error(error)
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
