"""Standardised API error responses.

Every error body has the shape ``{"error": message, "code": E.*, "details"?: {...}}``.

Usage
-----
    from pireport.utils.errors import api_error, exception_error, E

    return api_error(E.VALIDATION_REQUIRED, "name is required")
    return exception_error(exc)        # any pireport.core.exceptions type
"""

from __future__ import annotations

from flask import jsonify

from pireport.core.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error codes, all ``ERR_`` prefixed."""

    # Request shape – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Tracker rows / layout payload failed validation – HTTP 422
    VALIDATION_RECORDS = "ERR_VALIDATION_RECORDS"

    NOT_FOUND = "ERR_NOT_FOUND"

    # Duplicate layout name, closed iteration – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_CLOSED = "ERR_CONFLICT_CLOSED"

    # Missing snapshot / classification cache – HTTP 412
    PRECONDITION_FAILED = "ERR_PRECONDITION_FAILED"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RECORDS: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_CLOSED: 409,
    E.PRECONDITION_FAILED: 412,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(jsonify(body), http_status)`` for a Flask view.

    ``status`` overrides the code's default HTTP status (400 when unknown).
    Empty ``details`` are left out of the body.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def exception_error(exc: Exception):
    """Map a canonical service exception to its error response.

    Raises TypeError for anything else so unexpected errors reach the 500
    handler instead of being reported as client errors.
    """
    if isinstance(exc, NotFoundError):
        return api_error(E.NOT_FOUND, str(exc))
    if isinstance(exc, ValidationError):
        return api_error(E.VALIDATION_RECORDS, str(exc), details=exc.details)
    if isinstance(exc, ConflictError):
        return api_error(E.CONFLICT_CLOSED, str(exc), details={"field": exc.field, "value": exc.value})
    if isinstance(exc, PreconditionError):
        return api_error(
            E.PRECONDITION_FAILED, str(exc),
            details={"resource": exc.resource, "remediation": exc.remediation},
        )
    raise TypeError(f"no error mapping for {type(exc).__name__}")
