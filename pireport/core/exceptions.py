"""
Report-wide exception hierarchy.

Services raise these canonical types; blueprints and CLI commands map them
once to HTTP status codes / exit messages.

Usage:
    from pireport.core.exceptions import NotFoundError, PreconditionError

    raise NotFoundError(resource="ReportLayout", resource_id="exec-summary")
    raise PreconditionError(
        resource="Classification PI 15 / Iteration 3",
        remediation="Run classify for iteration 3 first.",
    )
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Snapshot", "ReportLayout").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates an ingestion rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional per-record breakdown. Keys are item keys or field
                 names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would overwrite data that must stay immutable.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The identifying field.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} is closed and cannot be replaced"
        super().__init__(msg)


class PreconditionError(Exception):
    """Raised when a pipeline run is missing a required input.

    Covers a missing snapshot and a missing classification cache for a
    non-baseline iteration. Never retried automatically; the caller fixes the
    precondition and re-invokes the whole run.

    Maps to HTTP 412.

    Args:
        resource: The missing resource, e.g. "Snapshot PI 15 / Iteration 2".
        remediation: The step that creates the resource.
    """

    def __init__(self, resource: str, remediation: str) -> None:
        self.resource = resource
        self.remediation = remediation
        super().__init__(f"{resource} not found. {remediation}")
