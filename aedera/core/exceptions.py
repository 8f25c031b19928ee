"""
Platform-wide exception hierarchy.

Services raise these types and nothing else for expected failures.
Blueprints register handlers against them once and get consistent HTTP
status codes everywhere:

    NotFoundError   → 404
    ValidationError → 400
    ForbiddenError  → 403
    ConflictError   → 409

Usage:
    from aedera.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ScenarioVersion", resource_id=version_id)
    raise ValidationError("missing required WBS level: LOTTO", details={"level": "LOTTO"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND records excluded by a scope
    filter (other project, archived when archived rows are excluded). The
    two cases are intentionally indistinguishable to the caller.

    Args:
        resource: Human-readable model/entity name (e.g. "ScenarioVersion", "BoqLine").
        resource_id: The PK that was looked up. Included in logs and message.
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
    """Raised when input fails business-rule validation in the service layer.

    Always raised before any write in the current transaction, so callers
    never observe partial state after a ValidationError.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown (e.g. {"index": 3, "level": "LOTTO"}).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the entity state forbids the operation (e.g. a locked version)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a unique constraint keeps colliding and the operation gives up.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
