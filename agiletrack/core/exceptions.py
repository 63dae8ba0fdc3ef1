"""
Platform-wide exception hierarchy.

Services raise these types; ``agiletrack.utils.errors.register_error_handlers``
maps each one to its HTTP status once for the whole application, so no
blueprint builds error responses by hand.

Usage:
    from agiletrack.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("Invalid input", details={"title": "Title is required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Security note: Used for BOTH genuinely missing records AND cross-tenant
    access attempts, including callers who are not members of the
    organization at all. A 403 would confirm the resource exists; a 404
    does not.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Budget").
        resource_id: The key that was looked up.
        organization_id: Optional scope that was enforced. Debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        organization_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.organization_id = organization_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when request input is malformed or fails field validation.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class BusinessRuleError(Exception):
    """Raised when well-formed input would break a domain invariant.

    Examples: allocating less than already spent, deleting a budget with
    recorded expenses, removing the last administrator.

    Maps to HTTP 400.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a state transition has already happened.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The field whose current value blocks the operation.
        value: The current value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} {field} is already {value!r}"
        super().__init__(msg)


class AccessDeniedError(Exception):
    """Raised when a member's role is not allowed to perform an operation.

    Maps to HTTP 403.
    """

    def __init__(self, operation: str, role: str | None = None) -> None:
        self.operation = operation
        self.role = role
        super().__init__(f"Role {role!r} is not allowed to perform '{operation}'")


class AuthenticationError(Exception):
    """Raised when a request carries no valid access token. Maps to HTTP 401."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)
