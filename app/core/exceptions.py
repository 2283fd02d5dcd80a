"""
Service-layer exception hierarchy.

Every service raises one of these types instead of returning error tuples.
The application registers one handler per type (see app/__init__.py) and
maps each to a consistent HTTP status and JSON error body. A raised error
means the operation performed no mutation.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Order", resource_id=order_id)
    raise ValidationError("client_id is required", details={"client_id": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant lookups, so a
    caller cannot learn that another tenant's record exists.

    Args:
        resource: Human-readable entity name (e.g. "Order", "Stage").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised on a duplicate unique value or a delete blocked by references.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated (or the blocking relation).
        value: The conflicting value.
        message: Optional full message overriding the duplicate wording.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when the acting user's role lacks every required codename.

    Maps to HTTP 403.

    Args:
        codenames: The codenames of which at least one was required.
        role: The actor's role.
    """

    def __init__(self, codenames: tuple[str, ...] | list[str], role: str | None = None) -> None:
        self.codenames = tuple(codenames)
        self.role = role
        super().__init__(f"Permission denied: requires {' or '.join(self.codenames)}")


class TransitionError(Exception):
    """Raised when an order move is not allowed by the stage transition table.

    Maps to HTTP 409.
    """

    def __init__(self, from_stage: str | None, to_stage: str, allowed: list[str] | None = None) -> None:
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.allowed = allowed or []
        super().__init__(f"Transition {from_stage} -> {to_stage} is not allowed")


class AuthenticationError(Exception):
    """Raised when credentials or tokens are invalid. Maps to HTTP 401."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)
