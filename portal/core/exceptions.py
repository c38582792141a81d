"""
Portal-wide exception hierarchy.

Services raise these types and nothing else for caller-visible failures.
All three are terminal: the session has already been rolled back when they
leave a service function, and nothing retries them.

Usage:
    from portal.core.exceptions import ConflictError, NotFoundError, ValidationError

    raise NotFoundError(resource="Role", resource_id="someRoleName")
    raise ConflictError(resource="Role", field="role_name", value="someRoleName")
    raise ValidationError("role_name is required", details={"role_name": "missing"})
"""


class NotFoundError(Exception):
    """Raised when an operation references a role or permission that is not live.

    Args:
        resource: Human-readable entity name (e.g. "Role", "Permission").
        resource_id: The key that was looked up (id or unique name).
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" {resource_id!r}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a required field is missing or empty.

    Raised before any store access, so there is nothing to roll back.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when a write would violate a live unique key.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
