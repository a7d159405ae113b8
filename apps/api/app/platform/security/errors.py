from __future__ import annotations


class AuthorizationError(Exception):
    """Base authorization error for tenant and role enforcement failures."""


class TenantAccessError(AuthorizationError):
    """Raised when a caller acts on a record owned by another organization."""

    def __init__(self, resource: str, organization_id: str | None) -> None:
        self.resource = resource
        self.organization_id = organization_id
        super().__init__(f"You do not have access to this organization for resource '{resource}'")


class MissingRoleError(AuthorizationError):
    """Raised when a caller lacks the role a workflow step requires."""

    def __init__(self, step_name: str, required_role: str) -> None:
        self.step_name = step_name
        self.required_role = required_role
        super().__init__(
            f"You do not have permission to edit {step_name} step. Required Role: {required_role}"
        )
