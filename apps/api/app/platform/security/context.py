from __future__ import annotations

from dataclasses import dataclass, field

from app.platform.security.roles import GLOBAL_OVERRIDE_ROLES, TENANT_ADMIN_ROLES, Role


@dataclass(slots=True)
class AuthContext:
    """Caller identity as resolved by the authorization adapter."""

    user_id: str
    organization_id: str | None = None
    correlation_id: str | None = None
    roles: set[Role] = field(default_factory=set)
    raw_roles: list[str] = field(default_factory=list)

    @property
    def is_global_override(self) -> bool:
        return bool(self.roles & GLOBAL_OVERRIDE_ROLES)

    @property
    def is_tenant_admin(self) -> bool:
        return bool(self.roles & TENANT_ADMIN_ROLES)
