from app.platform.security.context import AuthContext
from app.platform.security.errors import AuthorizationError, MissingRoleError, TenantAccessError
from app.platform.security.policies import (
    InMemoryPolicyBackend,
    PolicyBackend,
    StepDecision,
    StepDecisionReason,
    get_policy_backend,
    set_policy_backend,
)
from app.platform.security.repository import BaseRepository
from app.platform.security.rls import apply_tenant_filter, can_access_organization, validate_tenant_write
from app.platform.security.roles import Role, parse_role, parse_roles

__all__ = [
    "AuthContext",
    "AuthorizationError",
    "MissingRoleError",
    "TenantAccessError",
    "BaseRepository",
    "apply_tenant_filter",
    "can_access_organization",
    "validate_tenant_write",
    "InMemoryPolicyBackend",
    "PolicyBackend",
    "StepDecision",
    "StepDecisionReason",
    "get_policy_backend",
    "set_policy_backend",
    "Role",
    "parse_role",
    "parse_roles",
]
