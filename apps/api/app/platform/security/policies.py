from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from threading import Lock
from typing import Protocol

from app.platform.security.context import AuthContext
from app.platform.security.roles import Role, parse_role


class StepDecisionReason(StrEnum):
    GLOBAL_OVERRIDE = "global_override"
    TENANT_ADMIN = "tenant_admin"
    ASSIGNED_ROLE = "assigned_role"
    ROLE_GRANT = "role_grant"
    DENIED = "denied"


@dataclass(slots=True, frozen=True)
class StepDecision:
    allowed: bool
    reason: StepDecisionReason


class PolicyBackend(Protocol):
    """Pluggable policy backend deciding who may act on a workflow step."""

    def evaluate_step(self, step_name: str, assigned_role: str, ctx: AuthContext) -> StepDecision:
        ...


class InMemoryPolicyBackend:
    """Declared Role -> step-name grants with optional tenant-admin override."""

    def __init__(
        self,
        role_grants: Mapping[Role, frozenset[str]] | None = None,
        *,
        tenant_admin_override: bool = True,
    ) -> None:
        self._role_grants = dict(role_grants or {})
        self._tenant_admin_override = tenant_admin_override

    def evaluate_step(self, step_name: str, assigned_role: str, ctx: AuthContext) -> StepDecision:
        if ctx.is_global_override:
            return StepDecision(True, StepDecisionReason.GLOBAL_OVERRIDE)
        if self._tenant_admin_override and ctx.is_tenant_admin:
            return StepDecision(True, StepDecisionReason.TENANT_ADMIN)

        required = parse_role(assigned_role)
        if required is not None and required in ctx.roles:
            return StepDecision(True, StepDecisionReason.ASSIGNED_ROLE)

        if any(step_name in self._role_grants.get(role, frozenset()) for role in ctx.roles):
            return StepDecision(True, StepDecisionReason.ROLE_GRANT)

        return StepDecision(False, StepDecisionReason.DENIED)


_POLICY_BACKEND: PolicyBackend = InMemoryPolicyBackend()
_POLICY_LOCK = Lock()


def get_policy_backend() -> PolicyBackend:
    """Get the active policy backend instance."""

    return _POLICY_BACKEND


def set_policy_backend(backend: PolicyBackend) -> None:
    """Set the active policy backend instance."""

    global _POLICY_BACKEND
    with _POLICY_LOCK:
        _POLICY_BACKEND = backend
