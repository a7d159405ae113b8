from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from app.platform.security.context import AuthContext
from app.platform.security.policies import StepDecision, get_policy_backend
from app.platform.security.rls import apply_tenant_filter, validate_tenant_write


class BaseRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], ctx: AuthContext) -> Select[Any]:
        return apply_tenant_filter(query, self.resource, ctx)

    def validate_write_security(
        self,
        ctx: AuthContext,
        *,
        organization_id: str | None,
        action: str = "write",
    ) -> None:
        validate_tenant_write(self.resource, organization_id, ctx, action=action)

    def evaluate_step_access(self, step_name: str, assigned_role: str, ctx: AuthContext) -> StepDecision:
        return get_policy_backend().evaluate_step(step_name, assigned_role, ctx)
