from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import false
from sqlalchemy.sql import Select

from app.metrics import observe_tenant_denied
from app.platform.security.context import AuthContext
from app.platform.security.errors import TenantAccessError


logger = logging.getLogger("app.security.rls")


def apply_tenant_filter(query: Select[Any], resource: str, ctx: AuthContext) -> Select[Any]:
    """Restrict a query to the caller's organization for every entity exposing ``organization_id``.

    Global-override callers are not filtered. A caller without an organization
    matches nothing.
    """

    if ctx.is_global_override:
        return query

    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None or not hasattr(model, "organization_id"):
            continue
        if ctx.organization_id is None:
            query = query.where(false())
        else:
            query = query.where(getattr(model, "organization_id") == ctx.organization_id)

    return query


def can_access_organization(ctx: AuthContext, organization_id: str | None) -> bool:
    if ctx.is_global_override:
        return True
    return ctx.organization_id is not None and ctx.organization_id == organization_id


def validate_tenant_write(
    resource: str,
    organization_id: str | None,
    ctx: AuthContext,
    *,
    action: str = "write",
) -> None:
    """Raise ``TenantAccessError`` when the caller may not write into ``organization_id``."""

    if can_access_organization(ctx, organization_id):
        return

    record_tenant_denied(resource, action, ctx, organization_id)
    raise TenantAccessError(resource, organization_id)


def record_tenant_denied(resource: str, action: str, ctx: AuthContext, organization_id: str | None) -> None:
    observe_tenant_denied(resource=resource, operation=action)
    logger.warning(
        "security.tenant_denied",
        extra={
            "user_id": ctx.user_id,
            "organization_id": ctx.organization_id,
            "reason": f"{resource}.{action} targets organization {organization_id}",
        },
    )
