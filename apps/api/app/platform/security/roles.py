from __future__ import annotations

import re
from collections.abc import Iterable
from enum import StrEnum


class Role(StrEnum):
    SUPER_ADMIN = "Super Admin"
    ORG_ADMIN = "Org Admin"
    SALES = "Sales"
    SCM = "SCM"
    FIELD_ENGINEER = "Field Engineer"
    DEPLOYMENT = "Deployment"
    FINANCE = "Finance"


# Role names issued by the identity provider, keyed by their normalized form.
ROLE_ALIASES: dict[str, Role] = {
    "super admin": Role.SUPER_ADMIN,
    "superadmin": Role.SUPER_ADMIN,
    "org admin": Role.ORG_ADMIN,
    "organization admin": Role.ORG_ADMIN,
    "sales": Role.SALES,
    "scm": Role.SCM,
    "field engineer": Role.FIELD_ENGINEER,
    "deployment": Role.DEPLOYMENT,
    "finance": Role.FINANCE,
}

GLOBAL_OVERRIDE_ROLES = frozenset({Role.SUPER_ADMIN})
TENANT_ADMIN_ROLES = frozenset({Role.ORG_ADMIN})

_SEPARATOR_RE = re.compile(r"[\s_\-]+")


def normalize_role_name(raw: str) -> str:
    return _SEPARATOR_RE.sub(" ", raw.strip()).lower()


def parse_role(raw: str) -> Role | None:
    """Resolve an identity-provider role string to a ``Role``.

    Matching is exact after normalization; unknown names resolve to ``None``.
    """

    return ROLE_ALIASES.get(normalize_role_name(raw))


def parse_roles(raw_roles: Iterable[str]) -> set[Role]:
    resolved: set[Role] = set()
    for raw in raw_roles:
        role = parse_role(str(raw))
        if role is not None:
            resolved.add(role)
    return resolved
