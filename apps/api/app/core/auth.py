from dataclasses import dataclass, field

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    roles: list[str]
    organization_id: str | None = None
    claims: dict = field(default_factory=dict, repr=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        raise _unauthorized("Missing bearer token")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _unauthorized("Invalid bearer token")

    subject = payload.get("sub")
    if not subject:
        raise _unauthorized("Token has no subject")

    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    organization_id = payload.get("organizationId") or payload.get("organization_id")

    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = str(subject)
        context.organization_id = str(organization_id) if organization_id else None

    return AuthUser(
        sub=str(subject),
        roles=[str(role) for role in roles],
        organization_id=str(organization_id) if organization_id else None,
        claims=payload,
    )
