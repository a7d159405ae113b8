from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


@dataclass
class RequestContext:
    """Per-request identity, filled in by the auth dependency and read by request logging."""

    request_id: str
    correlation_id: str
    user_id: str | None = None
    organization_id: str | None = None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None) or ""
        request.state.context = RequestContext(request_id=correlation_id, correlation_id=correlation_id)
        response = await call_next(request)
        if request.state.context.organization_id:
            response.headers["x-organization-id"] = request.state.context.organization_id
        response.headers["x-request-id"] = request.state.context.request_id
        return response
