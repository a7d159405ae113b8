from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

order_pipelines_created_total = Counter(
    "order_pipelines_created_total",
    "Total order pipelines created",
)

order_pipeline_step_transitions_total = Counter(
    "order_pipeline_step_transitions_total",
    "Total pipeline step transitions by step and resulting status",
    ["step_name", "status"],
)

order_pipeline_transition_denied_total = Counter(
    "order_pipeline_transition_denied_total",
    "Total rejected pipeline step transitions by reason",
    ["reason"],
)

order_pipelines_completed_total = Counter(
    "order_pipelines_completed_total",
    "Total order pipelines that reached their final step",
)

customer_po_sync_total = Counter(
    "customer_po_sync_total",
    "Total Customer PO records synchronized from the pipeline by action",
    ["action"],
)

tenant_isolation_denied_total = Counter(
    "tenant_isolation_denied_total",
    "Total cross-organization accesses denied",
    ["resource", "operation"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    return _UUID_RE.sub("{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_pipeline_created() -> None:
    order_pipelines_created_total.inc()


def observe_step_transition(step_name: str, status: str) -> None:
    order_pipeline_step_transitions_total.labels(step_name=step_name, status=status).inc()


def observe_transition_denied(reason: str) -> None:
    order_pipeline_transition_denied_total.labels(reason=reason).inc()


def observe_pipeline_completed() -> None:
    order_pipelines_completed_total.inc()


def observe_customer_po_sync(action: str) -> None:
    customer_po_sync_total.labels(action=action).inc()


def observe_tenant_denied(resource: str, operation: str) -> None:
    tenant_isolation_denied_total.labels(resource=resource, operation=operation).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
