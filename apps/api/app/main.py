from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.context import RequestContextMiddleware
from app.core.database import dispose_engine, init_engine
from app.core.events import InternalEvent, event_bus
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.orders.steps import STEP_PERMISSIONS
from app.otel import get_fastapi_server_request_hook, setup_otel
from app.platform.security.policies import InMemoryPolicyBackend, set_policy_backend


configure_logging()
logger = logging.getLogger("app.lifecycle")
_subscriptions_registered = False

_pipeline_event_types = [
    "orders.pipeline.created",
    "orders.pipeline.step_updated",
    "orders.pipeline.completed",
    "orders.customer_po.synced",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_pipeline_event(event: InternalEvent) -> None:
    logger.info(
        "domain_event",
        extra={
            "event_name": event.name,
            "pipeline_id": event.payload.get("pipeline_id"),
            "step_name": event.payload.get("step_name"),
            "status": event.payload.get("status"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_engine()
    _register_event_logging()
    event_bus.publish("system.started", {"service": app.title})
    try:
        yield
    finally:
        dispose_engine()


def _register_event_logging() -> None:
    global _subscriptions_registered
    if _subscriptions_registered:
        return
    event_bus.subscribe("system.started", _on_system_started)
    for event_name in _pipeline_event_types:
        event_bus.subscribe(event_name, _on_pipeline_event)
    _subscriptions_registered = True


def create_app() -> FastAPI:
    settings = get_settings()
    set_policy_backend(
        InMemoryPolicyBackend(STEP_PERMISSIONS, tenant_admin_override=settings.pipeline_org_admin_override)
    )

    application = FastAPI(title=settings.app_name, version="0.1.0", debug=settings.app_debug, lifespan=lifespan)
    # last added runs first: the correlation id must be bound before logging and context
    application.add_middleware(RequestContextMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    setup_otel("api", settings.otel_enabled)
    FastAPIInstrumentor().instrument_app(application, server_request_hook=get_fastapi_server_request_hook())
    return application


app = create_app()
