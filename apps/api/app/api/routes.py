import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth import AuthUser, get_current_user
from app.core.config import get_settings
from app.core.database import get_db
from app.metrics import generate_metrics_payload, metrics_content_type
from app.orders.api import customer_pos_router, router as pipeline_router

logger = logging.getLogger("app.api")

METRICS_PERMISSION = "system.metrics.read"

router = APIRouter()
for domain_router in (pipeline_router, customer_pos_router):
    router.include_router(domain_router)


def require_metrics_reader(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not get_settings().metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if METRICS_PERMISSION not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {METRICS_PERMISSION}")
    return user


@router.get("/health", tags=["system"])
def health(db: Session = Depends(get_db)) -> JSONResponse:
    settings = get_settings()
    payload = {"status": "ok", "service": settings.app_name, "environment": settings.app_env, "database": "ok"}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health.database_unreachable")
        payload.update(status="degraded", database="unreachable")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload)
    return JSONResponse(content=payload)


@router.get("/me", tags=["auth"])
def me(user: AuthUser = Depends(get_current_user)) -> dict[str, str | list[str] | None]:
    return {"sub": user.sub, "roles": user.roles, "organization_id": user.organization_id}


@router.get("/metrics", tags=["system"])
def metrics(_: AuthUser = Depends(require_metrics_reader)) -> Response:
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
