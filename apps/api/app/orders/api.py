from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.context import request_correlation_id
from app.core.auth import AuthUser, get_current_user as get_auth_user
from app.core.database import get_db
from app.orders.customer_po import customer_po_service
from app.orders.errors import OrderPipelineError
from app.orders.schemas import (
    CustomerPoRead,
    PipelineCreate,
    PipelineDetailRead,
    PipelineStepRead,
    PipelineSummaryRead,
    StepTransition,
)
from app.orders.service import pipeline_service
from app.platform.security.context import AuthContext
from app.platform.security.roles import parse_roles


router = APIRouter(prefix="/api/pipeline", tags=["orders.pipeline"])
customer_pos_router = APIRouter(prefix="/api/customer-pos", tags=["orders.customer_pos"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = request_correlation_id(request)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def _pipeline_error_response(request: Request, exc: OrderPipelineError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


def get_pipeline_auth_context(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> AuthContext:
    correlation_id = request_correlation_id(request)
    return AuthContext(
        user_id=auth_user.sub,
        organization_id=auth_user.organization_id,
        correlation_id=correlation_id,
        roles=parse_roles(auth_user.roles),
        raw_roles=list(auth_user.roles),
    )


@router.post("", response_model=PipelineDetailRead, status_code=status.HTTP_201_CREATED)
def create_pipeline(
    request: Request,
    payload: PipelineCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_pipeline_auth_context),
) -> PipelineDetailRead | JSONResponse:
    try:
        return pipeline_service.create_pipeline(db, ctx, payload)
    except OrderPipelineError as exc:
        return _pipeline_error_response(request, exc)


@router.get("", response_model=list[PipelineSummaryRead])
def list_pipelines(
    request: Request,
    organization_id: str | None = Query(default=None, alias="organizationId"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_pipeline_auth_context),
) -> list[PipelineSummaryRead] | JSONResponse:
    try:
        return pipeline_service.list_pipelines(db, ctx, organization_id=organization_id)
    except OrderPipelineError as exc:
        return _pipeline_error_response(request, exc)


@router.get("/{pipeline_id}", response_model=PipelineDetailRead)
def get_pipeline(
    request: Request,
    pipeline_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_pipeline_auth_context),
) -> PipelineDetailRead | JSONResponse:
    try:
        return pipeline_service.get_pipeline(db, ctx, pipeline_id)
    except OrderPipelineError as exc:
        return _pipeline_error_response(request, exc)


# step names such as "Deal / Opportunity" contain a slash
@router.patch("/{pipeline_id}/step/{step_name:path}", response_model=PipelineStepRead)
def transition_step(
    request: Request,
    pipeline_id: uuid.UUID,
    step_name: str,
    payload: StepTransition,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_pipeline_auth_context),
) -> PipelineStepRead | JSONResponse:
    try:
        return pipeline_service.transition_step(db, ctx, pipeline_id, step_name, payload)
    except OrderPipelineError as exc:
        return _pipeline_error_response(request, exc)


@customer_pos_router.get("", response_model=list[CustomerPoRead])
def list_customer_pos(
    request: Request,
    deal_id: uuid.UUID | None = Query(default=None, alias="dealId"),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_pipeline_auth_context),
) -> list[CustomerPoRead] | JSONResponse:
    try:
        return customer_po_service.list_customer_pos(db, ctx, deal_id=deal_id)
    except OrderPipelineError as exc:
        return _pipeline_error_response(request, exc)


@customer_pos_router.get("/{customer_po_id}", response_model=CustomerPoRead)
def get_customer_po(
    request: Request,
    customer_po_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_pipeline_auth_context),
) -> CustomerPoRead | JSONResponse:
    try:
        return customer_po_service.get_customer_po(db, ctx, customer_po_id)
    except OrderPipelineError as exc:
        return _pipeline_error_response(request, exc)
