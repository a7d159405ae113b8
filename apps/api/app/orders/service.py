from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import get_settings
from app.core.events import InProcessEventBus, event_bus
from app.crm.repositories import AccountRepository, DealRepository
from app.metrics import (
    observe_pipeline_completed,
    observe_pipeline_created,
    observe_step_transition,
    observe_transition_denied,
)
from app.orders.customer_po import CustomerPoSync, SyncResult
from app.orders.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OrderPipelineError,
    UnexpectedError,
    ValidationFailureError,
)
from app.orders.models import OrderPipeline, PipelineLog, PipelineStatus, PipelineStep, StepStatus, utcnow
from app.orders.repository import PipelineRepository
from app.orders.schemas import (
    PipelineCreate,
    PipelineDetailRead,
    PipelineLogRead,
    PipelineStepRead,
    PipelineSummaryRead,
    StepTransition,
)
from app.orders.steps import CUSTOMER_PO_STEP, FIRST_STEP_NAME, PIPELINE_STEPS, is_last_step, next_step_name, sort_steps
from app.otel import get_tracer, set_span_attributes
from app.platform.security.context import AuthContext
from app.platform.security.errors import AuthorizationError, MissingRoleError


logger = logging.getLogger("app.orders.service")
tracer = get_tracer("app.orders.service")

SYSTEM_LOG_STEP = "System"
PIPELINE_CREATED_ACTION = "Pipeline Created"


def _step_log_action(step_name: str, status: str) -> str:
    return f"Updated Step: {step_name} - Status: {status}"


@dataclass
class PipelineService:
    """Order pipeline engine: creation, tenant-scoped reads and step transitions.

    Every mutation commits exactly once. Domain events are published only after
    the commit succeeded.
    """

    pipeline_repository: PipelineRepository = field(default_factory=PipelineRepository)
    deal_repository: DealRepository = field(default_factory=DealRepository)
    account_repository: AccountRepository = field(default_factory=AccountRepository)
    customer_po_sync: CustomerPoSync = field(default_factory=CustomerPoSync)
    events: InProcessEventBus = event_bus
    complete_on_final_step: bool | None = None

    def _complete_on_final_step(self) -> bool:
        if self.complete_on_final_step is not None:
            return self.complete_on_final_step
        return get_settings().pipeline_complete_on_final_step

    def create_pipeline(self, session: Session, ctx: AuthContext, dto: PipelineCreate) -> PipelineDetailRead:
        with tracer.start_as_current_span("orders.pipeline.create") as span:
            set_span_attributes(span, deal_id=dto.deal_id, correlation_id=ctx.correlation_id)

            deal = self.deal_repository.get(session, dto.deal_id)
            if deal is None:
                raise NotFoundError("Deal not found", details={"dealId": str(dto.deal_id)})

            try:
                self.pipeline_repository.validate_write_security(
                    ctx, organization_id=deal.organization_id, action="create"
                )
            except AuthorizationError as exc:
                raise ForbiddenError(str(exc)) from exc

            account_id = deal.account_id
            if dto.account_id is not None:
                account = self.account_repository.get_in_organization(session, dto.account_id, deal.organization_id)
                if account is None:
                    raise NotFoundError("Account not found", details={"accountId": str(dto.account_id)})
                account_id = account.id

            if self.pipeline_repository.exists_for_deal(session, deal.id):
                raise ConflictError("Pipeline already exists for this deal", details={"dealId": str(deal.id)})

            pipeline = OrderPipeline(
                organization_id=deal.organization_id,
                deal_id=deal.id,
                account_id=account_id,
                current_stage=FIRST_STEP_NAME,
                status=PipelineStatus.ACTIVE.value,
            )
            pipeline.steps = [
                PipelineStep(
                    step_name=definition.name,
                    assigned_role=definition.assigned_role.value,
                    status=(StepStatus.IN_PROGRESS if index == 0 else StepStatus.PENDING).value,
                    data={"description": definition.description},
                )
                for index, definition in enumerate(PIPELINE_STEPS)
            ]
            with self._unit_of_work(session, conflict_message="Pipeline already exists for this deal"):
                session.add(pipeline)
                session.flush()
                self._append_log(session, pipeline.id, SYSTEM_LOG_STEP, PIPELINE_CREATED_ACTION, ctx)
                pipeline_id = pipeline.id
                organization_id = pipeline.organization_id

            span.set_attribute("pipeline_id", str(pipeline_id))

            observe_pipeline_created()
            logger.info(
                "orders.pipeline.created",
                extra={
                    "pipeline_id": str(pipeline_id),
                    "deal_id": str(deal.id),
                    "organization_id": organization_id,
                    "user_id": ctx.user_id,
                },
            )
            self.events.publish(
                "orders.pipeline.created",
                {
                    "pipeline_id": str(pipeline_id),
                    "deal_id": str(dto.deal_id),
                    "organization_id": organization_id,
                    "created_by": ctx.user_id,
                },
            )
            return self.get_pipeline(session, ctx, pipeline_id)

    def list_pipelines(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        organization_id: str | None = None,
    ) -> list[PipelineSummaryRead]:
        with tracer.start_as_current_span("orders.pipeline.list") as span:
            set_span_attributes(span, correlation_id=ctx.correlation_id)
            if not ctx.is_global_override and ctx.organization_id is None:
                raise ValidationFailureError("User does not belong to an organization")

            rows = self.pipeline_repository.list_visible(session, ctx, organization_id=organization_id)
            span.set_attribute("result_count", len(rows))
            return [self._to_summary(row) for row in rows]

    def get_pipeline(self, session: Session, ctx: AuthContext, pipeline_id: uuid.UUID) -> PipelineDetailRead:
        with tracer.start_as_current_span("orders.pipeline.get") as span:
            set_span_attributes(span, pipeline_id=pipeline_id, correlation_id=ctx.correlation_id)

            pipeline = self._get_visible_or_404(session, ctx, pipeline_id)
            summary = self._to_summary(pipeline)
            logs = [PipelineLogRead.model_validate(row) for row in self.pipeline_repository.list_logs(session, pipeline.id)]
            return PipelineDetailRead(**summary.model_dump(), logs=logs)

    def transition_step(
        self,
        session: Session,
        ctx: AuthContext,
        pipeline_id: uuid.UUID,
        step_name: str,
        patch: StepTransition,
    ) -> PipelineStepRead:
        with tracer.start_as_current_span("orders.pipeline.transition_step") as span:
            set_span_attributes(span, pipeline_id=pipeline_id, step_name=step_name, correlation_id=ctx.correlation_id)

            pipeline = self._get_visible_or_404(session, ctx, pipeline_id)
            step = next((item for item in pipeline.steps if item.step_name == step_name), None)
            if step is None:
                raise NotFoundError("Step not found", details={"stepName": step_name})

            decision = self.pipeline_repository.evaluate_step_access(step_name, step.assigned_role, ctx)
            span.set_attribute("decision", decision.reason.value)
            if not decision.allowed:
                observe_transition_denied("missing_role")
                logger.warning(
                    "orders.pipeline.transition_denied",
                    extra={
                        "pipeline_id": str(pipeline_id),
                        "step_name": step_name,
                        "user_id": ctx.user_id,
                        "reason": "missing_role",
                    },
                )
                error = MissingRoleError(step_name, step.assigned_role)
                raise ForbiddenError(str(error), details={"requiredRole": step.assigned_role})

            if patch.is_empty:
                raise ValidationFailureError("Nothing to update: provide status or data")

            with self._unit_of_work(session, conflict_message="Step was modified concurrently"):
                step_read, completed, synced = self._apply_transition(session, ctx, pipeline, step_name, patch)

            observe_step_transition(step_name, step_read.status)
            logger.info(
                "orders.pipeline.step_updated",
                extra={
                    "pipeline_id": str(pipeline_id),
                    "step_name": step_name,
                    "status": step_read.status,
                    "user_id": ctx.user_id,
                },
            )
            self.events.publish(
                "orders.pipeline.step_updated",
                {
                    "pipeline_id": str(pipeline_id),
                    "step_name": step_name,
                    "status": step_read.status,
                    "updated_by": ctx.user_id,
                },
            )
            if completed:
                observe_pipeline_completed()
                self.events.publish("orders.pipeline.completed", {"pipeline_id": str(pipeline_id)})
            if synced is not None:
                self.events.publish("orders.customer_po.synced", synced)
            return step_read

    def _apply_transition(
        self,
        session: Session,
        ctx: AuthContext,
        pipeline: OrderPipeline,
        step_name: str,
        patch: StepTransition,
    ) -> tuple[PipelineStepRead, bool, dict[str, Any] | None]:
        advancing = patch.status is StepStatus.COMPLETED
        # pipeline row first, then steps in catalog order; non-advancing patches lock only their step
        if advancing:
            self.pipeline_repository.lock_pipeline(session, pipeline.id)
        step = self.pipeline_repository.lock_step(session, pipeline.id, step_name)
        if step is None:
            raise NotFoundError("Step not found", details={"stepName": step_name})

        now = utcnow()
        if patch.status is not None:
            step.status = patch.status.value
            if advancing:
                step.completed_at = now
        if patch.data is not None:
            merged = dict(step.data or {})
            merged.update(patch.data.to_payload())
            step.data = merged
        step.updated_at = now
        step.updated_by = ctx.user_id

        self._append_log(session, pipeline.id, step_name, _step_log_action(step_name, step.status), ctx)

        completed = False
        if advancing:
            upcoming = next_step_name(step_name)
            if upcoming is not None:
                following = self.pipeline_repository.lock_step(session, pipeline.id, upcoming)
                if following is not None and following.status == StepStatus.PENDING.value:
                    following.status = StepStatus.IN_PROGRESS.value
                    following.updated_at = now
                pipeline.current_stage = upcoming
            elif is_last_step(step_name) and self._complete_on_final_step():
                pipeline.status = PipelineStatus.COMPLETED.value
                pipeline.completed_at = now
                completed = True

        synced: dict[str, Any] | None = None
        if step_name == CUSTOMER_PO_STEP and advancing:
            sync: SyncResult | None = self.customer_po_sync.sync_from_step(session, pipeline, step.data or {})
            if sync is not None:
                synced = {
                    "pipeline_id": str(pipeline.id),
                    "deal_id": str(pipeline.deal_id),
                    "po_number": sync.customer_po.po_number,
                    "action": sync.action,
                }

        session.flush()
        return PipelineStepRead.model_validate(step), completed, synced

    def _append_log(
        self,
        session: Session,
        pipeline_id: uuid.UUID,
        step_name: str,
        action: str,
        ctx: AuthContext,
    ) -> PipelineLog:
        entry = PipelineLog(pipeline_id=pipeline_id, step_name=step_name, action=action, performed_by=ctx.user_id)
        session.add(entry)
        return entry

    @contextmanager
    def _unit_of_work(self, session: Session, *, conflict_message: str) -> Iterator[None]:
        """Commit the enclosed writes once; any failure rolls all of them back."""

        try:
            yield
            session.commit()
        except OrderPipelineError:
            session.rollback()
            raise
        except (IntegrityError, StaleDataError) as exc:
            session.rollback()
            raise ConflictError(conflict_message) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("orders.pipeline.commit_failed", extra={"error": str(exc)})
            raise UnexpectedError(str(exc)) from exc

    def _get_visible_or_404(self, session: Session, ctx: AuthContext, pipeline_id: uuid.UUID) -> OrderPipeline:
        pipeline = self.pipeline_repository.get_visible(session, ctx, pipeline_id)
        if pipeline is None:
            raise NotFoundError("Pipeline not found", details={"pipelineId": str(pipeline_id)})
        return pipeline

    def _to_summary(self, pipeline: OrderPipeline) -> PipelineSummaryRead:
        summary = PipelineSummaryRead.model_validate(pipeline)
        summary.steps = sort_steps(summary.steps)
        return summary


pipeline_service = PipelineService()
