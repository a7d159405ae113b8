from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.orders.models import CustomerPo, OrderPipeline, PipelineLog, PipelineStep
from app.platform.security.context import AuthContext
from app.platform.security.repository import BaseRepository


class PipelineRepository(BaseRepository):
    resource = "orders.pipeline"

    def get_visible(self, session: Session, ctx: AuthContext, pipeline_id: uuid.UUID) -> OrderPipeline | None:
        stmt = (
            select(OrderPipeline)
            .where(OrderPipeline.id == pipeline_id)
            .options(
                selectinload(OrderPipeline.steps),
                selectinload(OrderPipeline.deal),
                selectinload(OrderPipeline.account),
            )
        )
        return session.scalar(self.apply_scope_query(stmt, ctx))

    def list_visible(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        organization_id: str | None = None,
    ) -> Sequence[OrderPipeline]:
        stmt = select(OrderPipeline).options(
            selectinload(OrderPipeline.steps),
            selectinload(OrderPipeline.deal),
            selectinload(OrderPipeline.account),
        )
        if organization_id is not None:
            stmt = stmt.where(OrderPipeline.organization_id == organization_id)
        stmt = self.apply_scope_query(stmt, ctx)
        return session.scalars(stmt.order_by(OrderPipeline.created_at.desc(), OrderPipeline.id)).all()

    def exists_for_deal(self, session: Session, deal_id: uuid.UUID) -> bool:
        return session.scalar(select(OrderPipeline.id).where(OrderPipeline.deal_id == deal_id)) is not None

    def lock_pipeline(self, session: Session, pipeline_id: uuid.UUID) -> OrderPipeline | None:
        return session.scalar(
            select(OrderPipeline)
            .where(OrderPipeline.id == pipeline_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def lock_step(self, session: Session, pipeline_id: uuid.UUID, step_name: str) -> PipelineStep | None:
        """Re-read a step row under a row lock so the data merge sees the committed version."""

        return session.scalar(
            select(PipelineStep)
            .where(PipelineStep.pipeline_id == pipeline_id, PipelineStep.step_name == step_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def list_logs(self, session: Session, pipeline_id: uuid.UUID) -> Sequence[PipelineLog]:
        return session.scalars(
            select(PipelineLog)
            .where(PipelineLog.pipeline_id == pipeline_id)
            .order_by(PipelineLog.timestamp.desc(), PipelineLog.id.desc())
        ).all()


class CustomerPoRepository(BaseRepository):
    resource = "orders.customer_po"

    def find_by_natural_key(self, session: Session, deal_id: uuid.UUID, po_number: str) -> CustomerPo | None:
        return session.scalar(
            select(CustomerPo)
            .where(CustomerPo.deal_id == deal_id, CustomerPo.po_number == po_number)
            .with_for_update()
        )

    def list_visible(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        deal_id: uuid.UUID | None = None,
    ) -> Sequence[CustomerPo]:
        stmt = select(CustomerPo)
        if deal_id is not None:
            stmt = stmt.where(CustomerPo.deal_id == deal_id)
        stmt = self.apply_scope_query(stmt, ctx)
        return session.scalars(stmt.order_by(CustomerPo.created_at.desc(), CustomerPo.id)).all()

    def get_visible(self, session: Session, ctx: AuthContext, customer_po_id: uuid.UUID) -> CustomerPo | None:
        stmt = select(CustomerPo).where(CustomerPo.id == customer_po_id)
        return session.scalar(self.apply_scope_query(stmt, ctx))
