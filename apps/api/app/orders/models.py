from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.crm.models import CRMAccount, CRMDeal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    COMPLETED = "COMPLETED"


class PipelineStatus(StrEnum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


CUSTOMER_PO_RECEIVED = "Received"


class OrderPipeline(Base):
    __tablename__ = "orders_pipeline"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[str] = mapped_column(String(128), nullable=False)
    deal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crm_deal.id", ondelete="RESTRICT"),
        nullable=False,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crm_account.id", ondelete="RESTRICT"),
        nullable=False,
    )
    current_stage: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=PipelineStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    deal: Mapped[CRMDeal] = relationship("CRMDeal")
    account: Mapped[CRMAccount] = relationship("CRMAccount")
    steps: Mapped[list[PipelineStep]] = relationship(
        "PipelineStep",
        back_populates="pipeline",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    # append-only; read through PipelineRepository.list_logs for ordering
    logs: Mapped[list[PipelineLog]] = relationship("PipelineLog", back_populates="pipeline")

    __mapper_args__ = {"version_id_col": row_version}
    __table_args__ = (
        UniqueConstraint("deal_id", name="uq_orders_pipeline_deal"),
        Index("ix_orders_pipeline_organization", "organization_id", "created_at"),
    )


class PipelineStep(Base):
    __tablename__ = "orders_pipeline_step"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders_pipeline.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_name: Mapped[str] = mapped_column(String(64), nullable=False)
    assigned_role: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=StepStatus.PENDING.value)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    pipeline: Mapped[OrderPipeline] = relationship("OrderPipeline", back_populates="steps")

    __mapper_args__ = {"version_id_col": row_version}
    __table_args__ = (
        UniqueConstraint("pipeline_id", "step_name", name="uq_orders_pipeline_step_name"),
        Index("ix_orders_pipeline_step_pipeline", "pipeline_id"),
    )


class PipelineLog(Base):
    __tablename__ = "orders_pipeline_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders_pipeline.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_name: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    performed_by: Mapped[str] = mapped_column(String(128), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    pipeline: Mapped[OrderPipeline] = relationship("OrderPipeline", back_populates="logs")

    __table_args__ = (Index("ix_orders_pipeline_log_pipeline", "pipeline_id", "timestamp"),)


class CustomerPo(Base):
    __tablename__ = "orders_customer_po"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[str] = mapped_column(String(128), nullable=False)
    deal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("crm_deal.id", ondelete="RESTRICT"),
        nullable=False,
    )
    po_number: Mapped[str] = mapped_column(String(128), nullable=False)
    po_date: Mapped[date | None] = mapped_column(Date(), nullable=True)
    document_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    value: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=CUSTOMER_PO_RECEIVED)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    deal: Mapped[CRMDeal] = relationship("CRMDeal")

    __table_args__ = (
        UniqueConstraint("deal_id", "po_number", name="uq_orders_customer_po_deal_number"),
        Index("ix_orders_customer_po_organization", "organization_id", "created_at"),
    )
