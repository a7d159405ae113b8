from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.orders.models import StepStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class StepData(BaseModel):
    """Step payload. Known keys are typed; any other key is kept as-is."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    po_number: str | None = Field(default=None, min_length=1, max_length=128)
    po_date: date | None = None
    document_url: str | None = None
    # dumped as a JSON string in step data
    value: Decimal | None = Field(default=None, max_digits=18, decimal_places=2)
    description: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class PipelineCreate(CamelModel):
    deal_id: UUID
    account_id: UUID | None = None


class StepTransition(CamelModel):
    status: StepStatus | None = None
    data: StepData | None = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and (self.data is None or not self.data.to_payload())


class DealSummaryRead(CamelModel):
    id: UUID
    name: str
    amount: Decimal
    stage: str | None
    owner_user_id: str | None


class AccountSummaryRead(CamelModel):
    id: UUID
    name: str


class PipelineStepRead(CamelModel):
    id: UUID
    pipeline_id: UUID
    step_name: str
    assigned_role: str
    status: str
    data: dict[str, Any]
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime
    updated_by: str | None


class PipelineLogRead(CamelModel):
    id: int
    pipeline_id: UUID
    step_name: str
    action: str
    performed_by: str
    timestamp: datetime


class PipelineSummaryRead(CamelModel):
    id: UUID
    organization_id: str
    deal_id: UUID
    account_id: UUID
    current_stage: str
    status: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    deal: DealSummaryRead | None
    account: AccountSummaryRead | None
    steps: list[PipelineStepRead]


class PipelineDetailRead(PipelineSummaryRead):
    logs: list[PipelineLogRead]


class CustomerPoRead(CamelModel):
    id: UUID
    organization_id: str
    deal_id: UUID
    po_number: str
    po_date: date | None
    document_url: str | None
    value: Decimal | None
    status: str
    created_at: datetime
    updated_at: datetime
