from app.orders.api import customer_pos_router, router
from app.orders.customer_po import CustomerPoService, CustomerPoSync, customer_po_service
from app.orders.models import CustomerPo, OrderPipeline, PipelineLog, PipelineStatus, PipelineStep, StepStatus
from app.orders.schemas import (
    CustomerPoRead,
    PipelineCreate,
    PipelineDetailRead,
    PipelineLogRead,
    PipelineStepRead,
    PipelineSummaryRead,
    StepData,
    StepTransition,
)
from app.orders.service import PipelineService, pipeline_service

__all__ = [
    "router",
    "customer_pos_router",
    "OrderPipeline",
    "PipelineStep",
    "PipelineLog",
    "CustomerPo",
    "PipelineStatus",
    "StepStatus",
    "PipelineCreate",
    "StepData",
    "StepTransition",
    "PipelineStepRead",
    "PipelineLogRead",
    "PipelineSummaryRead",
    "PipelineDetailRead",
    "CustomerPoRead",
    "PipelineService",
    "pipeline_service",
    "CustomerPoService",
    "CustomerPoSync",
    "customer_po_service",
]
