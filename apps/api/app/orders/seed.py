from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from app.crm.models import CRMAccount, CRMDeal
from app.orders.models import StepStatus
from app.orders.schemas import PipelineCreate, PipelineDetailRead, StepData, StepTransition
from app.orders.service import PipelineService
from app.orders.steps import CUSTOMER_PO_STEP, PIPELINE_STEPS
from app.platform.security.context import AuthContext
from app.platform.security.roles import Role


DEMO_PO_NUMBER = "PO-998877"
DEMO_DEAL_AMOUNT = Decimal("5000000")


class PipelineSeedHelper:
    """Builds a demo pipeline part-way through the workflow, using the engine itself."""

    def __init__(self, service: PipelineService) -> None:
        self._service = service

    def seed_demo_pipeline(self, session: Session, *, organization_id: str, user_id: str = "seed") -> PipelineDetailRead:
        account = CRMAccount(organization_id=organization_id, name="Tesla Inc. (Demo)", industry="Automotive")
        deal = CRMDeal(
            organization_id=organization_id,
            account=account,
            name="Gigafactory AI Upgrade",
            amount=DEMO_DEAL_AMOUNT,
            stage="Closed Won",
            close_date=date.today(),
        )
        session.add_all([account, deal])
        session.commit()

        ctx = AuthContext(user_id=user_id, organization_id=organization_id, roles={Role.SUPER_ADMIN})
        pipeline = self._service.create_pipeline(session, ctx, PipelineCreate(deal_id=deal.id))

        for definition in PIPELINE_STEPS[:4]:
            data = None
            if definition.name == CUSTOMER_PO_STEP:
                data = StepData(po_number=DEMO_PO_NUMBER, value=DEMO_DEAL_AMOUNT)
            self._service.transition_step(
                session,
                ctx,
                pipeline.id,
                definition.name,
                StepTransition(status=StepStatus.COMPLETED, data=data),
            )

        return self._service.get_pipeline(session, ctx, pipeline.id)


def seed_demo_pipeline(session: Session, *, organization_id: str, user_id: str = "seed") -> PipelineDetailRead:
    return PipelineSeedHelper(PipelineService()).seed_demo_pipeline(
        session, organization_id=organization_id, user_id=user_id
    )
