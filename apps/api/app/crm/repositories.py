from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.crm.models import CRMAccount, CRMDeal
from app.platform.security.repository import BaseRepository


class DealRepository(BaseRepository):
    resource = "crm.deal"

    def get(self, session: Session, deal_id: uuid.UUID) -> CRMDeal | None:
        # not tenant-scoped; pipeline creation reports a foreign deal as forbidden
        return session.scalar(select(CRMDeal).where(CRMDeal.id == deal_id))


class AccountRepository(BaseRepository):
    resource = "crm.account"

    def get_in_organization(self, session: Session, account_id: uuid.UUID, organization_id: str) -> CRMAccount | None:
        return session.scalar(
            select(CRMAccount).where(CRMAccount.id == account_id, CRMAccount.organization_id == organization_id)
        )
