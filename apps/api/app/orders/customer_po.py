from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from app.metrics import observe_customer_po_sync
from app.orders.errors import NotFoundError, ValidationFailureError
from app.orders.models import CUSTOMER_PO_RECEIVED, CustomerPo, OrderPipeline, utcnow
from app.orders.repository import CustomerPoRepository
from app.orders.schemas import CustomerPoRead
from app.platform.security.context import AuthContext


logger = logging.getLogger("app.orders.customer_po")


def _parse_po_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError as exc:
        raise ValidationFailureError("poDate must be an ISO date", details={"poDate": raw}) from exc


def _parse_value(raw: Any) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValidationFailureError("value must be numeric", details={"value": raw}) from exc


@dataclass(slots=True)
class SyncResult:
    customer_po: CustomerPo
    action: str


@dataclass(slots=True)
class CustomerPoSync:
    """Mirrors a completed Customer PO step into ``orders_customer_po``.

    Runs inside the caller's transaction and never commits.
    """

    repository: CustomerPoRepository = CustomerPoRepository()

    def sync_from_step(self, session: Session, pipeline: OrderPipeline, data: dict[str, Any]) -> SyncResult | None:
        po_number = data.get("poNumber")
        if not po_number:
            return None
        po_number = str(po_number)

        po_date = _parse_po_date(data.get("poDate"))
        value = _parse_value(data.get("value"))
        document_url = data.get("documentUrl")

        existing = self.repository.find_by_natural_key(session, pipeline.deal_id, po_number)
        if existing is not None:
            if po_date is not None:
                existing.po_date = po_date
            if document_url is not None:
                existing.document_url = str(document_url)
            if value is not None:
                existing.value = value
            existing.status = CUSTOMER_PO_RECEIVED
            existing.updated_at = utcnow()
            customer_po = existing
            action = "updated"
        else:
            customer_po = CustomerPo(
                organization_id=pipeline.organization_id,
                deal_id=pipeline.deal_id,
                po_number=po_number,
                po_date=po_date,
                document_url=str(document_url) if document_url is not None else None,
                value=value,
                status=CUSTOMER_PO_RECEIVED,
            )
            session.add(customer_po)
            action = "created"

        session.flush()
        observe_customer_po_sync(action)
        logger.info(
            "orders.customer_po.synced",
            extra={
                "pipeline_id": str(pipeline.id),
                "deal_id": str(pipeline.deal_id),
                "po_number": po_number,
                "status": action,
            },
        )
        return SyncResult(customer_po=customer_po, action=action)


@dataclass(slots=True)
class CustomerPoService:
    repository: CustomerPoRepository = CustomerPoRepository()

    def list_customer_pos(
        self,
        session: Session,
        ctx: AuthContext,
        *,
        deal_id: uuid.UUID | None = None,
    ) -> list[CustomerPoRead]:
        rows = self.repository.list_visible(session, ctx, deal_id=deal_id)
        return [CustomerPoRead.model_validate(row) for row in rows]

    def get_customer_po(self, session: Session, ctx: AuthContext, customer_po_id: uuid.UUID) -> CustomerPoRead:
        row = self.repository.get_visible(session, ctx, customer_po_id)
        if row is None:
            raise NotFoundError("Customer PO not found", details={"customerPoId": str(customer_po_id)})
        return CustomerPoRead.model_validate(row)


customer_po_service = CustomerPoService()
