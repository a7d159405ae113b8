from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.events import InProcessEventBus, InternalEvent
from app.crm.models import CRMAccount, CRMDeal
from app.orders.customer_po import CustomerPoService, CustomerPoSync
from app.orders.errors import NotFoundError, ValidationFailureError
from app.orders.models import CustomerPo, OrderPipeline, PipelineStep
from app.orders.schemas import PipelineCreate, StepData, StepTransition
from app.orders.seed import seed_demo_pipeline
from app.orders.service import PipelineService
from app.orders.steps import STEP_PERMISSIONS
from app.platform.security.context import AuthContext
from app.platform.security.policies import InMemoryPolicyBackend, get_policy_backend, set_policy_backend
from app.platform.security.roles import Role


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def policy_backend() -> Generator[None, None, None]:
    previous = get_policy_backend()
    set_policy_backend(InMemoryPolicyBackend(STEP_PERMISSIONS))
    yield
    set_policy_backend(previous)


def _sales(organization_id: str = "org-1") -> AuthContext:
    return AuthContext(user_id="sales-1", organization_id=organization_id, roles={Role.SALES})


def _create_pipeline(session: Session, service: PipelineService, organization_id: str = "org-1") -> uuid.UUID:
    account = CRMAccount(organization_id=organization_id, name="PO Account")
    deal = CRMDeal(organization_id=organization_id, account=account, name="PO Deal", amount=Decimal("10"))
    session.add_all([account, deal])
    session.commit()
    return service.create_pipeline(session, _sales(organization_id), PipelineCreate(deal_id=deal.id)).id


def test_completing_customer_po_step_creates_then_updates(db_session: Session) -> None:
    bus = InProcessEventBus()
    synced: list[InternalEvent] = []
    bus.subscribe("orders.customer_po.synced", synced.append)
    service = PipelineService(events=bus)
    pipeline_id = _create_pipeline(db_session, service)

    service.transition_step(
        db_session,
        _sales(),
        pipeline_id,
        "Customer PO",
        StepTransition(
            status="COMPLETED",
            data=StepData(po_number="PO-123", po_date=date(2026, 3, 1), value=1500.5),
        ),
    )

    row = db_session.scalar(select(CustomerPo))
    assert row is not None
    assert row.po_number == "PO-123"
    assert row.po_date == date(2026, 3, 1)
    assert row.value == Decimal("1500.50")
    assert row.status == "Received"
    assert row.organization_id == "org-1"

    service.transition_step(
        db_session,
        _sales(),
        pipeline_id,
        "Customer PO",
        StepTransition(status="COMPLETED", data=StepData(document_url="https://files.example/po-123.pdf", value=2000)),
    )

    assert db_session.scalar(select(func.count()).select_from(CustomerPo)) == 1
    db_session.expire_all()
    row = db_session.scalar(select(CustomerPo))
    assert row.document_url == "https://files.example/po-123.pdf"
    assert row.value == Decimal("2000.00")
    assert row.po_date == date(2026, 3, 1)
    assert [event.payload["action"] for event in synced] == ["created", "updated"]


def test_customer_po_not_synced_without_completion_or_number(db_session: Session) -> None:
    service = PipelineService(events=InProcessEventBus())
    pipeline_id = _create_pipeline(db_session, service)

    service.transition_step(
        db_session,
        _sales(),
        pipeline_id,
        "Customer PO",
        StepTransition(status="IN_PROGRESS", data=StepData(po_number="PO-9")),
    )
    assert db_session.scalar(select(func.count()).select_from(CustomerPo)) == 0

    other_id = _create_pipeline(db_session, service, organization_id="org-2")
    service.transition_step(
        db_session,
        _sales("org-2"),
        other_id,
        "Customer PO",
        StepTransition(status="COMPLETED", data=StepData(value=10)),
    )
    assert db_session.scalar(select(func.count()).select_from(CustomerPo)) == 0


def test_customer_po_reads_are_tenant_scoped(db_session: Session) -> None:
    service = PipelineService(events=InProcessEventBus())
    reads = CustomerPoService()
    first = _create_pipeline(db_session, service, organization_id="org-1")
    second = _create_pipeline(db_session, service, organization_id="org-2")
    for organization_id, pipeline_id in (("org-1", first), ("org-2", second)):
        service.transition_step(
            db_session,
            _sales(organization_id),
            pipeline_id,
            "Customer PO",
            StepTransition(status="COMPLETED", data=StepData(po_number=f"PO-{organization_id}")),
        )

    own = reads.list_customer_pos(db_session, _sales("org-1"))
    assert [item.po_number for item in own] == ["PO-org-1"]

    foreign_id = reads.list_customer_pos(db_session, _sales("org-2"))[0].id
    with pytest.raises(NotFoundError):
        reads.get_customer_po(db_session, _sales("org-1"), foreign_id)

    root = AuthContext(user_id="root", roles={Role.SUPER_ADMIN})
    assert len(reads.list_customer_pos(db_session, root)) == 2


def test_seed_demo_pipeline(db_session: Session) -> None:
    detail = seed_demo_pipeline(db_session, organization_id="org-demo")

    assert detail.current_stage == "Procurement / Vendor PO"
    assert [step.status for step in detail.steps[:5]] == ["COMPLETED"] * 4 + ["IN_PROGRESS"]
    assert all(step.status == "PENDING" for step in detail.steps[5:])
    assert detail.steps[3].data["poNumber"] == "PO-998877"
    row = db_session.scalar(select(CustomerPo))
    assert row is not None
    assert row.po_number == "PO-998877"
    assert row.value == Decimal("5000000.00")


def test_customer_po_value_keeps_full_precision(db_session: Session) -> None:
    service = PipelineService(events=InProcessEventBus())
    pipeline_id = _create_pipeline(db_session, service)
    data = StepData.model_validate({"poNumber": "PO-1", "value": "1234567890123456.78"})

    step = service.transition_step(
        db_session, _sales(), pipeline_id, "Customer PO", StepTransition(status="COMPLETED", data=data)
    )
    assert step.data["value"] == "1234567890123456.78"

    pipeline = db_session.get(OrderPipeline, pipeline_id)
    result = CustomerPoSync().sync_from_step(db_session, pipeline, data.to_payload())
    assert result is not None
    assert result.action == "updated"
    assert result.customer_po.value == Decimal("1234567890123456.78")
    db_session.rollback()


def test_customer_po_value_rejects_sub_cent_amounts() -> None:
    with pytest.raises(ValidationError):
        StepData.model_validate({"poNumber": "PO-1", "value": "10.005"})
    with pytest.raises(ValidationError):
        StepData.model_validate({"poNumber": "PO-1", "value": "ten"})


def test_stored_non_numeric_value_fails_sync_and_rolls_back(db_session: Session) -> None:
    service = PipelineService(events=InProcessEventBus())
    pipeline_id = _create_pipeline(db_session, service)
    step = db_session.scalar(
        select(PipelineStep).where(PipelineStep.pipeline_id == pipeline_id, PipelineStep.step_name == "Customer PO")
    )
    step.data = {"value": "about a million"}
    db_session.commit()

    with pytest.raises(ValidationFailureError) as exc_info:
        service.transition_step(
            db_session,
            _sales(),
            pipeline_id,
            "Customer PO",
            StepTransition(status="COMPLETED", data=StepData(po_number="PO-9")),
        )

    assert exc_info.value.status_code == 400
    assert db_session.scalar(select(func.count()).select_from(CustomerPo)) == 0
    refreshed = db_session.scalar(
        select(PipelineStep).where(PipelineStep.pipeline_id == pipeline_id, PipelineStep.step_name == "Customer PO")
    )
    assert refreshed.status == "PENDING"
