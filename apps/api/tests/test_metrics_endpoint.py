from __future__ import annotations

import os
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from app.core.auth import AuthUser, get_current_user as auth_get_current_user
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import CRMAccount, CRMDeal
from app.main import app
from app.orders.api import get_pipeline_auth_context
from app.platform.security.context import AuthContext
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
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_auth_context() -> AuthContext:
        return AuthContext(user_id="metrics-user", organization_id="org-1", roles={Role.SALES})

    def override_auth_user() -> AuthUser:
        return AuthUser(sub="metrics-admin", roles=["system.metrics.read"])

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pipeline_auth_context] = override_auth_context
    app.dependency_overrides[auth_get_current_user] = override_auth_user

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_metrics_endpoint_exposes_http_and_pipeline_metrics(client: TestClient, db_session: Session) -> None:
    health = client.get("/health")
    assert health.status_code == 200

    account = CRMAccount(organization_id="org-1", name="Metrics Account")
    deal = CRMDeal(organization_id="org-1", account=account, name="Metrics Deal", amount=Decimal("1"))
    db_session.add_all([account, deal])
    db_session.commit()

    pipeline = client.post("/api/pipeline", json={"dealId": str(deal.id)})
    assert pipeline.status_code == 201

    step = client.patch(
        f"/api/pipeline/{pipeline.json()['id']}/step/Customer PO",
        json={"status": "COMPLETED", "data": {"poNumber": "PO-M1"}},
    )
    assert step.status_code == 200

    denied = client.patch(f"/api/pipeline/{pipeline.json()['id']}/step/Invoicing", json={"status": "COMPLETED"})
    assert denied.status_code == 403

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text

    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert "order_pipelines_created_total" in body
    assert "order_pipeline_step_transitions_total" in body
    assert "customer_po_sync_total" in body

    assert 'path="/health"' in body
    assert 'path="/api/pipeline/{id}/step/{id}"' in body
    assert 'step_name="Customer PO"' in body
    assert 'action="created"' in body
    assert 'reason="missing_role"' in body


def test_metrics_endpoint_requires_permission(client: TestClient) -> None:
    app.dependency_overrides[auth_get_current_user] = lambda: AuthUser(sub="someone", roles=["Sales"])

    response = client.get("/metrics")

    assert response.status_code == 403
