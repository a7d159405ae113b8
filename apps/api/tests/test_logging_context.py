from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.crm.models import CRMAccount, CRMDeal
from app.logging import JsonLogFormatter, KeyValueLogFormatter
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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_auth_context(request: Request) -> AuthContext:
        return AuthContext(
            user_id="user-1",
            organization_id="org-1",
            correlation_id=getattr(request.state, "correlation_id", None),
            roles={Role.SALES},
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pipeline_auth_context] = override_get_auth_context
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_pipeline(client: TestClient, session: Session, correlation_id: str) -> dict:
    account = CRMAccount(organization_id="org-1", name="Log Account")
    deal = CRMDeal(organization_id="org-1", account=account, name="Log Deal", amount=Decimal("1"))
    session.add_all([account, deal])
    session.commit()
    response = client.post("/api/pipeline", json={"dealId": str(deal.id)}, headers={"X-Correlation-Id": correlation_id})
    assert response.status_code == 201
    return response.json()


def test_logs_include_correlation_id_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    path = f"/api/pipeline/{uuid.uuid4()}"
    response = client.get(path, headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/pipeline/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_logs_include_pipeline_context(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    pipeline = _create_pipeline(client, db_session, "abc-456")
    patch = client.patch(
        f"/api/pipeline/{pipeline['id']}/step/Lead",
        json={"status": "COMPLETED"},
        headers={"X-Correlation-Id": "abc-456"},
    )
    assert patch.status_code == 200

    service_records = [record for record in caplog.records if record.name == "app.orders.service"]
    assert any(
        record.getMessage() == "orders.pipeline.created"
        and getattr(record, "pipeline_id", None) == pipeline["id"]
        for record in service_records
    )
    assert any(
        record.getMessage() == "orders.pipeline.step_updated"
        and getattr(record, "step_name", None) == "Lead"
        and getattr(record, "status", None) == "COMPLETED"
        for record in service_records
    )


def test_json_formatter_keeps_only_known_fields() -> None:
    record = logging.makeLogRecord(
        {
            "name": "app.orders.service",
            "levelno": logging.INFO,
            "levelname": "INFO",
            "msg": "orders.pipeline.step_updated",
            "pipeline_id": "p-1",
            "step_name": "Lead",
            "secret_token": "do-not-log",
            "correlation_id": "corr-9",
        }
    )

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["msg"] == "orders.pipeline.step_updated"
    assert payload["correlation_id"] == "corr-9"
    assert payload["fields"] == {"pipeline_id": "p-1", "step_name": "Lead"}


def test_text_formatter_renders_sorted_pairs_and_truncates_errors() -> None:
    record = logging.makeLogRecord(
        {
            "name": "app.orders.service",
            "levelno": logging.WARNING,
            "levelname": "WARNING",
            "msg": "orders.pipeline.transition_denied",
            "step_name": "Invoicing",
            "reason": "missing_role",
            "error": "x" * 600,
            "correlation_id": "corr-3",
        }
    )

    line = KeyValueLogFormatter().format(record)

    assert line.startswith("WARNING app.orders.service [corr-3] orders.pipeline.transition_denied ")
    assert "reason=missing_role step_name=Invoicing" in line
    assert "x" * 500 in line
    assert "x" * 501 not in line
