# tests/test_health.py
"""Tests for the worker's liveness, readiness and metrics routes."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.app.dependencies import get_session
from api.app.main import create_app


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _client(metrics, session) -> TestClient:
    app = create_app(registry=metrics.registry)

    async def override_session():
        yield session

    app.dependency_overrides[get_session] = override_session
    return TestClient(app)


@pytest.fixture
def healthy_session():
    session = AsyncMock()
    session.execute.side_effect = lambda stmt, params=None: _result("ok")
    return session


def test_healthz(metrics):
    response = _client(metrics, AsyncMock()).get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_readyz_ready(metrics, healthy_session):
    response = _client(metrics, healthy_session).get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"status": "ready"}


def test_readyz_reports_missing_tables(metrics):
    session = AsyncMock()

    def execute(stmt, params=None):
        if params and params["name"] == "public.weekly_digests":
            return _result(None)
        return _result("ok")

    session.execute.side_effect = execute
    response = _client(metrics, session).get("/readyz")
    assert response.status_code == 503
    assert response.json()["missing_tables"] == ["weekly_digests"]


def test_readyz_database_unreachable(metrics):
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    response = _client(metrics, session).get("/readyz")
    assert response.status_code == 503
    assert response.json() == {"status": "unavailable", "error": "database unreachable"}


def test_metrics_exposes_worker_metrics(metrics):
    metrics.observe_job("generate_reply", "DONE", 0.1)
    response = _client(metrics, AsyncMock()).get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert 'persona_worker_jobs_processed_total{job_type="generate_reply",status="DONE"} 1.0' in response.text
