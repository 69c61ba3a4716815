"""Tests for readiness probes and health endpoints."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from psh_server.api import health
from psh_server.dependencies import get_health_service
from psh_server.exceptions import StorageUnavailableError
from psh_server.models.health import DependencyHealth, HealthStatus, ReadinessReport
from psh_server.services.health import HealthCheckService


def failing_repository(message: str = "Database error: unable to open database file") -> MagicMock:
    repository = MagicMock()
    repository.ping = AsyncMock(side_effect=StorageUnavailableError(message))
    return repository


@pytest.mark.asyncio
async def test_database_check_healthy(repository) -> None:
    """Test database check against a reachable store."""
    health_service = HealthCheckService(repository=repository)

    database = await health_service.check_database()

    assert database.name == "database"
    assert database.status == HealthStatus.HEALTHY
    assert database.message == "Database reachable"
    assert database.latency_ms is not None


@pytest.mark.asyncio
async def test_database_check_unhealthy() -> None:
    """Test database check when the store is unreachable."""
    health_service = HealthCheckService(repository=failing_repository())

    database = await health_service.check_database()

    assert database.status == HealthStatus.UNHEALTHY
    assert "unable to open database file" in database.message
    assert database.latency_ms is None


@pytest.mark.asyncio
async def test_database_check_timeout(monkeypatch) -> None:
    """Test a hanging ping is reported unhealthy instead of blocking the probe."""
    monkeypatch.setattr("psh_server.services.health.PING_TIMEOUT_SECONDS", 0.01)

    async def hang() -> None:
        await asyncio.sleep(10)

    repository = MagicMock()
    repository.ping = hang
    health_service = HealthCheckService(repository=repository)

    database = await health_service.check_database()

    assert database.status == HealthStatus.UNHEALTHY
    assert "timed out" in database.message


def test_apns_check_without_router() -> None:
    apns = HealthCheckService(repository=MagicMock()).check_apns()

    assert apns.name == "apns"
    assert apns.status == HealthStatus.DEGRADED


def test_apns_check_lists_environments(environment_router) -> None:
    apns = HealthCheckService(repository=MagicMock(), router=environment_router).check_apns()

    assert apns.status == HealthStatus.HEALTHY
    assert apns.environments == ["sandbox", "production"]


@pytest.mark.asyncio
async def test_readiness_healthy(repository, environment_router) -> None:
    """Test overall status when every dependency is healthy."""
    health_service = HealthCheckService(repository=repository, router=environment_router, version="1.2.3")

    report = await health_service.check_readiness()

    assert report.status == HealthStatus.HEALTHY
    assert report.version == "1.2.3"
    assert [d.name for d in report.dependencies] == ["database", "apns"]
    assert report.is_ready() is True


@pytest.mark.asyncio
async def test_readiness_unhealthy_database_wins(environment_router) -> None:
    health_service = HealthCheckService(repository=failing_repository(), router=environment_router)

    report = await health_service.check_readiness()

    assert report.status == HealthStatus.UNHEALTHY
    assert report.is_ready() is False


class TestReadinessReport:
    """Tests for status aggregation."""

    def test_degraded_is_ready(self) -> None:
        report = ReadinessReport.from_dependencies(
            [
                DependencyHealth(name="database", status=HealthStatus.HEALTHY),
                DependencyHealth(name="apns", status=HealthStatus.DEGRADED),
            ],
            version="1.0.0",
        )

        assert report.status == HealthStatus.DEGRADED
        assert report.is_ready() is True

    def test_no_dependencies_is_healthy(self) -> None:
        assert ReadinessReport.from_dependencies([], version="1.0.0").status == HealthStatus.HEALTHY


class TestHealthEndpoints:
    """Tests for /health and /health/ready."""

    @staticmethod
    def make_client(status: HealthStatus) -> TestClient:
        health_service = MagicMock()
        health_service.check_readiness = AsyncMock(return_value=ReadinessReport(status=status, version="1.0.0"))
        app = FastAPI()
        app.include_router(health.router)
        app.dependency_overrides[get_health_service] = lambda: health_service
        return TestClient(app)

    def test_liveness(self) -> None:
        response = self.make_client(HealthStatus.HEALTHY).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_ready(self) -> None:
        response = self.make_client(HealthStatus.DEGRADED).get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_not_ready(self) -> None:
        response = self.make_client(HealthStatus.UNHEALTHY).get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
