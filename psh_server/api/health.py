"""Liveness and readiness probes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from psh_server.dependencies import get_health_service
from psh_server.models.health import ReadinessReport
from psh_server.services.health import HealthCheckService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe. No authentication required."""
    return {"status": "ok"}


@router.get("/health/ready", response_model=ReadinessReport)
async def health_ready(
    response: Response,
    health_service: HealthCheckService = Depends(get_health_service),
) -> ReadinessReport:
    """
    Readiness probe. No authentication required.

    Returns 503 when the database cannot be reached, since no broadcast could
    enumerate its devices.
    """
    report = await health_service.check_readiness()

    if not report.is_ready():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return report
