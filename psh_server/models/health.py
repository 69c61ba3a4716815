"""Readiness report models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    """Health check status values, ordered from best to worst."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


class DependencyHealth(BaseModel):
    """Probe result for one thing a broadcast needs."""

    name: Literal["database", "apns"]
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = Field(None, description="Probe round-trip in milliseconds")
    environments: list[str] = Field(default_factory=list, description="APNs endpoints with a live client")


class ReadinessReport(BaseModel):
    """Overall relay readiness, as served by /health/ready."""

    status: HealthStatus
    version: str
    checked_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    dependencies: list[DependencyHealth] = Field(default_factory=list)

    @classmethod
    def from_dependencies(cls, dependencies: list[DependencyHealth], version: str) -> ReadinessReport:
        """The overall status is the worst status among the dependencies."""
        worst = max((d.status for d in dependencies), key=_SEVERITY.__getitem__, default=HealthStatus.HEALTHY)
        return cls(status=worst, version=version, dependencies=dependencies)

    def is_ready(self) -> bool:
        """A degraded relay still accepts traffic; only an unhealthy one is taken out."""
        return self.status is not HealthStatus.UNHEALTHY
