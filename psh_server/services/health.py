"""Readiness probes for the relay's database and APNs clients."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from psh_server.exceptions import StorageUnavailableError
from psh_server.models.health import DependencyHealth, HealthStatus, ReadinessReport

if TYPE_CHECKING:
    from psh_server.services.environment_router import EnvironmentRouter
    from psh_server.services.repository import PushRepository

logger = logging.getLogger(__name__)

PING_TIMEOUT_SECONDS = 5.0


class HealthCheckService:
    """Builds the readiness report served by /health/ready."""

    def __init__(
        self,
        repository: PushRepository,
        router: EnvironmentRouter | None = None,
        version: str = "unknown",
    ) -> None:
        self.repository = repository
        self.router = router
        self.version = version

    async def check_database(self) -> DependencyHealth:
        """Ping the relational store; device enumeration fails without it."""
        start = time.perf_counter()

        try:
            await asyncio.wait_for(self.repository.ping(), timeout=PING_TIMEOUT_SECONDS)
        except StorageUnavailableError as e:
            message = e.message
        except TimeoutError:
            message = f"Database ping timed out after {PING_TIMEOUT_SECONDS:g}s"
        else:
            return DependencyHealth(
                name="database",
                status=HealthStatus.HEALTHY,
                message="Database reachable",
                latency_ms=(time.perf_counter() - start) * 1000,
            )

        logger.error("Database health check failed", extra={"error": message})
        return DependencyHealth(name="database", status=HealthStatus.UNHEALTHY, message=message)

    def check_apns(self) -> DependencyHealth:
        """
        Report which APNs endpoints have a client.

        Nothing is sent to Apple. Without a router every send would fail, but
        registration and history still work, so the relay is only degraded.
        """
        if self.router is None:
            return DependencyHealth(
                name="apns",
                status=HealthStatus.DEGRADED,
                message="APNs clients not initialized",
            )

        return DependencyHealth(
            name="apns",
            status=HealthStatus.HEALTHY,
            message="APNs clients initialized",
            environments=[env.value for env in self.router.environments()],
        )

    async def check_readiness(self) -> ReadinessReport:
        database = await self.check_database()
        return ReadinessReport.from_dependencies([database, self.check_apns()], version=self.version)
