"""
Service dependency container.

Built once in the FastAPI lifespan and read by the dependency providers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from psh_server.config import Settings
    from psh_server.db import Database
    from psh_server.services.dispatcher import BroadcastDispatcher
    from psh_server.services.environment_router import EnvironmentRouter
    from psh_server.services.health import HealthCheckService
    from psh_server.services.repository import PushRepository


class ServiceContainer:
    """Container for the relay's long-lived services."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        repository: PushRepository,
        router: EnvironmentRouter,
        dispatcher: BroadcastDispatcher,
        health_service: HealthCheckService,
    ) -> None:
        self.settings = settings
        self.database = database
        self.repository = repository
        self.router = router
        self.dispatcher = dispatcher
        self.health_service = health_service


_container: ServiceContainer | None = None


def init_container(container: ServiceContainer) -> None:
    """Install the container (called once in FastAPI lifespan)."""
    global _container
    _container = container


def reset_container() -> None:
    global _container
    _container = None


def get_container() -> ServiceContainer:
    """Get service container.

    Raises:
        RuntimeError: If container not initialized (lifespan not running)
    """
    if _container is None:
        msg = "Service container not initialized - application lifespan may not be running"
        raise RuntimeError(msg)
    return _container
