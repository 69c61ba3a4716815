from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from psh_server.config import Settings, get_settings
from psh_server.services.container import get_container

if TYPE_CHECKING:
    from psh_server.services.dispatcher import BroadcastDispatcher
    from psh_server.services.health import HealthCheckService
    from psh_server.services.repository import PushRepository

security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Verify the bearer token when one is configured.

    With no auth.token set the relay accepts unauthenticated requests.
    """
    if settings.auth_token is None:
        return
    if credentials is None or credentials.credentials != settings.auth_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )


async def get_repository() -> PushRepository:
    """Get push repository via dependency injection."""
    return get_container().repository


async def get_dispatcher() -> BroadcastDispatcher:
    """Get broadcast dispatcher via dependency injection."""
    return get_container().dispatcher


async def get_health_service() -> HealthCheckService:
    """Get health check service via dependency injection."""
    return get_container().health_service
