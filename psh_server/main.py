import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from psh_server.api import health, push
from psh_server.config import Settings, get_settings
from psh_server.db import Database
from psh_server.logging_config import configure_json_logging
from psh_server.middleware.request_id import RequestIDMiddleware
from psh_server.services.apns_transport import APNsTransport
from psh_server.services.container import ServiceContainer, init_container, reset_container
from psh_server.services.dispatcher import BroadcastDispatcher
from psh_server.services.environment_router import EnvironmentRouter
from psh_server.services.health import HealthCheckService
from psh_server.services.repository import PushRepository
from psh_server.version import get_version

settings = get_settings()

configure_json_logging(log_level=settings.log_level, use_json=settings.log_json)
logger = logging.getLogger(__name__)


def build_environment_router(settings: Settings) -> EnvironmentRouter:
    """
    Create the sandbox and production APNs transports.

    Both share the same signing key, team and topic; only the endpoint differs.

    Raises:
        ConfigurationError: If APNs credentials are missing or rejected
    """
    key_content = settings.read_apns_key()

    def transport(use_sandbox: bool) -> APNsTransport:
        return APNsTransport(
            key_content=key_content,
            key_id=settings.apns_key_id,
            team_id=settings.apns_team_id,
            topic=settings.apns_topic,
            use_sandbox=use_sandbox,
            timeout_seconds=settings.apns_timeout_seconds,
        )

    return EnvironmentRouter(sandbox=transport(True), production=transport(False))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup and shutdown."""
    logger.info("Starting psh relay", extra={"version": get_version()})

    database = Database(settings.database_url)
    await database.init_schema()

    repository = PushRepository(database)
    router = build_environment_router(settings)
    logger.info("APNs clients initialized")

    dispatcher = BroadcastDispatcher(
        repository=repository,
        router=router,
        concurrency=settings.dispatch_concurrency,
    )
    health_service = HealthCheckService(
        repository=repository,
        router=router,
        version=get_version(),
    )

    init_container(
        ServiceContainer(
            settings=settings,
            database=database,
            repository=repository,
            router=router,
            dispatcher=dispatcher,
            health_service=health_service,
        )
    )

    if settings.auth_token is None:
        logger.warning("No auth token configured - relay endpoints are open")

    logger.info("psh relay ready")

    yield

    logger.info("psh relay shutting down")
    reset_container()
    await database.dispose()


app = FastAPI(
    title="psh",
    description="Push relay for registered Apple devices",
    version=get_version(),
    lifespan=lifespan,
)

app.add_middleware(RequestIDMiddleware)

app.include_router(health.router)
app.include_router(push.router, tags=["push"])
