import os
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set up minimal test environment BEFORE any imports from psh_server
_tmp_dir = tempfile.TemporaryDirectory(prefix="pytest_psh_")
_config_file = Path(_tmp_dir.name) / "config.yaml"
_config_file.write_text(
    f"""
database:
  url: sqlite+aiosqlite:///{_tmp_dir.name}/psh.db

logging:
  level: INFO
  json: false
"""
)
os.environ["CONFIG_PATH"] = str(_config_file)


SANDBOX_TOKEN = "a" * 64
PRODUCTION_TOKEN = "b" * 64
OTHER_PRODUCTION_TOKEN = "c" * 64


@pytest.fixture
async def database(tmp_path):
    """Fresh SQLite database with the relay schema."""
    from psh_server.db import Database

    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.init_schema()
    yield db
    await db.dispose()


@pytest.fixture
async def repository(database):
    from psh_server.services.repository import PushRepository

    return PushRepository(database)


def make_transport(endpoint: str = "production") -> MagicMock:
    """Mock APNsTransport whose send returns an apns-id."""
    transport = MagicMock()
    transport.endpoint = endpoint
    transport.send = AsyncMock(return_value=f"{endpoint}-apns-id")
    return transport


@pytest.fixture
def sandbox_transport() -> MagicMock:
    return make_transport("sandbox")


@pytest.fixture
def production_transport() -> MagicMock:
    return make_transport("production")


@pytest.fixture
def environment_router(sandbox_transport, production_transport):
    from psh_server.services.environment_router import EnvironmentRouter

    return EnvironmentRouter(sandbox=sandbox_transport, production=production_transport)
