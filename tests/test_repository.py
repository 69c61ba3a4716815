"""Tests for PushRepository against a real SQLite database."""

from __future__ import annotations

import json

import pytest

from psh_server.db import Database
from psh_server.exceptions import HistoryWriteError, StorageUnavailableError
from psh_server.models.notification import DeviceRecord
from psh_server.services.repository import PushRepository

from conftest import OTHER_PRODUCTION_TOKEN, PRODUCTION_TOKEN, SANDBOX_TOKEN


async def register(repository: PushRepository, token: str, environment: str, installation_id: str = "install-1", **kwargs):
    await repository.upsert_device(
        device_token=token,
        installation_id=installation_id,
        environment=environment,
        **kwargs,
    )


class TestDeviceRegistry:
    """Test device registration and enumeration."""

    @pytest.mark.asyncio
    async def test_register_and_list(self, repository):
        await register(repository, SANDBOX_TOKEN, "sandbox")
        await register(repository, PRODUCTION_TOKEN, "production")

        devices = await repository.list_devices()

        assert devices == [
            DeviceRecord(device_token=SANDBOX_TOKEN, environment="sandbox"),
            DeviceRecord(device_token=PRODUCTION_TOKEN, environment="production"),
        ]

    @pytest.mark.asyncio
    async def test_enumeration_follows_registration_order(self, repository):
        """Test devices come back in first-registration order, not token order."""
        await register(repository, OTHER_PRODUCTION_TOKEN, "production")
        await register(repository, SANDBOX_TOKEN, "sandbox")
        await register(repository, OTHER_PRODUCTION_TOKEN, "production", device_name="renamed")

        devices = await repository.list_devices()

        assert [d.device_token for d in devices] == [OTHER_PRODUCTION_TOKEN, SANDBOX_TOKEN]

    @pytest.mark.asyncio
    async def test_empty_registry(self, repository):
        assert await repository.list_devices() == []

    @pytest.mark.asyncio
    async def test_reregister_updates_metadata(self, repository):
        """Test registering a known token updates it instead of duplicating it."""
        await register(repository, PRODUCTION_TOKEN, "sandbox", device_name="Old Name", app_version="1.0")
        await register(repository, PRODUCTION_TOKEN, "production", device_name="New Name", app_version="1.1")

        devices = await repository.list_devices()
        stats = await repository.stats()

        assert devices == [DeviceRecord(PRODUCTION_TOKEN, "production")]
        assert stats.total_devices == 1
        assert stats.production_devices == 1
        assert stats.sandbox_devices == 0

    @pytest.mark.asyncio
    async def test_invalid_environment_rejected_by_store(self, repository):
        with pytest.raises(StorageUnavailableError, match="Failed to register device"):
            await register(repository, PRODUCTION_TOKEN, "staging")


class TestPushHistory:
    """Test push history records."""

    @pytest.mark.asyncio
    async def test_record_push_returns_id(self, repository):
        await register(repository, PRODUCTION_TOKEN, "production")

        first = await repository.record_push(PRODUCTION_TOKEN, "apns-1", "T", "B", json.dumps({"k": "v"}))
        second = await repository.record_push(PRODUCTION_TOKEN, "apns-2", None, None, "null")

        assert second > first

    @pytest.mark.asyncio
    async def test_list_pushes_for_installation(self, repository):
        """Test pushes are scoped to an installation and returned newest first."""
        await register(repository, PRODUCTION_TOKEN, "production", installation_id="install-1")
        await register(repository, OTHER_PRODUCTION_TOKEN, "production", installation_id="install-2")

        await repository.record_push(PRODUCTION_TOKEN, "apns-1", "first", None, "null")
        await repository.record_push(OTHER_PRODUCTION_TOKEN, "apns-other", "other", None, "null")
        await repository.record_push(PRODUCTION_TOKEN, "apns-2", "second", None, "null")

        pushes = await repository.list_pushes("install-1")

        assert [p.apns_id for p in pushes] == ["apns-2", "apns-1"]
        assert all(p.device_token == PRODUCTION_TOKEN for p in pushes)

    @pytest.mark.asyncio
    async def test_list_pushes_unknown_installation(self, repository):
        assert await repository.list_pushes("nobody") == []

    @pytest.mark.asyncio
    async def test_get_push_with_device(self, repository):
        await register(repository, SANDBOX_TOKEN, "sandbox", device_name="Test iPhone", device_type="iPhone")
        push_id = await repository.record_push(SANDBOX_TOKEN, "apns-1", "T", "B", '{"k": "v"}')

        push = await repository.get_push(push_id)

        assert push is not None
        assert push.id == push_id
        assert push.title == "T"
        assert push.payload == '{"k": "v"}'
        assert push.device_name == "Test iPhone"
        assert push.device_type == "iPhone"
        assert push.environment == "sandbox"

    @pytest.mark.asyncio
    async def test_get_push_for_unregistered_token(self, repository):
        """Test history outlives the device row it was sent to."""
        push_id = await repository.record_push(PRODUCTION_TOKEN, "apns-1", "T", None, "null")

        push = await repository.get_push(push_id)

        assert push is not None
        assert push.device_token == PRODUCTION_TOKEN
        assert push.environment is None

    @pytest.mark.asyncio
    async def test_get_push_missing(self, repository):
        assert await repository.get_push(999) is None

    @pytest.mark.asyncio
    async def test_stats(self, repository):
        await register(repository, SANDBOX_TOKEN, "sandbox")
        await register(repository, PRODUCTION_TOKEN, "production")
        await register(repository, OTHER_PRODUCTION_TOKEN, "production")
        await repository.record_push(PRODUCTION_TOKEN, "apns-1", None, None, "null")

        stats = await repository.stats()

        assert stats.total_devices == 3
        assert stats.sandbox_devices == 1
        assert stats.production_devices == 2
        assert stats.total_pushes == 1


class TestStorageUnavailable:
    """Test query failures surface as StorageUnavailableError."""

    @pytest.fixture
    async def bare_repository(self, tmp_path):
        """Repository over a database whose schema was never created."""
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        yield PushRepository(database)
        await database.dispose()

    @pytest.mark.asyncio
    async def test_list_devices(self, bare_repository):
        with pytest.raises(StorageUnavailableError, match="Database error"):
            await bare_repository.list_devices()

    @pytest.mark.asyncio
    async def test_record_push(self, bare_repository):
        with pytest.raises(HistoryWriteError):
            await bare_repository.record_push(PRODUCTION_TOKEN, "apns-1", None, None, "null")

    @pytest.mark.asyncio
    async def test_ping_does_not_need_schema(self, bare_repository):
        # ping touches no table, so only a broken connection fails it
        await bare_repository.ping()
