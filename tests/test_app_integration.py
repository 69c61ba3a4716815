"""End-to-end tests through the application lifespan with a real SQLite store."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from psh_server.config import Settings
from psh_server.exceptions import TransportError
from psh_server.services.environment_router import EnvironmentRouter

from conftest import OTHER_PRODUCTION_TOKEN, PRODUCTION_TOKEN, SANDBOX_TOKEN, make_transport


@pytest.fixture
def transports():
    return {"sandbox": make_transport("sandbox"), "production": make_transport("production")}


@pytest.fixture
def client(tmp_path, monkeypatch, transports):
    """Run the real app with mocked APNs transports."""
    from psh_server import main

    monkeypatch.setattr(
        main,
        "settings",
        Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}", dispatch_concurrency=2),
    )
    monkeypatch.setattr(
        main,
        "build_environment_router",
        lambda settings: EnvironmentRouter(sandbox=transports["sandbox"], production=transports["production"]),
    )

    with TestClient(main.app) as test_client:
        yield test_client


def register(client: TestClient, token: str, environment: str, installation_id: str = "install-1") -> None:
    response = client.post(
        "/register",
        json={"device_token": token, "installation_id": installation_id, "environment": environment},
    )
    assert response.status_code == 200


def test_send_without_devices(client: TestClient, transports) -> None:
    response = client.post("/send", json={"title": "Hello"})

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "No devices registered"}
    transports["production"].send.assert_not_awaited()


def test_register_send_and_history(client: TestClient, transports) -> None:
    """Test a broadcast reaches both environments and is recorded per device."""
    register(client, SANDBOX_TOKEN, "sandbox")
    register(client, PRODUCTION_TOKEN, "production")
    register(client, OTHER_PRODUCTION_TOKEN, "production", installation_id="install-2")
    transports["production"].send.side_effect = [
        "production-apns-id",
        TransportError("410: Unregistered", context={"endpoint": "production"}),
    ]

    response = client.post(
        "/send",
        json={"title": "Deploy", "body": "Finished", "data": {"build": 7}},
        headers={"X-Request-ID": "trace-1"},
    )

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "trace-1"
    data = response.json()
    assert data["success"] is True
    assert data["sent"] == 2
    assert data["failed"] == 1
    assert [r["device_token"] for r in data["results"]] == [SANDBOX_TOKEN, PRODUCTION_TOKEN, OTHER_PRODUCTION_TOKEN]
    assert data["results"][2]["error"] == "410: Unregistered"

    stats = client.get("/stats").json()
    assert stats == {
        "total_devices": 3,
        "sandbox_devices": 1,
        "production_devices": 2,
        "total_pushes": 2,
    }

    pushes = client.get("/pushes", params={"installation_id": "install-1"}).json()["pushes"]
    assert {p["device_token"] for p in pushes} == {SANDBOX_TOKEN, PRODUCTION_TOKEN}
    assert all(p["payload"] == '{"build": 7}' for p in pushes)

    detail = client.get(f"/pushes/{pushes[0]['id']}").json()
    assert detail["title"] == "Deploy"
    assert detail["environment"] in {"sandbox", "production"}

    assert client.get("/pushes", params={"installation_id": "install-2"}).json() == {"pushes": []}


def test_plain_text_send(client: TestClient, transports) -> None:
    register(client, PRODUCTION_TOKEN, "production")

    response = client.post("/send", content="Backup complete", headers={"content-type": "text/plain"})

    assert response.status_code == 200
    payload = transports["production"].send.await_args.args[1]
    assert payload.to_dict() == {"aps": {"alert": {"body": "Backup complete"}}}


def test_readiness(client: TestClient) -> None:
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
