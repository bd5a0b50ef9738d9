"""Shared fixtures: a controllable clock, isolated settings and an app client."""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from bugtracker.config import SecuritySettings, Settings, StorageSettings
from bugtracker.main import create_app
from bugtracker.models.enums import Role
from bugtracker.models.identity import Identity


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_760_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        public_base_url="",
        security=SecuritySettings(jwt_secret="test-secret", session_ttl_seconds=3600, download_ttl_seconds=900),
        storage=StorageSettings(
            upload_dir=str(tmp_path / "uploads"),
            max_upload_bytes=1024,
            allowed_mimetypes="text/plain,image/png,application/pdf",
        ),
    )


@pytest.fixture()
def app(settings, clock):
    return create_app(settings, clock=clock)


@pytest.fixture()
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def login(client: TestClient, user_id: str, role: str) -> dict[str, str]:
    """Log in through the API and return an Authorization header."""
    resp = client.post("/auth/login", json={"id": user_id, "role": role})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture()
def login_as(client):
    """Factory: login_as("carol", "developer") -> headers."""
    def _login(user_id: str, role: str) -> dict[str, str]:
        return login(client, user_id, role)
    return _login


@pytest.fixture()
def admin_headers(client) -> dict[str, str]:
    return login(client, "alice", "admin")


@pytest.fixture()
def dev_headers(client) -> dict[str, str]:
    return login(client, "bob", "developer")


@pytest.fixture()
def admin() -> Identity:
    return Identity(id="alice", role=Role.ADMIN)


@pytest.fixture()
def developer() -> Identity:
    return Identity(id="bob", role=Role.DEVELOPER)
