"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from relay import deps
from relay.config import AppConfig
from relay.main import build_services

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def config(tmp_path) -> AppConfig:
    config = AppConfig()
    config.admin.token = ADMIN_TOKEN
    config.publish.mirror_file = str(tmp_path / "server-url.json")
    config.logging.level = "warning"
    return config


@pytest.fixture(autouse=True)
def services(config):
    """Initialize server components for every test, using a temp directory."""
    services = build_services(config)
    deps.install(services)

    yield services

    # Cleanup
    deps.install(None)


@pytest.fixture
def admin_headers() -> dict:
    return {"x-admin-token": ADMIN_TOKEN}


@pytest.fixture
async def client():
    from relay.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
