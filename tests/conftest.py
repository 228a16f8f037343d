"""
Pytest configuration and shared fixtures.

Every test gets its own SQLite database file and an application built by
create_app(); the WhatsApp transport is replaced by an in-memory fake.
"""

import pytest
from fastapi.testclient import TestClient

from storefront.config import Settings, get_settings
from storefront.main import create_app
from storefront.whatsapp import get_whatsapp_client
from tests.helpers import TEST_VERIFY_TOKEN, FakeWhatsApp, login, register

# Clear settings cache so a developer's .env does not leak into tests
get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        LOG_LEVEL="WARNING",
        PASSWORD_HASH_TIME_COST=1,
        WHATSAPP_VERIFY_TOKEN=TEST_VERIFY_TOKEN,
        WHATSAPP_SENDER_NAME="Test Store",
    )


@pytest.fixture
def fake_whatsapp() -> FakeWhatsApp:
    return FakeWhatsApp()


@pytest.fixture
def client(settings, fake_whatsapp):
    """Create test client with fresh database for each test."""
    app = create_app(settings)
    app.dependency_overrides[get_whatsapp_client] = lambda: fake_whatsapp

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def database(client):
    """The Database handle owned by the running app."""
    return client.app.state.database


@pytest.fixture
def auth_headers(client):
    """Bearer headers for a freshly registered user (no session cookie kept)."""
    assert register(client).status_code == 200
    response = login(client)
    assert response.status_code == 200
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def error_client(settings, fake_whatsapp):
    """Client that returns 500 responses instead of re-raising server errors."""
    app = create_app(settings)
    app.dependency_overrides[get_whatsapp_client] = lambda: fake_whatsapp

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
