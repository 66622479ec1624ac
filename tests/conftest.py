"""Shared fixtures for the StoreScore test suite.

The environment is configured before ``storescore`` is imported so the
settings object picks up a throwaway SQLite database and test secrets.
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="storescore-tests-")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'storescore.db')}"
os.environ["ENABLE_SCREENSHOTS"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_storescore"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_storescore"
os.environ["SHOPIFY_API_KEY"] = "shopify-test-key"
os.environ["SHOPIFY_API_SECRET"] = "shopify-test-secret"
os.environ["DASHBOARD_URL"] = ""

import pytest
from fastapi.testclient import TestClient

from storescore.main import app
from storescore.models.database import create_tables, drop_tables
from storescore.services.database_service import DatabaseService
from storescore.services.database_initialization import seed_subscription_plans

DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture(autouse=True)
def fresh_database():
    """Every test starts from empty tables plus the default plans."""
    drop_tables()
    create_tables()
    seed_subscription_plans()
    yield


@pytest.fixture
def client(fresh_database):
    app.dependency_overrides.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def db_service():
    return DatabaseService()


def register_user(client, email="owner@example.com", first_name="Dana", last_name="Lee"):
    """Register through the API and return ``{"user", "sessionId", "headers"}``.

    The session cookie is dropped so each request picks its user through the
    bearer header alone.
    """
    response = client.post("/api/auth/register", json={
        "email": email,
        "password": DEFAULT_PASSWORD,
        "firstName": first_name,
        "lastName": last_name,
    })
    assert response.status_code == 201, response.text
    client.cookies.clear()

    data = response.json()["data"]
    return {
        "user": data["user"],
        "sessionId": data["sessionId"],
        "headers": {"Authorization": f"Bearer {data['sessionId']}"},
    }


@pytest.fixture
def account(client):
    return register_user(client)


@pytest.fixture
def auth_headers(account):
    return account["headers"]
