"""Tests for the request guards in storescore.api.dependencies."""

from datetime import datetime, timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from storescore.api.dependencies import require_admin, require_credits, require_subscription
from storescore.exceptions import StoreScoreException
from storescore.main import storescore_exception_handler

guarded = FastAPI()
guarded.add_exception_handler(StoreScoreException, storescore_exception_handler)


@guarded.get("/admin")
def admin_only(user=Depends(require_admin)):
    return {"userId": user["id"]}


@guarded.get("/members")
def members_only(user=Depends(require_subscription)):
    return {"userId": user["id"]}


@guarded.get("/expensive")
def expensive(user=Depends(require_credits(5))):
    return {"userId": user["id"]}


@pytest.fixture
def guarded_client():
    with TestClient(guarded) as test_client:
        yield test_client


def test_guards_require_login(guarded_client):
    for path in ("/admin", "/members", "/expensive"):
        response = guarded_client.get(path)
        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"


def test_admin_guard(guarded_client, account, auth_headers, db_service):
    response = guarded_client.get("/admin", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "PermissionDeniedError"

    db_service.update_user(account["user"]["id"], is_admin=True)
    assert guarded_client.get("/admin", headers=auth_headers).status_code == 200


def test_subscription_guard(guarded_client, account, auth_headers, db_service):
    response = guarded_client.get("/members", headers=auth_headers)
    assert response.status_code == 402
    assert response.json()["error"] == "SubscriptionRequiredError"

    db_service.update_user(
        account["user"]["id"],
        subscription_status="trialing",
        trial_ends_at=datetime.utcnow() + timedelta(days=3),
    )
    assert guarded_client.get("/members", headers=auth_headers).json() == {"userId": account["user"]["id"]}


def test_expired_trial_loses_access(guarded_client, account, auth_headers, db_service):
    db_service.update_user(
        account["user"]["id"],
        subscription_status="trialing",
        trial_ends_at=datetime.utcnow() - timedelta(hours=1),
    )
    assert guarded_client.get("/members", headers=auth_headers).status_code == 402


def test_credits_guard(guarded_client, account, auth_headers, db_service):
    assert guarded_client.get("/expensive", headers=auth_headers).status_code == 200

    db_service.deduct_credits(account["user"]["id"], 21, "Spent elsewhere")
    response = guarded_client.get("/expensive", headers=auth_headers)

    assert response.status_code == 402
    assert response.json()["details"] == {"creditsRequired": 5, "creditsAvailable": 4}
