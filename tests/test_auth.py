"""Tests for registration, login and session handling."""

from datetime import datetime, timedelta

from storescore.config import settings

from conftest import DEFAULT_PASSWORD, register_user


def test_register_creates_user_with_welcome_credits(client):
    """Registering returns the user, a session and sets the session cookie."""
    response = client.post("/api/auth/register", json={
        "email": "New.Owner@Example.com",
        "password": DEFAULT_PASSWORD,
        "firstName": "New",
        "lastName": "Owner",
    })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["email"] == "new.owner@example.com"
    assert data["user"]["aiCredits"] == settings.DEFAULT_NEW_USER_CREDITS
    assert "passwordHash" not in data["user"]
    assert len(data["sessionId"]) == 64
    assert response.cookies.get(settings.SESSION_COOKIE_NAME) == data["sessionId"]


def test_password_is_stored_hashed(client, db_service):
    register_user(client, email="hash@example.com")

    stored = db_service.get_user_by_email("hash@example.com", include_password=True)
    assert stored["passwordHash"] != DEFAULT_PASSWORD
    assert stored["passwordHash"].startswith("$2")


def test_welcome_bonus_is_recorded(client, account, auth_headers):
    response = client.get("/api/credits/transactions", headers=auth_headers)

    assert response.status_code == 200
    transactions = response.json()["data"]
    assert len(transactions) == 1
    assert transactions[0]["type"] == "bonus"
    assert transactions[0]["amount"] == settings.DEFAULT_NEW_USER_CREDITS


def test_duplicate_email_is_rejected(client, account):
    response = client.post("/api/auth/register", json={
        "email": "OWNER@example.com",
        "password": DEFAULT_PASSWORD,
        "firstName": "Dup",
        "lastName": "User",
    })

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["details"]["field"] == "email"


def test_register_validates_input(client):
    response = client.post("/api/auth/register", json={
        "email": "not-an-email",
        "password": "short",
        "firstName": "",
        "lastName": "User",
    })

    assert response.status_code == 422
    assert response.json()["error"] == "Validation Error"


def test_password_longer_than_bcrypt_limit_is_rejected(client, account):
    response = client.post("/api/auth/register", json={
        "email": "long@example.com",
        "password": "a" * 80,
        "firstName": "Long",
        "lastName": "Password",
    })
    assert response.status_code == 422

    # 37 two-byte characters are 74 bytes
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "é" * 37})
    assert response.status_code == 422


def test_login_and_me(client, account):
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": DEFAULT_PASSWORD})

    assert response.status_code == 200
    session_id = response.json()["data"]["sessionId"]
    assert session_id != account["sessionId"]

    client.cookies.clear()
    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {session_id}"})
    assert me.status_code == 200
    assert me.json()["data"]["id"] == account["user"]["id"]


def test_session_cookie_authenticates(client, account):
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": DEFAULT_PASSWORD})
    assert response.status_code == 200

    # the login cookie is kept by the client
    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "owner@example.com"


def test_wrong_password_is_rejected(client, account):
    response = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "wrong-password"})

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "AuthenticationError"
    assert body["message"] == "Invalid email or password"


def test_unknown_email_is_rejected(client):
    response = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": DEFAULT_PASSWORD})
    assert response.status_code == 401


def test_me_requires_session(client):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-session"}).status_code == 401


def test_logout_invalidates_session(client, account, auth_headers):
    response = client.post("/api/auth/logout", headers=auth_headers)
    assert response.status_code == 200

    assert client.get("/api/auth/me", headers=auth_headers).status_code == 401


def test_expired_session_is_deleted(client, account, db_service):
    db_service.create_session("expired-token", account["user"]["id"], datetime.utcnow() - timedelta(minutes=1))

    response = client.get("/api/auth/me", headers={"Authorization": "Bearer expired-token"})

    assert response.status_code == 401
    assert db_service.get_session_record("expired-token") is None


def test_update_profile(client, auth_headers):
    response = client.put("/api/profile", headers=auth_headers, json={
        "firstName": "Dana-Marie",
        "onboardingCompleted": True,
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["firstName"] == "Dana-Marie"
    assert data["lastName"] == "Lee"
    assert data["onboardingCompleted"] is True
