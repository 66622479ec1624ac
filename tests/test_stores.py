"""Tests for saved store management."""

from conftest import register_user


def _create_store(client, headers, **overrides):
    payload = {"name": "Candle Co", "storeUrl": "candle.example/", "storeType": "shopify"}
    payload.update(overrides)
    return client.post("/api/stores", headers=headers, json=payload)


def test_create_and_list_stores(client, auth_headers):
    response = _create_store(client, auth_headers)

    assert response.status_code == 201
    store = response.json()["data"]
    assert store["storeUrl"] == "https://candle.example"
    assert store["storeType"] == "shopify"
    assert store["isConnected"] is False
    assert "shopifyAccessToken" not in store

    listing = client.get("/api/stores", headers=auth_headers).json()
    assert listing["total"] == 1
    assert listing["data"][0]["id"] == store["id"]


def test_ebay_store_requires_username(client, auth_headers):
    response = _create_store(client, auth_headers, storeType="ebay", storeUrl=None)
    assert response.status_code == 422

    response = _create_store(client, auth_headers, storeType="ebay", storeUrl=None, ebayUsername="vintagefinds")
    assert response.status_code == 201
    assert response.json()["data"]["ebayUsername"] == "vintagefinds"


def test_store_routes_require_login(client):
    assert client.get("/api/stores").status_code == 401
    assert _create_store(client, {}).status_code == 401


def test_get_store_includes_recent_analyses(client, auth_headers):
    store = _create_store(client, auth_headers).json()["data"]

    response = client.get(f"/api/stores/{store['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["data"]["recentAnalyses"] == []


def test_update_store_changes_only_given_fields(client, auth_headers):
    store = _create_store(client, auth_headers).json()["data"]

    response = client.put(f"/api/stores/{store['id']}", headers=auth_headers, json={"name": "Candle Company"})

    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["name"] == "Candle Company"
    assert updated["storeUrl"] == "https://candle.example"


def test_update_cannot_drop_the_store_target(client, auth_headers):
    store = _create_store(client, auth_headers).json()["data"]

    response = client.put(f"/api/stores/{store['id']}", headers=auth_headers, json={"storeType": "ebay"})

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert client.get(f"/api/stores/{store['id']}", headers=auth_headers).json()["data"]["storeType"] == "shopify"

    response = client.put(f"/api/stores/{store['id']}", headers=auth_headers,
                          json={"storeType": "ebay", "ebayUsername": "candleco"})
    assert response.status_code == 200
    assert response.json()["data"]["ebayUsername"] == "candleco"


def test_other_users_store_is_not_found(client, auth_headers):
    store = _create_store(client, auth_headers).json()["data"]
    intruder = register_user(client, email="intruder@example.com")

    assert client.get(f"/api/stores/{store['id']}", headers=intruder["headers"]).status_code == 404
    assert client.put(f"/api/stores/{store['id']}", headers=intruder["headers"],
                      json={"name": "Mine now"}).status_code == 404
    assert client.delete(f"/api/stores/{store['id']}", headers=intruder["headers"]).status_code == 404

    assert client.get(f"/api/stores/{store['id']}", headers=auth_headers).json()["data"]["name"] == "Candle Co"


def test_delete_store(client, auth_headers):
    store = _create_store(client, auth_headers).json()["data"]

    response = client.delete(f"/api/stores/{store['id']}", headers=auth_headers)

    assert response.status_code == 200
    missing = client.get(f"/api/stores/{store['id']}", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFoundError"
