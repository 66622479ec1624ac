"""Tests for the Shopify app integration: OAuth, webhooks and product routes."""

import base64
import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest

from storescore.api.dependencies import get_shopify_client, get_store_analyzer
from storescore.config import settings
from storescore.exceptions import ShopifyAPIError, ValidationError
from storescore.main import app
from storescore.services.ai_analyzer import normalize_analysis
from storescore.services.shopify_integration import (
    ShopifyClient,
    build_state,
    normalize_shop_domain,
    parse_state,
    transform_product,
    validate_webhook_signature,
    verify_callback_hmac,
)


def _signed_query(params):
    message = "&".join(f"{key}={value}" for key, value in sorted(params.items()))
    digest = hmac.new(settings.SHOPIFY_API_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()
    return dict(params, hmac=digest)


def _webhook_headers(body, topic="app/uninstalled", shop="demo-shop.myshopify.com"):
    digest = hmac.new(settings.SHOPIFY_API_SECRET.encode(), body, hashlib.sha256).digest()
    return {
        "X-Shopify-Hmac-Sha256": base64.b64encode(digest).decode(),
        "X-Shopify-Topic": topic,
        "X-Shopify-Shop-Domain": shop,
    }


@pytest.fixture
def shopify():
    fake = MagicMock()
    app.dependency_overrides[get_shopify_client] = lambda: fake
    return fake


@pytest.fixture
def connected_store(db_service, account):
    return db_service.create_user_store(
        account["user"]["id"],
        name="Demo Shop",
        store_type="shopify",
        store_url="https://demo.example",
        shopify_domain="demo-shop.myshopify.com",
        shopify_access_token="shpat_demo",
        is_connected=True,
        connection_status="connected",
    )


def test_normalize_shop_domain():
    assert normalize_shop_domain("Demo-Shop") == "demo-shop.myshopify.com"
    assert normalize_shop_domain("https://demo-shop.myshopify.com/admin") == "demo-shop.myshopify.com"
    with pytest.raises(ValidationError):
        normalize_shop_domain("evil.example.com")


def test_state_carries_user_and_store():
    assert parse_state(build_state(7, 3)) == (7, 3)
    assert parse_state(build_state(7)) == (7, None)


def test_tampered_state_is_rejected():
    nonce, _, store_id, signature = build_state(7, 3).split(":")
    with pytest.raises(ValidationError):
        parse_state(f"{nonce}:8:{store_id}:{signature}")
    with pytest.raises(ValidationError):
        parse_state("garbage")


def test_callback_hmac():
    params = _signed_query({"code": "abc", "shop": "demo-shop.myshopify.com", "state": "s", "timestamp": "1"})
    assert verify_callback_hmac(params)
    assert not verify_callback_hmac(dict(params, code="other"))
    assert not verify_callback_hmac({"code": "abc"})


def test_webhook_signature():
    body = b'{"id": 1}'
    assert validate_webhook_signature(body, _webhook_headers(body)["X-Shopify-Hmac-Sha256"])
    assert not validate_webhook_signature(b'{"id": 2}', _webhook_headers(body)["X-Shopify-Hmac-Sha256"])
    assert not validate_webhook_signature(body, None)


def test_transform_product_flattens_graphql():
    product = transform_product({
        "id": "gid://shopify/Product/42",
        "title": "Mug",
        "descriptionHtml": "<p>Ceramic</p>",
        "tags": ["kitchen", "gift"],
        "status": "ACTIVE",
        "images": {"edges": [{"node": {"id": "gid://shopify/ProductImage/9", "src": "https://cdn/x.jpg"}}]},
        "variants": {"edges": [{"node": {"id": "gid://shopify/ProductVariant/5", "price": "12.00",
                                         "inventoryQuantity": 3}}]},
    })

    assert product["id"] == "42"
    assert product["tags"] == "kitchen,gift"
    assert product["status"] == "active"
    assert product["images"][0]["id"] == "9"
    assert product["variants"][0] == {
        "id": "5", "title": None, "price": "12.00", "compare_at_price": None, "sku": None,
        "inventory_quantity": 3,
    }


def test_non_json_success_body_raises_shopify_error():
    response = MagicMock(ok=True, status_code=200)
    response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    client = ShopifyClient()
    client.session = MagicMock()
    client.session.request.return_value = response

    with pytest.raises(ShopifyAPIError) as exc_info:
        client.fetch_product("demo-shop.myshopify.com", "shpat_demo", "42")
    assert exc_info.value.details == {"shopify_status": 200}


def test_only_reads_are_retried():
    adapter = ShopifyClient().session.get_adapter("https://demo-shop.myshopify.com")
    assert set(adapter.max_retries.allowed_methods) == {"GET"}


def test_connect_returns_authorize_url(client, auth_headers, db_service):
    store = client.post("/api/stores", headers=auth_headers, json={
        "name": "Demo", "storeUrl": "demo.example", "storeType": "shopify",
    }).json()["data"]

    response = client.post("/api/shopify/connect", headers=auth_headers,
                           json={"shopDomain": "demo-shop", "userStoreId": store["id"]})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["shop"] == "demo-shop.myshopify.com"
    assert data["authUrl"].startswith("https://demo-shop.myshopify.com/admin/oauth/authorize?")
    assert f"client_id={settings.SHOPIFY_API_KEY}" in data["authUrl"]
    assert db_service.get_user_store(store["id"])["connectionStatus"] == "pending"


def test_callback_connects_existing_store(client, account, auth_headers, shopify, db_service):
    store = client.post("/api/stores", headers=auth_headers, json={
        "name": "Demo", "storeUrl": "demo.example", "storeType": "shopify",
    }).json()["data"]
    shopify.exchange_code_for_token.return_value = {"access_token": "shpat_new", "scope": "read_products"}
    shopify.get_shop_info.return_value = {"name": "Demo Shop", "primary_domain": {"host": "demo.example"}}

    params = _signed_query({
        "code": "auth-code",
        "shop": "demo-shop.myshopify.com",
        "state": build_state(account["user"]["id"], store["id"]),
        "timestamp": "1700000000",
    })
    response = client.get("/api/shopify/callback", params=params)

    assert response.status_code == 200, response.text
    connected = response.json()["data"]
    assert connected["id"] == store["id"]
    assert connected["isConnected"] is True
    assert connected["connectionStatus"] == "connected"
    assert "shopifyAccessToken" not in connected
    assert db_service.get_user_store(store["id"], include_token=True)["shopifyAccessToken"] == "shpat_new"


def test_callback_without_store_creates_one(client, account, shopify, db_service):
    shopify.exchange_code_for_token.return_value = {"access_token": "shpat_new", "scope": "read_products"}
    shopify.get_shop_info.return_value = {"name": "Demo Shop", "primary_domain": {"host": "shop.demo.example"}}

    params = _signed_query({
        "code": "auth-code",
        "shop": "demo-shop.myshopify.com",
        "state": build_state(account["user"]["id"]),
        "timestamp": "1700000000",
    })
    response = client.get("/api/shopify/callback", params=params)

    assert response.status_code == 200
    stores = db_service.get_user_stores(account["user"]["id"])
    assert len(stores) == 1
    assert stores[0]["name"] == "Demo Shop"
    assert stores[0]["storeUrl"] == "https://shop.demo.example"
    assert stores[0]["shopifyDomain"] == "demo-shop.myshopify.com"


def test_callback_with_bad_hmac_is_rejected(client, account, shopify):
    params = _signed_query({"code": "auth-code", "shop": "demo-shop.myshopify.com",
                            "state": build_state(account["user"]["id"])})
    params["code"] = "swapped"

    response = client.get("/api/shopify/callback", params=params)

    assert response.status_code == 401
    shopify.exchange_code_for_token.assert_not_called()


def test_products_flag_optimized_items(client, auth_headers, shopify, connected_store, db_service, account):
    db_service.record_product_optimization(account["user"]["id"], connected_store["id"], "1", "title", "a", "b")
    shopify.fetch_store_products.return_value = [{"id": "1", "title": "Mug"}, {"id": "2", "title": "Cup"}]

    response = client.get(f"/api/shopify/products/{connected_store['id']}", headers=auth_headers)

    assert response.status_code == 200
    flags = {p["id"]: p["optimized"] for p in response.json()["data"]}
    assert flags == {"1": True, "2": False}
    shopify.fetch_store_products.assert_called_once_with("demo-shop.myshopify.com", "shpat_demo", 50)


def test_products_require_connection(client, auth_headers, shopify):
    store = client.post("/api/stores", headers=auth_headers, json={
        "name": "Demo", "storeUrl": "demo.example", "storeType": "shopify",
    }).json()["data"]

    response = client.get(f"/api/shopify/products/{store['id']}", headers=auth_headers)
    assert response.status_code == 400


def test_analyze_connected_store_charges_credit(client, auth_headers, connected_store):
    analyzer = MagicMock()
    analyzer.analyze_connected_shopify_store.return_value = dict(
        normalize_analysis({"designScore": 15}), productsAnalyzed=4
    )
    app.dependency_overrides[get_store_analyzer] = lambda: analyzer

    response = client.post(f"/api/shopify/analyze/{connected_store['id']}", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["creditsUsed"] == 1
    assert data["creditsRemaining"] == 24
    assert data["productsAnalyzed"] == 4
    store_arg = analyzer.analyze_connected_shopify_store.call_args.args[0]
    assert store_arg["shopifyAccessToken"] == "shpat_demo"


def test_connected_analysis_is_not_stored_when_charge_fails(client, account, auth_headers, connected_store,
                                                            db_service):
    def spend_then_analyze(store, optimization_context):
        db_service.deduct_credits(account["user"]["id"], 25, "Spent elsewhere")
        return normalize_analysis({"designScore": 15})

    analyzer = MagicMock()
    analyzer.analyze_connected_shopify_store.side_effect = spend_then_analyze
    app.dependency_overrides[get_store_analyzer] = lambda: analyzer

    response = client.post(f"/api/shopify/analyze/{connected_store['id']}", headers=auth_headers)

    assert response.status_code == 402
    assert db_service.get_user_analyses(account["user"]["id"]) == []
    assert db_service.get_user_store(connected_store["id"])["lastAnalyzedAt"] is None


def test_apply_recommendation_escapes_content(client, auth_headers, shopify, connected_store):
    shopify.create_page.return_value = {"id": 99, "title": "Returns"}

    response = client.post("/api/shopify/apply-recommendation", headers=auth_headers, json={
        "storeId": connected_store["id"],
        "recommendationType": "returns",
        "title": "Returns",
        "content": "30 day returns.\n\nFree <b>exchanges</b>.",
    })

    assert response.status_code == 200
    assert "shopifyAccessToken" not in response.json()["data"]["store"]
    body_html = shopify.create_page.call_args.args[3]
    assert body_html == "<p>30 day returns.</p>\n<p>Free &lt;b&gt;exchanges&lt;/b&gt;.</p>"


def test_uninstall_webhook_disconnects_store(client, connected_store, db_service):
    body = json.dumps({"id": 1}).encode()

    response = client.post("/api/webhooks/shopify", content=body, headers=_webhook_headers(body))

    assert response.status_code == 200
    store = db_service.get_user_store(connected_store["id"], include_token=True)
    assert store["isConnected"] is False
    assert store["connectionStatus"] == "disconnected"
    assert store["shopifyAccessToken"] is None


def test_webhook_with_bad_signature_is_rejected(client, connected_store, db_service):
    headers = _webhook_headers(b"original")
    response = client.post("/api/webhooks/shopify", content=b"tampered", headers=headers)

    assert response.status_code == 401
    assert db_service.get_user_store(connected_store["id"])["isConnected"] is True
