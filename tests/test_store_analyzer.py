"""Tests for the analysis pipeline with the network and the AI mocked out."""

from unittest.mock import MagicMock, patch

import pytest

from storescore.exceptions import StoreFetchError, ValidationError
from storescore.services.scraper import WebScraper
from storescore.services.store_analyzer import StoreAnalyzer

STOREFRONT = """
<html>
  <head>
    <title>Candle Co | Hand-poured candles</title>
    <script src="https://cdn.shopify.com/s/theme.js"></script>
  </head>
  <body>
    <h1>Hand-poured soy candles</h1>
    <a href="/policies/refund-policy">Refund policy</a>
    <a href="https://instagram.com/candleco">Instagram</a>
    <p>Questions? hello@candle.example</p>
  </body>
</html>
"""

CATALOG = [{
    "title": "Amber Candle",
    "body_html": "<p>Warm amber scent.</p>",
    "images": [{"src": "a.jpg"}],
    "variants": [{"price": "18.00"}],
}]


@pytest.fixture
def ai():
    ai = MagicMock()
    ai.analyze_store.return_value = {"overallScore": 71}
    return ai


@pytest.fixture
def scraper():
    scraper = WebScraper()
    yield scraper
    scraper.close()


def test_shopify_store_prompt_includes_signals_and_catalog(scraper, ai):
    analyzer = StoreAnalyzer(scraper=scraper, ai=ai, shopify=MagicMock())

    with patch.object(scraper, "fetch_html", return_value=STOREFRONT) as fetch, \
            patch.object(scraper, "get_products_json", return_value=CATALOG):
        result = analyzer.analyze_shopify_store("candle.example/", include_screenshot=False)

    fetch.assert_called_once_with("https://candle.example")
    assert result["overallScore"] == 71
    assert len(result["contentHash"]) == 32
    assert "screenshot" not in result

    data = ai.analyze_store.call_args.args[0]
    assert data["store_type"] == "shopify"
    assert data["store_url"] == "https://candle.example"
    content = data["store_content"]
    assert "Hand-poured soy candles" in content
    assert "- Brand: Candle Co" in content
    assert "- Policy pages: refund_policy" in content
    assert "- Social profiles: instagram" in content
    assert "- Contact emails: 1, phones: 0" in content
    assert "Product Catalog (1 products fetched):" in content
    assert "- Amber Candle ($18.00): 1 images, Warm amber scent." in content
    assert "no Shopify markers" not in content


def test_non_shopify_page_is_flagged(scraper, ai):
    analyzer = StoreAnalyzer(scraper=scraper, ai=ai, shopify=MagicMock())

    with patch.object(scraper, "fetch_html", return_value="<html><body>Plain shop</body></html>"), \
            patch.object(scraper, "get_products_json", return_value=[]):
        analyzer.analyze_shopify_store("https://plain.example", include_screenshot=False)

    content = ai.analyze_store.call_args.args[0]["store_content"]
    assert "Note: no Shopify markers were found on this page." in content
    assert "Product Catalog: public catalog not available" in content


def test_fetch_errors_propagate(scraper, ai):
    analyzer = StoreAnalyzer(scraper=scraper, ai=ai, shopify=MagicMock())

    with patch.object(scraper, "fetch_html", side_effect=StoreFetchError("https://gone.example", "404 Not Found")):
        with pytest.raises(StoreFetchError):
            analyzer.analyze_shopify_store("gone.example", include_screenshot=False)
    ai.analyze_store.assert_not_called()


def test_ebay_store_uses_seller_search_page(scraper, ai):
    analyzer = StoreAnalyzer(scraper=scraper, ai=ai, shopify=MagicMock())

    with patch.object(scraper, "fetch_html", return_value="<html><body>Vintage cameras, 120 items</body></html>") as fetch:
        result = analyzer.analyze_ebay_store(" camera_seller ")

    assert fetch.call_args.args[0].endswith("_ssn=camera_seller")
    assert len(result["contentHash"]) == 32
    data = ai.analyze_store.call_args.args[0]
    assert data == {
        "store_content": "Vintage cameras, 120 items",
        "store_type": "ebay",
        "ebay_username": "camera_seller",
    }


def test_ebay_username_required(scraper, ai):
    analyzer = StoreAnalyzer(scraper=scraper, ai=ai, shopify=MagicMock())
    with pytest.raises(ValidationError):
        analyzer.analyze_ebay_store("   ")


def test_connected_store_is_scored_from_admin_data(ai):
    shopify = MagicMock()
    shopify.get_shop_info.return_value = {
        "name": "Demo Shop",
        "myshopify_domain": "demo-shop.myshopify.com",
        "currency": "USD",
        "primary_domain": {"host": "demo.example", "ssl_enabled": True},
    }
    shopify.fetch_store_products.return_value = CATALOG
    analyzer = StoreAnalyzer(scraper=MagicMock(), ai=ai, shopify=shopify)
    store = {"isConnected": True, "shopifyDomain": "demo-shop.myshopify.com", "shopifyAccessToken": "shpat_demo"}

    result = analyzer.analyze_connected_shopify_store(store, {"optimized_products_count": 2})

    assert result["shopInfo"] == {"name": "Demo Shop", "domain": "demo-shop.myshopify.com", "currency": "USD"}
    assert result["productsAnalyzed"] == 1
    data = ai.analyze_store.call_args.args[0]
    assert data["store_url"] == "https://demo.example"
    assert data["optimization_context"] == {"optimized_products_count": 2}
    assert "SHOPIFY STORE ANALYSIS - Demo Shop" in data["store_content"]
    assert "- Amber Candle | price 18.00 | 1 images | Warm amber scent." in data["store_content"]


def test_connected_analysis_requires_connection(ai):
    analyzer = StoreAnalyzer(scraper=MagicMock(), ai=ai, shopify=MagicMock())
    with pytest.raises(ValidationError):
        analyzer.analyze_connected_shopify_store({"isConnected": False, "shopifyDomain": "demo-shop.myshopify.com"})
