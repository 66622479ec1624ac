"""Tests for storefront parsing helpers (no network access)."""

import asyncio
import base64

from storescore.services.scraper import WebScraper, build_ebay_store_url
from storescore.services import screenshot
from storescore.services.screenshot import capture_store_screenshot, generate_placeholder_screenshot

PAGE = """
<html><head>
<title>Glow Goods - Skincare</title>
<script>window.Shopify = {}; Shopify.theme = {"name": "Dawn"};</script>
<style>.hidden { display: none }</style>
</head><body>
<h1>Glow Goods</h1>
<p>Clean skincare   for everyone.</p>
<a href="/policies/refund-policy">Refund policy</a>
<a href="/pages/contact">Contact us</a>
<a href="https://instagram.com/glowgoods">Instagram</a>
<a href="mailto:hello@glowgoods.example">Email</a>
<p>Call +1 (555) 123-4567</p>
</body></html>
"""


def test_ebay_store_url_quotes_username():
    assert build_ebay_store_url(" vintage finds ") == (
        "https://www.ebay.com/sch/i.html?_nkw=&_armrs=1&_ipg=&_from=&_ssn=vintage%20finds"
    )


def test_detects_shopify_markers():
    scraper = WebScraper()
    assert scraper.is_shopify_store(PAGE)
    assert not scraper.is_shopify_store("<html><body>plain site</body></html>")
    assert not scraper.is_shopify_store("")


def test_visible_text_drops_scripts_and_styles():
    text = WebScraper().extract_visible_text(PAGE)

    assert "Glow Goods Clean skincare for everyone." in text
    assert "window.Shopify" not in text
    assert "display: none" not in text


def test_trust_signals():
    signals = WebScraper().collect_trust_signals(PAGE, "https://glow.example")

    assert signals["brand_name"] == "Glow Goods"
    assert signals["policies"]["refund_policy"] == "https://glow.example/policies/refund-policy"
    assert signals["policies"]["contact_page"] == "https://glow.example/pages/contact"
    assert signals["social"]["instagram"] == "https://instagram.com/glowgoods"
    assert "hello@glowgoods.example" in signals["contact"]["emails"]
    assert signals["https"] is True


def test_summarize_products():
    summary = WebScraper().summarize_products([
        {
            "title": "Vitamin C Serum",
            "body_html": "<p>Brightening serum</p>",
            "variants": [{"price": "29.00"}],
            "images": [{}, {}],
        },
        {"title": "Gift Card", "variants": [], "images": []},
    ])

    lines = summary.splitlines()
    assert lines[0] == "- Vitamin C Serum ($29.00): 2 images, Brightening serum"
    assert lines[1] == "- Gift Card: 0 images"


def test_screenshot_placeholder_when_disabled():
    encoded = capture_store_screenshot("https://demo.myshopify.com")

    assert encoded == generate_placeholder_screenshot("https://demo.myshopify.com")
    svg = base64.b64decode(encoded).decode("utf-8")
    assert "Shopify Store" in svg
    assert "demo.myshopify.com" in svg


def test_screenshot_from_a_coroutine_runs_off_the_loop(monkeypatch):
    calls = []

    def fake_capture(url):
        try:
            asyncio.get_running_loop()
            calls.append("on loop")
        except RuntimeError:
            calls.append("off loop")
        return b"jpeg-bytes"

    monkeypatch.setattr(screenshot.settings, "ENABLE_SCREENSHOTS", True)
    monkeypatch.setattr(screenshot, "_capture", fake_capture)

    async def analyze():
        return capture_store_screenshot("https://demo.myshopify.com")

    encoded = asyncio.run(analyze())

    assert calls == ["off loop"]
    assert base64.b64decode(encoded) == b"jpeg-bytes"


def test_placeholder_escapes_the_domain():
    svg = base64.b64decode(generate_placeholder_screenshot("https://a&b<c.example")).decode("utf-8")

    assert "a&amp;b&lt;c.example" in svg
    assert "<c.example" not in svg
