"""Tests for storefront fingerprinting and change detection."""

from unittest.mock import MagicMock

from storescore.services.change_detector import (
    create_ebay_fingerprint,
    create_store_fingerprint,
    has_store_changed,
)

HOMEPAGE = """
<html><head>
<title>Candle Co | Hand poured candles</title>
<meta name="description" content="Small batch soy candles">
</head><body>
<header></header><nav></nav>
<section>Shop our collection</section>
<div class="product">Lavender candle $24</div>
<footer></footer>
</body></html>
"""


def test_fingerprint_is_stable_for_same_content():
    first = create_store_fingerprint(HOMEPAGE, "https://candle.example")
    second = create_store_fingerprint(HOMEPAGE, "https://candle.example")

    assert first["content_hash"] == second["content_hash"]
    assert len(first["content_hash"]) == 32
    assert first["key_elements"]["title"] == "Candle Co | Hand poured candles"
    assert first["key_elements"]["description"] == "Small batch soy candles"


def test_fingerprint_changes_with_title():
    original = create_store_fingerprint(HOMEPAGE, "https://candle.example")
    retitled = create_store_fingerprint(
        HOMEPAGE.replace("Candle Co |", "Candle Company |"), "https://candle.example"
    )
    assert original["content_hash"] != retitled["content_hash"]


def test_fingerprint_changes_with_layout():
    original = create_store_fingerprint(HOMEPAGE, "https://candle.example")
    extra_section = create_store_fingerprint(
        HOMEPAGE.replace("</footer>", "</footer><section>New arrivals</section>"), "https://candle.example"
    )
    assert original["content_hash"] != extra_section["content_hash"]


def test_ebay_fingerprint_only_hashes_leading_text():
    base = "x" * 1000
    assert (create_ebay_fingerprint("seller", base + "tail one")["content_hash"]
            == create_ebay_fingerprint("seller", base + "tail two")["content_hash"])
    assert (create_ebay_fingerprint("seller", base)["content_hash"]
            != create_ebay_fingerprint("other", base)["content_hash"])


def test_no_previous_analysis_counts_as_changed():
    db = MagicMock()
    db.get_latest_analysis_for_url.return_value = None

    changed, previous = has_store_changed(db, "https://candle.example", "abc", user_id=1)

    assert changed is True
    assert previous is None
    db.get_latest_analysis_for_url.assert_called_once_with("https://candle.example", user_id=1)


def test_matching_hash_is_unchanged():
    db = MagicMock()
    db.get_latest_analysis_for_url.return_value = {"id": 7, "contentHash": "abc"}

    changed, previous = has_store_changed(db, "https://candle.example", "abc")

    assert changed is False
    assert previous["id"] == 7


def test_lookup_error_counts_as_changed():
    db = MagicMock()
    db.get_latest_analysis_for_url.side_effect = RuntimeError("database down")

    assert has_store_changed(db, "https://candle.example", "abc") == (True, None)
