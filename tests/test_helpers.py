"""Tests for the scoring and formatting helpers."""

from datetime import datetime, timedelta

from storescore.utils.helpers import (
    calculate_health_score,
    clamp,
    clean_text,
    extract_domain,
    format_currency,
    format_relative_time,
    generate_session_title,
    get_weakest_areas,
    is_valid_shop_domain,
    normalize_store_url,
    score_rating,
)


def test_normalize_store_url_adds_https_and_strips_slash():
    assert normalize_store_url("example-store.com/") == "https://example-store.com"
    assert normalize_store_url("  http://shop.example.com  ") == "http://shop.example.com"
    assert normalize_store_url("") == ""


def test_extract_domain_lowercases_host():
    assert extract_domain("https://Shop.Example.com/products/x") == "shop.example.com"
    assert extract_domain("demo.myshopify.com") == "demo.myshopify.com"


def test_clamp_coerces_and_bounds_values():
    assert clamp("17.6", 0, 20, 5) == 18
    assert clamp(35, 0, 20, 5) == 20
    assert clamp(-3, 0, 20, 5) == 0
    assert clamp("n/a", 0, 20, 5) == 5
    assert clamp(None, 0, 20, 5) == 5
    assert clamp(True, 0, 20, 5) == 5
    assert clamp(float("inf"), 0, 20, 5) == 5
    assert clamp(float("-inf"), 0, 20, 5) == 5
    assert clamp(float("nan"), 0, 20, 5) == 5


def test_clean_text_collapses_whitespace_and_truncates_on_word():
    assert clean_text("  hello \n\n  world  ") == "hello world"
    assert clean_text("alpha beta gamma", 12) == "alpha beta..."


def test_health_score_is_percentage_of_maximum():
    analysis = {
        "designScore": 20, "productScore": 25, "seoScore": 20,
        "trustScore": 15, "pricingScore": 10, "conversionScore": 10,
    }
    assert calculate_health_score(analysis) == 100

    analysis = {
        "designScore": 10, "productScore": 12, "seoScore": 10,
        "trustScore": 7, "pricingScore": 5, "conversionScore": 5,
    }
    assert calculate_health_score(analysis) == 49


def test_weakest_areas_sorted_by_ratio():
    analysis = {
        "designScore": 18, "productScore": 5, "seoScore": 8,
        "trustScore": 14, "pricingScore": 9, "conversionScore": 2,
    }
    # conversion 0.2, products 0.2, seo 0.4; the rest are above 60%
    assert get_weakest_areas(analysis) == ["products", "conversion", "seo"]


def test_score_rating_buckets():
    assert score_rating(18, 20) == "excellent"
    assert score_rating(13, 20) == "good"
    assert score_rating(9, 20) == "needs_work"
    assert score_rating(2, 20) == "poor"
    assert score_rating(5, 0) == "poor"


def test_format_currency():
    assert format_currency(4900) == "$49.00"
    assert format_currency(123456) == "$1,234.56"
    assert format_currency(None) is None


def test_format_relative_time():
    now = datetime(2024, 5, 1, 12, 0, 0)
    assert format_relative_time(now - timedelta(seconds=20), now) == "Just now"
    assert format_relative_time(now - timedelta(minutes=5), now) == "5 minutes ago"
    assert format_relative_time(now - timedelta(hours=3), now) == "3 hours ago"
    assert format_relative_time(now - timedelta(days=2), now) == "2 days ago"
    assert format_relative_time(now - timedelta(minutes=1), now) == "1 minute ago"
    assert format_relative_time(now - timedelta(hours=1), now) == "1 hour ago"
    assert format_relative_time(now - timedelta(days=1), now) == "1 day ago"
    assert format_relative_time(now - timedelta(days=30), now) == "2024-04-01"


def test_shop_domain_validation():
    assert is_valid_shop_domain("demo-shop.myshopify.com")
    assert not is_valid_shop_domain("demo-shop.com")
    assert not is_valid_shop_domain("")


def test_session_titles():
    assert generate_session_title("scaling") == "Scaling Strategy"
    assert generate_session_title("unknown") == "New Chat"
    assert generate_session_title()
