import hashlib
import json
import logging
import re
from typing import Optional, Dict, Any, Tuple, List

logger = logging.getLogger(__name__)

TITLE_PATTERN = re.compile(r'<title[^>]*>(.*?)</title>', re.IGNORECASE | re.DOTALL)
META_DESCRIPTION_PATTERNS = [
    re.compile(r'<meta[^>]*name="description"[^>]*content="([^"]*)"[^>]*>', re.IGNORECASE),
    re.compile(r'<meta[^>]*content="([^"]*)"[^>]*name="description"[^>]*>', re.IGNORECASE),
]
PRODUCT_PATTERN = re.compile(r'product|item|price|\$\d+|add.to.cart', re.IGNORECASE)
CATEGORY_PATTERN = re.compile(r'category|collection|department|shop|menu', re.IGNORECASE)
PRICE_PATTERN = re.compile(r'\$\d+|\d+\.\d+|price|cost|sale', re.IGNORECASE)

MAX_PRODUCT_MARKERS = 1000
MAX_SECTIONS = 20
HASH_LENGTH = 32


def _hash(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def _first_match(html: str, patterns) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(html)
        if match:
            return match.group(1).strip()
    return None


def _structural_elements(html: str) -> List[str]:
    """Counts of layout landmarks, so theme changes alter the hash"""
    headers = len(re.findall(r'<header', html, re.IGNORECASE))
    navs = len(re.findall(r'<nav', html, re.IGNORECASE))
    footers = len(re.findall(r'<footer', html, re.IGNORECASE))
    sections = min(len(re.findall(r'<section', html, re.IGNORECASE)), MAX_SECTIONS)
    return [f"h:{headers}", f"n:{navs}", f"f:{footers}", f"s:{sections}"]


def create_store_fingerprint(html: str, store_url: str) -> Dict[str, Any]:
    """
    Hash the parts of a storefront that matter for scoring

    Args:
        html: raw homepage HTML
        store_url: the URL it was fetched from

    Returns:
        dict: content_hash (32 hex chars) and the key_elements it was built from
    """
    title = _first_match(html, [TITLE_PATTERN]) or "No title"
    description = _first_match(html, META_DESCRIPTION_PATTERNS) or "No description"

    product_count = min(len(PRODUCT_PATTERN.findall(html)), MAX_PRODUCT_MARKERS)
    main_categories = list(dict.fromkeys(CATEGORY_PATTERN.findall(html)[:10]))

    price_markers = len(PRICE_PATTERN.findall(html))
    if price_markers > 100:
        price_range = "high"
    elif price_markers > 20:
        price_range = "medium"
    else:
        price_range = "low"

    fingerprint = {
        "url": store_url,
        "title": title[:200],
        "description": description[:300],
        "productCount": product_count,
        "mainCategories": main_categories,
        "priceRange": price_range,
        "contentLength": len(html),
        "structuralElements": _structural_elements(html),
    }

    return {
        "content_hash": _hash(json.dumps(fingerprint, separators=(",", ":"))),
        "key_elements": {
            "title": fingerprint["title"],
            "description": fingerprint["description"],
            "product_count": product_count,
            "main_categories": main_categories,
            "price_range": price_range,
        },
    }


def create_ebay_fingerprint(username: str, store_data: str) -> Dict[str, Any]:
    """Fingerprint for an eBay seller page; only the first 1000 chars are hashed"""
    return {
        "content_hash": _hash(f"ebay:{username}:{store_data[:1000]}"),
        "key_elements": {
            "title": f"eBay Store: {username}",
            "description": f"eBay store analysis for user {username}",
            "product_count": 0,
            "main_categories": ["eBay Marketplace"],
            "price_range": "varied",
        },
    }


def has_store_changed(db_service, store_url: str, current_hash: str,
                      user_id: Optional[int] = None) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """
    Compare a fresh hash with the latest stored analysis of the same URL

    Returns:
        (changed, last_analysis). Any lookup error counts as changed.
    """
    try:
        last_analysis = db_service.get_latest_analysis_for_url(store_url, user_id=user_id)
    except Exception as e:
        logger.error(f"Error checking store changes for {store_url}: {e}")
        return True, None

    if not last_analysis or not last_analysis.get("contentHash"):
        return True, None

    changed = last_analysis["contentHash"] != current_hash
    logger.info(
        f"Change detection for {store_url}: previous={last_analysis['contentHash']} "
        f"current={current_hash} changed={changed}"
    )
    return changed, last_analysis
