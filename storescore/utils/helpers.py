import random
from typing import Optional, List, Dict, Any, Union
from urllib.parse import urlparse
from datetime import datetime
import re

from ..config import SCORE_MAXIMA, TOTAL_MAX_SCORE, SCORE_THRESHOLDS

SHOP_DOMAIN_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")

# Display names used for the weak-area list; product is pluralised.
AREA_NAMES = {
    "design": "design",
    "product": "products",
    "seo": "seo",
    "trust": "trust",
    "pricing": "pricing",
    "conversion": "conversion",
}

SESSION_TITLES = [
    "Store Strategy Chat",
    "Optimization Discussion",
    "Growth Planning",
    "Performance Review",
    "AI Consultation",
]

CONTEXT_TITLES = {
    "optimization": "Store Optimization",
    "education": "Learning Session",
    "scaling": "Scaling Strategy",
    "advanced": "Advanced Techniques",
}


def normalize_store_url(url: str) -> str:
    """
    Normalize a URL by ensuring proper protocol and removing trailing slashes

    Args:
        url: The URL to normalize

    Returns:
        str: Normalized URL
    """
    if not url:
        return ""

    url = url.strip()
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    return url.rstrip('/')


def extract_domain(url: str) -> str:
    """Hostname of a URL, with the protocol added when missing."""
    try:
        hostname = urlparse(normalize_store_url(url)).hostname
        return hostname.lower() if hostname else url
    except ValueError:
        return url


def is_valid_shop_domain(shop: str) -> bool:
    """True for bare ``<name>.myshopify.com`` domains only."""
    if not shop:
        return False
    return bool(SHOP_DOMAIN_PATTERN.match(shop.strip().lower()))


def clean_text(text: str, max_length: Optional[int] = None) -> str:
    """
    Collapse whitespace and optionally truncate on a word boundary

    Args:
        text: Text to clean
        max_length: Maximum length to truncate to

    Returns:
        str: Cleaned text
    """
    if not text:
        return ""

    cleaned = ' '.join(text.split())

    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rsplit(' ', 1)[0] + '...'

    return cleaned.strip()


def clamp(value: Any, low: int, high: int, default: int) -> int:
    """Coerce ``value`` to an int within ``[low, high]``; unusable values give ``default``."""
    if isinstance(value, bool):
        return default
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(low, min(high, number))


def _category_scores(analysis: Dict[str, Any]) -> Dict[str, int]:
    return {
        category: analysis.get(f"{category}Score") or analysis.get(f"{category}_score") or 0
        for category in SCORE_MAXIMA
    }


def calculate_health_score(analysis: Dict[str, Any]) -> int:
    """Sum of category scores as a percentage of the total maximum."""
    total = sum(_category_scores(analysis).values())
    return round(total / TOTAL_MAX_SCORE * 100)


def get_weakest_areas(analysis: Dict[str, Any]) -> List[str]:
    """Areas below the "good" threshold, weakest first."""
    ratios = []
    for category, score in _category_scores(analysis).items():
        ratio = score / SCORE_MAXIMA[category]
        if ratio * 100 < SCORE_THRESHOLDS["good"]:
            ratios.append((ratio, AREA_NAMES[category]))

    ratios.sort(key=lambda item: item[0])
    return [name for _, name in ratios]


def score_rating(score: int, max_score: int) -> str:
    """Bucket a score into excellent / good / needs_work / poor."""
    if max_score <= 0:
        return "poor"
    percentage = score / max_score * 100
    if percentage >= SCORE_THRESHOLDS["excellent"]:
        return "excellent"
    if percentage >= SCORE_THRESHOLDS["good"]:
        return "good"
    if percentage >= SCORE_THRESHOLDS["poor"]:
        return "needs_work"
    return "poor"


def format_currency(cents: Optional[int]) -> Optional[str]:
    """
    Format an amount in cents for display

    Args:
        cents: Amount in cents

    Returns:
        str: e.g. "$49.00"
    """
    if cents is None:
        return None

    try:
        return f"${cents / 100:,.2f}"
    except (ValueError, TypeError):
        return None


def time_ago(count: int, unit: str) -> str:
    return f"{count} {unit} ago" if count == 1 else f"{count} {unit}s ago"


def format_relative_time(when: Union[datetime, str], now: Optional[datetime] = None) -> str:
    if isinstance(when, str):
        when = datetime.fromisoformat(when)
    now = now or datetime.utcnow()
    seconds = (now - when).total_seconds()

    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return time_ago(minutes, "minute")
    if hours < 24:
        return time_ago(hours, "hour")
    if days < 7:
        return time_ago(days, "day")
    return when.strftime("%Y-%m-%d")


def generate_session_title(context: Optional[str] = None) -> str:
    """Title for a new chat session, picked from the context when one is given."""
    if context:
        return CONTEXT_TITLES.get(context, "New Chat")
    return random.choice(SESSION_TITLES)
