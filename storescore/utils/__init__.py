"""
Utility functions and helpers
"""

from .helpers import (
    normalize_store_url,
    extract_domain,
    is_valid_shop_domain,
    clean_text,
    clamp,
    calculate_health_score,
    get_weakest_areas,
    score_rating,
    format_currency,
    format_relative_time,
    generate_session_title
)

__all__ = [
    "normalize_store_url",
    "extract_domain",
    "is_valid_shop_domain",
    "clean_text",
    "clamp",
    "calculate_health_score",
    "get_weakest_areas",
    "score_rating",
    "format_currency",
    "format_relative_time",
    "generate_session_title"
]
