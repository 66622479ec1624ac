"""
Business logic services for store analysis, billing and integrations
"""

from .ai_analyzer import AIAnalyzer
from .assistant import Assistant
from .auth_service import AuthService
from .database_service import DatabaseService
from .optimizer import ProductOptimizer
from .scraper import WebScraper
from .shopify_integration import ShopifyClient
from .store_analyzer import StoreAnalyzer
from .subscription_service import SubscriptionService

__all__ = [
    "AIAnalyzer",
    "Assistant",
    "AuthService",
    "DatabaseService",
    "ProductOptimizer",
    "WebScraper",
    "ShopifyClient",
    "StoreAnalyzer",
    "SubscriptionService"
]
