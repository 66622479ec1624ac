"""
StoreScore API

AI-powered scoring and optimization for Shopify and eBay stores:
- Store analysis with category scores and prioritized suggestions
- User accounts, saved stores and credit-based billing through Stripe
- Shopify app integration for applying product optimizations
- Alex, a chat assistant that coaches users with their own store data
"""

__version__ = "1.0.0"
