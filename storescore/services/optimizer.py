import logging
import re
from typing import Optional, Dict, Any, List

from ..config import settings
from ..exceptions import InsufficientCreditsError, ValidationError
from .ai_analyzer import AIAnalyzer
from .database_service import DatabaseService
from .shopify_integration import ShopifyClient

logger = logging.getLogger(__name__)

PRICE_PATTERN = re.compile(r'\d+(?:\.\d{1,2})?')


def _current_value(product: Dict[str, Any], optimization_type: str) -> Optional[str]:
    if optimization_type == 'title':
        return product.get('title')
    if optimization_type == 'description':
        return product.get('body_html')
    if optimization_type == 'keywords':
        return product.get('tags')
    variants = product.get('variants') or []
    return str(variants[0].get('price')) if variants else None


def build_update(product: Dict[str, Any], optimization_type: str, value: str) -> Dict[str, Any]:
    """Shopify update payload that applies ``value`` as the given optimization"""
    if optimization_type == 'title':
        return {'title': value}
    if optimization_type == 'description':
        return {'body_html': value}
    if optimization_type == 'keywords':
        return {'tags': value}

    match = PRICE_PATTERN.search(value)
    if not match:
        raise ValidationError(f"AI did not return a usable price: {value}")
    variants = product.get('variants') or []
    if not variants:
        raise ValidationError("Product has no variants to price")
    return {'variants': [{'id': variant['id'], 'price': match.group(0)} for variant in variants]}


class ProductOptimizer:
    """Credit-charged AI content: product rewrites applied to Shopify and ad copy"""

    def __init__(self, db_service: DatabaseService, ai: Optional[AIAnalyzer] = None,
                 shopify: Optional[ShopifyClient] = None):
        self.db = db_service
        self.ai = ai or AIAnalyzer()
        self.shopify = shopify or ShopifyClient()

    def optimize_product(self, user: Dict[str, Any], store: Dict[str, Any], product_id: str,
                         optimization_type: str) -> Dict[str, Any]:
        """
        Rewrite one product field with AI and push it to Shopify

        Credits are charged before generating and refunded when generation or
        the Shopify update fails.

        Args:
            user: acting user
            store: connected store dict including ``shopifyAccessToken``
            product_id: numeric Shopify product id
            optimization_type: title, description, pricing or keywords

        Returns:
            dict: the recorded optimization plus the remaining credit balance
        """
        if not store.get('isConnected') or not store.get('shopifyAccessToken'):
            raise ValidationError("Store is not connected to Shopify")

        shop = store['shopifyDomain']
        token = store['shopifyAccessToken']
        cost = settings.OPTIMIZATION_CREDIT_COST

        product = self.shopify.fetch_product(shop, token, product_id)
        self.db.deduct_credits(user['id'], cost, f"Product {optimization_type} optimization - {product.get('title')}")

        try:
            optimized = self.ai.generate_product_optimization(product, optimization_type)
            self.shopify.update_product(shop, token, product_id, build_update(product, optimization_type, optimized))
        except Exception as e:
            logger.error(f"Optimization of product {product_id} failed, refunding {cost} credits: {e}")
            self.db.add_credits(user['id'], cost, f"Refund - failed {optimization_type} optimization",
                                transaction_type='refund')
            raise

        record = self.db.record_product_optimization(
            user_id=user['id'],
            user_store_id=store['id'],
            shopify_product_id=product_id,
            optimization_type=optimization_type,
            original_value=_current_value(product, optimization_type),
            optimized_value=optimized,
            credits_used=cost,
        )
        logger.info(f"Applied {optimization_type} optimization to product {product_id} on {shop}")
        return {
            'optimization': record,
            'creditsRemaining': self.db.get_user_credits(user['id']),
        }

    def generate_ads(self, user: Dict[str, Any], product: Dict[str, Any], platform: str, style: str,
                     count: int) -> Dict[str, Any]:
        cost = settings.AD_GENERATION_CREDIT_COST
        available = self.db.get_user_credits(user['id'])
        if available < cost:
            raise InsufficientCreditsError(required=cost, available=available)

        ads: List[Dict[str, Any]] = self.ai.generate_ad_copy(product, platform, style, count)
        balance = self.db.deduct_credits(user['id'], cost, f"Ad generation - {product.get('title')}")
        logger.info(f"Generated {len(ads)} {platform} ads for user {user['id']}")
        return {'ads': ads, 'creditsUsed': cost, 'creditsRemaining': balance}
