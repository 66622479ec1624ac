import logging
from datetime import datetime
from typing import Optional, Dict, Any

from ..config import settings
from ..exceptions import ValidationError
from .ai_analyzer import AIAnalyzer
from .change_detector import create_store_fingerprint, create_ebay_fingerprint
from .scraper import WebScraper, build_ebay_store_url
from .screenshot import capture_store_screenshot
from .shopify_integration import ShopifyClient, create_analysis_content

logger = logging.getLogger(__name__)


class StoreAnalyzer:
    """
    The analysis pipeline: fetch a store, fingerprint it, build prompt content
    and score it with the AI analyzer.

    Fetching and scoring are separate steps so callers can compare the
    fingerprint with an earlier analysis before paying for a new one.
    """

    def __init__(self, scraper: Optional[WebScraper] = None, ai: Optional[AIAnalyzer] = None,
                 shopify: Optional[ShopifyClient] = None):
        self.scraper = scraper or WebScraper()
        self.ai = ai or AIAnalyzer()
        self.shopify = shopify or ShopifyClient()

    # Shopify storefronts
    def fetch_shopify_snapshot(self, store_url: str) -> Dict[str, Any]:
        """Download the homepage and fingerprint it"""
        url = self.scraper.normalize_url(store_url)
        logger.info(f"Fetching Shopify store {url}")
        html = self.scraper.fetch_html(url)
        fingerprint = create_store_fingerprint(html, url)
        return {
            'store_type': 'shopify',
            'store_url': url,
            'html': html,
            'content_hash': fingerprint['content_hash'],
            'key_elements': fingerprint['key_elements'],
        }

    def build_shopify_content(self, snapshot: Dict[str, Any]) -> str:
        """Visible text plus catalog and trust signals for the prompt"""
        url = snapshot['store_url']
        html = snapshot['html']

        sections = [self.scraper.extract_visible_text(html)]

        if not self.scraper.is_shopify_store(html):
            logger.warning(f"{url} does not look like a Shopify storefront")
            sections.append("Note: no Shopify markers were found on this page.")

        signals = self.scraper.collect_trust_signals(html, url)
        policies = signals['policies']
        contact = signals['contact']
        sections.extend([
            "",
            "Trust Signals:",
            f"- Brand: {signals['brand_name']}",
            f"- HTTPS: {'yes' if signals['https'] else 'no'}",
            f"- Policy pages: {', '.join(sorted(policies)) if policies else 'none found'}",
            f"- Social profiles: {', '.join(sorted(signals['social'])) if signals['social'] else 'none found'}",
            f"- Contact emails: {len(contact.get('emails', []))}, phones: {len(contact.get('phones', []))}",
        ])

        products = self.scraper.get_products_json(url)
        if products:
            sections.extend([
                "",
                f"Product Catalog ({len(products)} products fetched):",
                self.scraper.summarize_products(products),
            ])
        else:
            sections.extend(["", "Product Catalog: public catalog not available"])

        return "\n".join(sections)

    def analyze_shopify_snapshot(self, snapshot: Dict[str, Any],
                                 optimization_context: Optional[Dict[str, Any]] = None,
                                 include_screenshot: bool = True) -> Dict[str, Any]:
        result = self.ai.analyze_store({
            'store_content': self.build_shopify_content(snapshot),
            'store_type': 'shopify',
            'store_url': snapshot['store_url'],
            'optimization_context': optimization_context,
        })
        result['contentHash'] = snapshot['content_hash']
        if include_screenshot:
            result['screenshot'] = capture_store_screenshot(snapshot['store_url'])
        return result

    def analyze_shopify_store(self, store_url: str, optimization_context: Optional[Dict[str, Any]] = None,
                              include_screenshot: bool = True) -> Dict[str, Any]:
        snapshot = self.fetch_shopify_snapshot(store_url)
        return self.analyze_shopify_snapshot(snapshot, optimization_context, include_screenshot)

    # eBay sellers
    def fetch_ebay_snapshot(self, username: str) -> Dict[str, Any]:
        username = (username or '').strip()
        if not username:
            raise ValidationError("eBay username is required")

        url = build_ebay_store_url(username)
        logger.info(f"Fetching eBay store for {username}")
        html = self.scraper.fetch_html(url)
        text = self.scraper.extract_visible_text(html)
        fingerprint = create_ebay_fingerprint(username, text)
        return {
            'store_type': 'ebay',
            'store_url': url,
            'ebay_username': username,
            'text': text,
            'content_hash': fingerprint['content_hash'],
            'key_elements': fingerprint['key_elements'],
        }

    def analyze_ebay_snapshot(self, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        result = self.ai.analyze_store({
            'store_content': snapshot['text'],
            'store_type': 'ebay',
            'ebay_username': snapshot['ebay_username'],
        })
        result['contentHash'] = snapshot['content_hash']
        return result

    def analyze_ebay_store(self, username: str) -> Dict[str, Any]:
        return self.analyze_ebay_snapshot(self.fetch_ebay_snapshot(username))

    # Connected Shopify stores
    def analyze_connected_shopify_store(self, store: Dict[str, Any],
                                        optimization_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Score a store through the Admin API instead of its storefront

        Args:
            store: user store dict including ``shopifyAccessToken``
            optimization_context: summary of optimizations already applied, if any

        Returns:
            dict: normalized analysis with ``shopInfo`` and ``productsAnalyzed``
        """
        shop_domain = store.get('shopifyDomain')
        token = store.get('shopifyAccessToken')
        if not store.get('isConnected') or not shop_domain or not token:
            raise ValidationError("Store is not connected to Shopify")

        shop = self.shopify.get_shop_info(shop_domain, token)
        products = self.shopify.fetch_store_products(shop_domain, token)
        logger.info(f"Analyzing connected store {shop_domain} with {len(products)} products")

        content = create_analysis_content(shop, products)
        host = (shop.get('primary_domain') or {}).get('host') or shop_domain
        result = self.ai.analyze_store({
            'store_content': content[:settings.MAX_CONTENT_LENGTH * 2],
            'store_type': 'shopify',
            'store_url': f"https://{host}",
            'optimization_context': optimization_context,
        })
        result['shopInfo'] = {
            'name': shop.get('name'),
            'domain': shop.get('myshopify_domain'),
            'currency': shop.get('currency'),
        }
        result['productsAnalyzed'] = len(products)
        result['analyzedAt'] = datetime.utcnow().isoformat()
        return result

    def close(self):
        self.scraper.close()
        self.shopify.close()
