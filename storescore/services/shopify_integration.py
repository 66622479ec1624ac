import base64
import hashlib
import hmac
import logging
import secrets
from typing import Optional, Dict, Any, List, Tuple
from urllib.parse import urlencode

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import settings
from ..exceptions import ShopifyAPIError, ValidationError
from ..utils.helpers import is_valid_shop_domain

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = """
            id
            title
            handle
            descriptionHtml
            productType
            vendor
            tags
            status
            createdAt
            updatedAt
            images(first: 5) {
              edges { node { id src: url altText } }
            }
            variants(first: 10) {
              edges { node { id title price compareAtPrice sku inventoryQuantity } }
            }
            seo { title description }
"""

SHOP_QUERY = """
query getShop {
  shop {
    id
    name
    email
    myshopifyDomain
    primaryDomain { host sslEnabled }
    currencyCode
    weightUnit
    ianaTimezone
    taxesIncluded
    taxShipping
    setupRequired
    createdAt
    updatedAt
  }
}
"""

PRODUCTS_QUERY = """
query getProducts($first: Int!) {
  products(first: $first) {
    edges {
      node {%s}
    }
  }
}
""" % PRODUCT_FIELDS

PRODUCT_QUERY = """
query getProduct($id: ID!) {
  product(id: $id) {%s}
}
""" % PRODUCT_FIELDS

PRODUCT_UPDATE_MUTATION = """
mutation productUpdate($input: ProductInput!) {
  productUpdate(input: $input) {
    product { id title handle descriptionHtml tags }
    userErrors { field message }
  }
}
"""

VARIANTS_UPDATE_MUTATION = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id price compareAtPrice }
    userErrors { field message }
  }
}
"""


def _gid_tail(gid: str) -> str:
    return str(gid).split('/')[-1]


def _sign(message: str) -> str:
    return hmac.new(settings.SHOPIFY_API_SECRET.encode(), message.encode(), hashlib.sha256).hexdigest()


def normalize_shop_domain(shop: str) -> str:
    """Bare ``name.myshopify.com`` host, or ValidationError"""
    shop = (shop or '').strip().lower()
    for prefix in ('https://', 'http://'):
        if shop.startswith(prefix):
            shop = shop[len(prefix):]
    shop = shop.split('/')[0]
    if shop and '.' not in shop:
        shop = f"{shop}.myshopify.com"
    if not is_valid_shop_domain(shop):
        raise ValidationError("Invalid shop domain, expected <store>.myshopify.com", {"shop": shop})
    return shop


def build_state(user_id: int, user_store_id: Optional[int] = None) -> str:
    """OAuth state ``nonce:user_id[:store_id]:signature``"""
    nonce = secrets.token_hex(16)
    payload = f"{nonce}:{user_id}" if user_store_id is None else f"{nonce}:{user_id}:{user_store_id}"
    return f"{payload}:{_sign(payload)}"


def parse_state(state: str) -> Tuple[int, Optional[int]]:
    """
    Verify an OAuth state and return (user_id, user_store_id)

    Raises:
        ValidationError: when the state is malformed or its signature is wrong
    """
    parts = (state or '').split(':')
    if len(parts) not in (3, 4):
        raise ValidationError("Invalid OAuth state")

    payload, signature = ':'.join(parts[:-1]), parts[-1]
    if not hmac.compare_digest(_sign(payload), signature):
        raise ValidationError("Invalid OAuth state signature")

    try:
        user_id = int(parts[1])
        user_store_id = int(parts[2]) if len(parts) == 4 else None
    except ValueError:
        raise ValidationError("Invalid OAuth state")
    return user_id, user_store_id


def verify_callback_hmac(query_params: Dict[str, str]) -> bool:
    """Check the ``hmac`` Shopify appends to OAuth redirects"""
    received = query_params.get('hmac')
    if not received or not settings.SHOPIFY_API_SECRET:
        return False

    message = '&'.join(
        f"{key}={value}"
        for key, value in sorted(query_params.items())
        if key not in ('hmac', 'signature')
    )
    return hmac.compare_digest(_sign(message), received)


def validate_webhook_signature(body: bytes, signature: Optional[str]) -> bool:
    """Base64 HMAC-SHA256 of the raw webhook body, compared in constant time"""
    if not signature or not settings.SHOPIFY_API_SECRET:
        return False
    digest = hmac.new(settings.SHOPIFY_API_SECRET.encode(), body, hashlib.sha256).digest()
    computed = base64.b64encode(digest).decode()
    return hmac.compare_digest(computed, signature)


def transform_product(node: Dict[str, Any]) -> Dict[str, Any]:
    """GraphQL product node to the REST-style dict the rest of the app uses"""
    return {
        'id': _gid_tail(node['id']),
        'title': node.get('title'),
        'handle': node.get('handle'),
        'body_html': node.get('descriptionHtml') or '',
        'product_type': node.get('productType') or '',
        'vendor': node.get('vendor') or '',
        'tags': ','.join(node.get('tags') or []),
        'status': (node.get('status') or '').lower(),
        'created_at': node.get('createdAt'),
        'updated_at': node.get('updatedAt'),
        'images': [
            {'id': _gid_tail(edge['node']['id']), 'src': edge['node'].get('src'), 'alt': edge['node'].get('altText')}
            for edge in (node.get('images') or {}).get('edges', [])
        ],
        'variants': [
            {
                'id': _gid_tail(edge['node']['id']),
                'title': edge['node'].get('title'),
                'price': edge['node'].get('price'),
                'compare_at_price': edge['node'].get('compareAtPrice'),
                'sku': edge['node'].get('sku'),
                'inventory_quantity': edge['node'].get('inventoryQuantity'),
            }
            for edge in (node.get('variants') or {}).get('edges', [])
        ],
        'seo': node.get('seo') or {},
    }


def create_analysis_content(shop: Dict[str, Any], products: List[Dict[str, Any]]) -> str:
    """Text description of a connected store for the scoring prompt"""
    lines = [
        f"SHOPIFY STORE ANALYSIS - {shop.get('name')}",
        "",
        "Store Information:",
        f"- Store Name: {shop.get('name')}",
        f"- Domain: {shop.get('myshopify_domain')}",
        f"- Primary Domain: {(shop.get('primary_domain') or {}).get('host')}",
        f"- SSL Enabled: {(shop.get('primary_domain') or {}).get('ssl_enabled')}",
        f"- Currency: {shop.get('currency')}",
        f"- Timezone: {shop.get('timezone')}",
        f"- Setup Status: {'Setup Required' if shop.get('setup_required') else 'Complete'}",
        f"- Taxes Included: {shop.get('taxes_included')}",
        "",
        "Product Catalog:",
        f"- Total Products Analyzed: {len(products)}",
    ]

    for product in products[:settings.MAX_PRODUCTS_IN_PROMPT]:
        description = BeautifulSoup(product.get('body_html') or '', 'lxml').get_text(' ').strip()[:200]
        variants = product.get('variants') or []
        price = variants[0].get('price') if variants else '0'
        lines.append(
            f"- {product.get('title')} | price {price} | {len(product.get('images') or [])} images | {description}"
        )

    lines.extend([
        "",
        "Analyze this store for product catalog quality, SEO and content, trust signals and policies, "
        "and conversion optimization.",
    ])
    return '\n'.join(lines)


class ShopifyClient:
    """Admin API client for one app installation"""

    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=settings.MAX_RETRIES,
            backoff_factor=settings.RETRY_DELAY,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        return session

    def _ensure_configured(self):
        if not settings.SHOPIFY_API_KEY or not settings.SHOPIFY_API_SECRET:
            raise ShopifyAPIError("Shopify app is not configured", status_code=503)

    def generate_auth_url(self, shop_domain: str, user_id: int, user_store_id: Optional[int] = None) -> Dict[str, str]:
        self._ensure_configured()
        shop = normalize_shop_domain(shop_domain)
        state = build_state(user_id, user_store_id)
        query = urlencode({
            'client_id': settings.SHOPIFY_API_KEY,
            'scope': settings.SHOPIFY_SCOPES,
            'redirect_uri': settings.SHOPIFY_REDIRECT_URI,
            'state': state,
        })
        logger.info(f"Generated Shopify OAuth URL for {shop}, user {user_id}")
        return {'auth_url': f"https://{shop}/admin/oauth/authorize?{query}", 'state': state, 'shop': shop}

    def _request(self, method: str, url: str, access_token: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        headers = {'Content-Type': 'application/json'}
        if access_token:
            headers['X-Shopify-Access-Token'] = access_token

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"Shopify request to {url} failed: {e}")
            raise ShopifyAPIError(f"Shopify request failed: {e}")

        if not response.ok:
            logger.error(f"Shopify request to {url} returned {response.status_code}")
            status = 401 if response.status_code == 401 else 502
            raise ShopifyAPIError(
                f"Shopify API error: {response.status_code} {response.reason or ''}".strip(),
                status_code=status,
                details={'shopify_status': response.status_code},
            )
        try:
            return response.json()
        except ValueError:
            logger.error(f"Shopify request to {url} returned a non-JSON body")
            raise ShopifyAPIError(
                "Shopify returned an unreadable response",
                details={'shopify_status': response.status_code},
            )

    def exchange_code_for_token(self, shop_domain: str, code: str) -> Dict[str, Any]:
        self._ensure_configured()
        shop = normalize_shop_domain(shop_domain)
        return self._request(
            'POST',
            f"https://{shop}/admin/oauth/access_token",
            json={
                'client_id': settings.SHOPIFY_API_KEY,
                'client_secret': settings.SHOPIFY_API_SECRET,
                'code': code,
            },
        )

    def graphql(self, shop_domain: str, access_token: str, query: str,
                variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"https://{shop_domain}/admin/api/{settings.SHOPIFY_API_VERSION}/graphql.json"
        data = self._request('POST', url, access_token, json={'query': query, 'variables': variables or {}})
        if data.get('errors'):
            raise ShopifyAPIError("Shopify GraphQL error", details={'errors': data['errors']})
        return data.get('data') or {}

    def get_shop_info(self, shop_domain: str, access_token: str) -> Dict[str, Any]:
        shop = self.graphql(shop_domain, access_token, SHOP_QUERY).get('shop') or {}
        primary = shop.get('primaryDomain') or {}
        return {
            'id': _gid_tail(shop.get('id', '')),
            'name': shop.get('name'),
            'email': shop.get('email'),
            'myshopify_domain': shop.get('myshopifyDomain'),
            'domain': (shop.get('myshopifyDomain') or '').replace('.myshopify.com', ''),
            'primary_domain': {'host': primary.get('host'), 'ssl_enabled': primary.get('sslEnabled')},
            'currency': shop.get('currencyCode'),
            'weight_unit': shop.get('weightUnit'),
            'timezone': shop.get('ianaTimezone'),
            'taxes_included': shop.get('taxesIncluded'),
            'tax_shipping': shop.get('taxShipping'),
            'setup_required': shop.get('setupRequired'),
            'created_at': shop.get('createdAt'),
            'updated_at': shop.get('updatedAt'),
        }

    def fetch_store_products(self, shop_domain: str, access_token: str, limit: int = 50) -> List[Dict[str, Any]]:
        data = self.graphql(shop_domain, access_token, PRODUCTS_QUERY, {'first': limit})
        edges = (data.get('products') or {}).get('edges', [])
        return [transform_product(edge['node']) for edge in edges]

    def fetch_product(self, shop_domain: str, access_token: str, product_id: str) -> Dict[str, Any]:
        data = self.graphql(shop_domain, access_token, PRODUCT_QUERY, {'id': f"gid://shopify/Product/{product_id}"})
        if not data.get('product'):
            raise ShopifyAPIError(f"Product not found: {product_id}", status_code=404)
        return transform_product(data['product'])

    def update_product(self, shop_domain: str, access_token: str, product_id: str,
                       update_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply title, body_html, tags or variant price changes

        Raises:
            ShopifyAPIError: on transport errors or mutation userErrors
        """
        gid = f"gid://shopify/Product/{product_id}"
        result = {}

        product_input = {'id': gid}
        if update_data.get('title'):
            product_input['title'] = update_data['title']
        if update_data.get('body_html'):
            product_input['descriptionHtml'] = update_data['body_html']
        if update_data.get('tags'):
            product_input['tags'] = [tag.strip() for tag in update_data['tags'].split(',') if tag.strip()]

        if len(product_input) > 1:
            data = self.graphql(shop_domain, access_token, PRODUCT_UPDATE_MUTATION, {'input': product_input})
            self._raise_user_errors(data.get('productUpdate'))
            result['product'] = (data.get('productUpdate') or {}).get('product')

        variants = update_data.get('variants') or []
        if variants:
            data = self.graphql(shop_domain, access_token, VARIANTS_UPDATE_MUTATION, {
                'productId': gid,
                'variants': [
                    {
                        'id': f"gid://shopify/ProductVariant/{variant['id']}",
                        'price': variant.get('price'),
                        'compareAtPrice': variant.get('compare_at_price'),
                    }
                    for variant in variants
                ],
            })
            self._raise_user_errors(data.get('productVariantsBulkUpdate'))
            result['variants'] = (data.get('productVariantsBulkUpdate') or {}).get('productVariants')

        if not result:
            raise ValidationError("Nothing to update")
        logger.info(f"Updated Shopify product {product_id} on {shop_domain}")
        return result

    @staticmethod
    def _raise_user_errors(payload: Optional[Dict[str, Any]]):
        errors = (payload or {}).get('userErrors') or []
        if errors:
            raise ShopifyAPIError("Shopify rejected the update", status_code=400, details={'userErrors': errors})

    def create_page(self, shop_domain: str, access_token: str, title: str, body_html: str) -> Dict[str, Any]:
        """Publish a storefront page, e.g. a policy or trust page"""
        url = f"https://{shop_domain}/admin/api/{settings.SHOPIFY_API_VERSION}/pages.json"
        data = self._request('POST', url, access_token, json={
            'page': {'title': title, 'body_html': body_html, 'published': True},
        })
        page = data.get('page') or {}
        logger.info(f"Created page '{title}' on {shop_domain}")
        return page

    def close(self):
        if self.session:
            self.session.close()
