import requests
from bs4 import BeautifulSoup
from typing import Optional, Dict, Any, List
from urllib.parse import urljoin, urlparse, quote
import json
import re
import logging
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import settings
from ..exceptions import StoreFetchError
from ..utils.helpers import normalize_store_url, clean_text

logger = logging.getLogger(__name__)

EBAY_STORE_SEARCH_URL = "https://www.ebay.com/sch/i.html?_nkw=&_armrs=1&_ipg=&_from=&_ssn={username}"

PRODUCTS_PAGE_LIMIT = 50

NON_VISIBLE_TAGS = ['script', 'style', 'noscript', 'template', 'svg']


def build_ebay_store_url(username: str) -> str:
    """Seller search page listing every item of an eBay seller."""
    return EBAY_STORE_SEARCH_URL.format(username=quote(username.strip(), safe=''))


class WebScraper:
    def __init__(self, timeout: Optional[int] = None):
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.session = self._create_session()
        self.headers = {
            'User-Agent': settings.USER_AGENT,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
            'Accept-Encoding': 'gzip, deflate',
            'Connection': 'keep-alive',
            'Upgrade-Insecure-Requests': '1'
        }

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=settings.MAX_RETRIES,
            backoff_factor=settings.RETRY_DELAY,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def normalize_url(self, url: str) -> str:
        """Normalize URL by ensuring it has proper protocol"""
        return normalize_store_url(url)

    def is_shopify_store(self, html_content: str) -> bool:
        """Check if the page HTML carries Shopify markers"""
        if not html_content:
            return False
        return any(indicator in html_content for indicator in settings.SHOPIFY_INDICATORS)

    def fetch_html(self, url: str) -> str:
        """Download a page, raising StoreFetchError on any failure"""
        try:
            response = self.session.get(url, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Error fetching {url}: {e}")
            raise StoreFetchError(url, str(e))

        if not response.ok:
            logger.error(f"Error fetching {url}: HTTP {response.status_code}")
            raise StoreFetchError(url, f"{response.status_code} {response.reason or ''}".strip())

        return response.text

    def parse(self, html_content: str) -> BeautifulSoup:
        return BeautifulSoup(html_content, 'lxml')

    def extract_visible_text(self, html_content: str, limit: Optional[int] = None) -> str:
        """Body text without scripts and styles, whitespace collapsed and truncated"""
        limit = limit or settings.MAX_CONTENT_LENGTH
        soup = self.parse(html_content)
        for tag in soup(NON_VISIBLE_TAGS):
            tag.decompose()

        root = soup.body or soup
        text = ' '.join(root.get_text(separator=' ').split())
        return text[:limit]

    def get_json_content(self, url: str) -> Optional[Dict[Any, Any]]:
        """Fetch JSON content from URL"""
        try:
            response = self.session.get(url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, json.JSONDecodeError) as e:
            logger.warning(f"Error fetching JSON from {url}: {e}")
            return None

    def get_products_json(self, base_url: str, max_pages: Optional[int] = None) -> List[Dict[Any, Any]]:
        """Fetch the public /products.json catalog, page by page"""
        max_pages = max_pages or settings.MAX_CATALOG_PAGES
        all_products = []

        for page in range(1, max_pages + 1):
            products_url = f"{base_url.rstrip('/')}/products.json?limit={PRODUCTS_PAGE_LIMIT}&page={page}"
            data = self.get_json_content(products_url)

            if not data or not data.get('products'):
                break

            all_products.extend(data['products'])

            if len(data['products']) < PRODUCTS_PAGE_LIMIT:
                break

        logger.info(f"Fetched {len(all_products)} products from {base_url}")
        return all_products

    def summarize_products(self, products: List[Dict[Any, Any]], limit: Optional[int] = None) -> str:
        """Short text catalog of the first products for the AI prompt"""
        limit = limit or settings.MAX_PRODUCTS_IN_PROMPT
        lines = []
        for product in products[:limit]:
            variants = product.get('variants') or []
            price = variants[0].get('price') if variants else None
            description = clean_text(
                BeautifulSoup(product.get('body_html') or '', 'lxml').get_text(' '), 150
            )
            line = f"- {product.get('title', 'Untitled')}"
            if price:
                line += f" (${price})"
            line += f": {len(product.get('images') or [])} images"
            if description:
                line += f", {description}"
            lines.append(line)
        return '\n'.join(lines)

    def extract_social_links(self, soup: BeautifulSoup) -> Dict[str, str]:
        """Extract social media links from the page"""
        social_handles = {}

        social_patterns = {
            'instagram': [r'instagram\.com/([^/\s\?&]+)', r'instagr\.am/([^/\s\?&]+)'],
            'facebook': [r'facebook\.com/([^/\s\?&]+)', r'fb\.com/([^/\s\?&]+)'],
            'twitter': [r'twitter\.com/([^/\s\?&]+)', r'x\.com/([^/\s\?&]+)'],
            'tiktok': [r'tiktok\.com/@?([^/\s\?&]+)'],
            'youtube': [r'youtube\.com/(?:c/|channel/|user/|@)?([^/\s\?&]+)', r'youtu\.be/([^/\s\?&]+)'],
            'pinterest': [r'pinterest\.com/([^/\s\?&]+)']
        }

        for link in soup.find_all('a', href=True):
            href = link.get('href', '')

            for platform, patterns in social_patterns.items():
                if platform in social_handles:
                    continue
                if any(re.search(pattern, href, re.IGNORECASE) for pattern in patterns):
                    social_handles[platform] = href
                    break

        return social_handles

    def extract_contact_info(self, soup: BeautifulSoup) -> Dict[str, List[str]]:
        """Extract emails and phone numbers from the page text"""
        contact_info = {'emails': [], 'phones': []}

        text_content = soup.get_text(' ')

        email_pattern = r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'
        contact_info['emails'] = sorted(set(re.findall(email_pattern, text_content)))

        phone_patterns = [
            r'\+?1?[-.\s]?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}',
            r'\+[0-9]{1,4}[-.\s]?[0-9]{3,4}[-.\s]?[0-9]{3,4}[-.\s]?[0-9]{3,4}',
        ]

        phones = set()
        for pattern in phone_patterns:
            for phone in re.findall(pattern, text_content):
                phone = phone.strip()
                if len(re.sub(r'\D', '', phone)) >= 10:
                    phones.add(phone)
        contact_info['phones'] = sorted(phones)

        for link in soup.find_all('a', href=True):
            href = link['href']
            if href.startswith('mailto:'):
                email = href[len('mailto:'):].split('?')[0]
                if email and email not in contact_info['emails']:
                    contact_info['emails'].append(email)

        return contact_info

    def extract_policy_links(self, soup: BeautifulSoup, base_url: str) -> Dict[str, str]:
        """Extract policy and about/contact page links"""
        policy_links = {}

        policy_keywords = {
            'privacy_policy': ['privacy'],
            'refund_policy': ['refund', 'return'],
            'terms_of_service': ['terms', 'tos'],
            'shipping_policy': ['shipping'],
            'contact_page': ['contact'],
            'about_page': ['about', 'our story'],
        }

        for link in soup.find_all('a', href=True):
            href = link.get('href', '')
            text = link.get_text().lower().strip()

            if href.startswith('/'):
                href = urljoin(base_url, href)

            for policy_type, keywords in policy_keywords.items():
                if policy_type in policy_links:
                    continue
                if any(keyword in text or keyword in href.lower() for keyword in keywords):
                    policy_links[policy_type] = href
                    break

        return policy_links

    def get_brand_name(self, soup: BeautifulSoup, url: str) -> str:
        """Extract brand name from various sources"""
        og_site_name = soup.find('meta', property='og:site_name')
        if og_site_name and og_site_name.get('content'):
            return og_site_name['content'].strip()

        title = soup.find('title')
        if title:
            brand_name = re.sub(r'\s*[-–|:].*$', '', title.get_text().strip())
            if brand_name:
                return brand_name

        domain = urlparse(normalize_store_url(url)).netloc
        if domain:
            return domain.replace('www.', '').split('.')[0].title()

        return "Unknown Brand"

    def collect_trust_signals(self, html_content: str, base_url: str) -> Dict[str, Any]:
        """Policy, social and contact signals found on a page"""
        soup = self.parse(html_content)
        return {
            'brand_name': self.get_brand_name(soup, base_url),
            'policies': self.extract_policy_links(soup, base_url),
            'social': self.extract_social_links(soup),
            'contact': self.extract_contact_info(soup),
            'https': base_url.startswith('https://'),
        }

    def close(self):
        """Close the session"""
        if self.session:
            self.session.close()
