import asyncio
import base64
import html
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from playwright.sync_api import sync_playwright, Error as PlaywrightError

from ..config import settings
from ..utils.helpers import extract_domain

logger = logging.getLogger(__name__)

VIEWPORT = {"width": 1200, "height": 800}
JPEG_QUALITY = 60

# (background, header) per platform
PLACEHOLDER_COLORS = {
    "ebay": ("#e53238", "#0064d2"),
    "shopify": ("#7AB55C", "#004c3f"),
    "generic": ("#f8f9fa", "#343a40"),
}
PLACEHOLDER_LABELS = {
    "ebay": "eBay Store",
    "shopify": "Shopify Store",
    "generic": "Store Preview",
}


def _platform(domain: str) -> str:
    if "ebay" in domain:
        return "ebay"
    if "shopify" in domain:
        return "shopify"
    return "generic"


def generate_placeholder_screenshot(url: str) -> str:
    """Base64 SVG card standing in for a real screenshot"""
    domain = extract_domain(url)
    platform = _platform(domain)
    label = html.escape(domain)
    background, header = PLACEHOLDER_COLORS[platform]
    domain_color = "#343a40" if platform == "generic" else "white"

    svg = f"""<svg width="800" height="600" xmlns="http://www.w3.org/2000/svg">
  <rect width="800" height="600" fill="{background}"/>
  <rect x="0" y="0" width="800" height="80" fill="{header}"/>
  <text x="40" y="50" fill="white" font-family="Arial, sans-serif" font-size="24" font-weight="bold">{PLACEHOLDER_LABELS[platform]}</text>
  <text x="40" y="150" fill="{domain_color}" font-family="Arial, sans-serif" font-size="16">{label}</text>
  <rect x="40" y="200" width="720" height="300" fill="white" stroke="#dee2e6" stroke-width="2" rx="8"/>
  <text x="400" y="350" fill="#6c757d" font-family="Arial, sans-serif" font-size="18" text-anchor="middle">Store Screenshot Preview</text>
  <text x="400" y="380" fill="#6c757d" font-family="Arial, sans-serif" font-size="14" text-anchor="middle">Live analysis in progress...</text>
</svg>"""
    return base64.b64encode(svg.encode("utf-8")).decode("ascii")


def _capture(url: str) -> bytes:
    with sync_playwright() as p:
        browser = p.chromium.launch(
            headless=True,
            args=["--disable-dev-shm-usage", "--no-sandbox", "--disable-gpu"],
        )
        try:
            context = browser.new_context(viewport=VIEWPORT, user_agent=settings.USER_AGENT)
            page = context.new_page()
            page.goto(url, wait_until="domcontentloaded", timeout=settings.SCREENSHOT_TIMEOUT_MS)
            page.wait_for_timeout(2000)
            return page.screenshot(type="jpeg", quality=JPEG_QUALITY, full_page=False)
        finally:
            browser.close()


def _capture_outside_loop(url: str) -> bytes:
    # Playwright's sync API refuses to run on a thread with a running event loop
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return _capture(url)
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(_capture, url).result()


def capture_store_screenshot(url: str) -> Optional[str]:
    """
    Base64 JPEG of the store's first viewport.

    Falls back to an SVG placeholder when screenshots are disabled or the
    headless browser fails.
    """
    if not settings.ENABLE_SCREENSHOTS:
        return generate_placeholder_screenshot(url)

    try:
        logger.info(f"Capturing screenshot of {url}")
        image = _capture_outside_loop(url)
        encoded = base64.b64encode(image).decode("ascii")
        logger.info(f"Screenshot captured for {url} ({len(encoded) // 1024}KB)")
        return encoded
    except (PlaywrightError, OSError) as e:
        logger.warning(f"Screenshot capture failed for {url}, using placeholder: {e}")
        return generate_placeholder_screenshot(url)
