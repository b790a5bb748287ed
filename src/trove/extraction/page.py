"""Fetching product pages and reducing them to text."""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

BLOCKED_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "169.254.169.254"}

REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class InvalidURLError(ValueError):
    """URL is malformed or points at an internal resource."""


@dataclass
class PageContent:
    """Text and metadata pulled out of a product page."""

    text: str
    title: Optional[str] = None
    canonical_url: Optional[str] = None
    image_url: Optional[str] = None


def validate_url(url: str) -> None:
    """Validate URL to prevent SSRF attacks.

    Raises:
        InvalidURLError: If URL is invalid or targets internal resources
    """
    parsed = urlparse(url)

    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(f"Invalid URL format: unsupported scheme '{parsed.scheme}'")

    hostname = parsed.hostname
    if not hostname:
        raise InvalidURLError("Invalid URL format: missing hostname")

    if hostname.lower() in BLOCKED_HOSTS:
        raise InvalidURLError("Access to internal resources is blocked")

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        return  # Not an IP address, hostname is fine

    if ip.is_private or ip.is_loopback or ip.is_link_local:
        raise InvalidURLError("Access to private IP addresses is blocked")


async def fetch_page(url: str, timeout: int = 30) -> tuple[str, str]:
    """Fetch HTML content from a URL.

    Returns:
        Tuple of (html_content, final_url_after_redirects)

    Raises:
        InvalidURLError: If URL is invalid or targets internal resources
        httpx.HTTPError: If request fails
    """
    validate_url(url)

    async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as client:
        response = await client.get(url, headers=REQUEST_HEADERS)
        response.raise_for_status()

        final_url = str(response.url)
        html_content = response.text

        logger.info(f"[EXTRACT] Fetched {len(html_content)} bytes from {final_url}")
        return html_content, final_url


def html_to_text(html: str) -> PageContent:
    """Extract readable text and product metadata from HTML."""
    soup = BeautifulSoup(html, "lxml")

    # Metadata lives in <head>, read it before stripping anything
    title_tag = soup.find("meta", property="og:title") or soup.find("title")
    if title_tag is not None and title_tag.name == "meta":
        title = title_tag.get("content")
    else:
        title = title_tag.get_text(strip=True) if title_tag else None

    canonical = soup.find("link", rel="canonical")
    og_url = soup.find("meta", property="og:url")
    canonical_url = None
    if canonical and canonical.get("href"):
        canonical_url = canonical["href"]
    elif og_url and og_url.get("content"):
        canonical_url = og_url["content"]

    og_image = soup.find("meta", property="og:image")
    image_url = og_image.get("content") if og_image else None

    # Remove noise elements
    for tag in soup.find_all(["script", "style", "nav", "header", "footer", "aside", "noscript"]):
        tag.decompose()

    main = (
        soup.find("article")
        or soup.find("main")
        or soup.find(role="main")
        or soup.find(id="product")
        or soup.find(class_="product")
    )
    content_elem = main if main else soup.body
    text = content_elem.get_text(separator="\n", strip=True) if content_elem else ""

    return PageContent(
        text=text,
        title=title or None,
        canonical_url=canonical_url,
        image_url=image_url or None,
    )
