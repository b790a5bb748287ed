"""URL -> ExtractedItem pipeline used by ``POST /items``."""

import logging
from typing import Optional

import httpx

from ..config import Settings
from ..items import ExtractedItem
from ..llm import OpenAIClient
from .page import fetch_page, html_to_text

logger = logging.getLogger(__name__)

MIN_CONTENT_CHARS = 50


class ItemExtractor:
    """Orchestrates fetch -> text -> LLM for a product URL."""

    def __init__(self, settings: Settings, llm: Optional[OpenAIClient] = None):
        self.settings = settings
        self.llm = llm or OpenAIClient(settings)

    async def extract(self, url: str) -> ExtractedItem:
        """Extract structured product data for ``url``.

        Raises:
            InvalidURLError: If the URL is rejected before fetching.
            ValueError: If the page cannot be fetched or has no usable content.
        """
        logger.info(f"[EXTRACT] Fetching URL: {url}")
        try:
            html, final_url = await fetch_page(url, timeout=self.settings.fetch_timeout)
        except httpx.TimeoutException:
            logger.error(f"[EXTRACT] URL fetch timeout: {url}")
            raise ValueError("Request timeout while fetching URL")
        except httpx.HTTPStatusError as e:
            logger.error(f"[EXTRACT] HTTP error {e.response.status_code}: {url}")
            raise ValueError(f"Failed to fetch URL (HTTP {e.response.status_code})")
        except httpx.RequestError as e:
            logger.error(f"[EXTRACT] Network error fetching {url}: {e}")
            raise ValueError("Network error fetching URL")

        page = html_to_text(html)
        if len(page.text.strip()) < MIN_CONTENT_CHARS:
            logger.error(f"[EXTRACT] Insufficient content extracted from {final_url}")
            raise ValueError("Could not extract meaningful content from URL")

        product = await self.llm.extract_product(page.text, source_url=final_url, title_hint=page.title)
        if not product.image_url and page.image_url:
            product = product.model_copy(update={"image_url": page.image_url})

        return ExtractedItem(
            **product.model_dump(),
            source_url=url,
            raw_markdown=page.text,
            extraction_model=self.llm.model,
        )
