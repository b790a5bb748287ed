"""URL-to-item extraction pipeline."""

from .page import InvalidURLError, PageContent, fetch_page, html_to_text, validate_url
from .service import ItemExtractor

__all__ = [
    "InvalidURLError",
    "ItemExtractor",
    "PageContent",
    "fetch_page",
    "html_to_text",
    "validate_url",
]
