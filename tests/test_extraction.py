"""Tests for page parsing and the extraction pipeline."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from trove.extraction import InvalidURLError, ItemExtractor, html_to_text, validate_url
from trove.items import ProductExtraction


class TestValidateUrl:
    @pytest.mark.parametrize("url", ["https://x.test/p", "http://shop.example.com/item?id=3", "https://8.8.8.8/"])
    def test_public_urls_pass(self, url):
        validate_url(url)

    @pytest.mark.parametrize(
        "url, message",
        [
            ("ftp://x.test/file", "unsupported scheme"),
            ("https:///nohost", "missing hostname"),
            ("http://localhost:8000/", "internal resources"),
            ("http://192.168.1.10/", "private IP"),
            ("http://[::1]/", "private IP"),
        ],
    )
    def test_rejected_urls(self, url, message):
        with pytest.raises(InvalidURLError, match=message):
            validate_url(url)


class TestHtmlToText:
    def test_extracts_main_content_and_metadata(self, sample_html):
        page = html_to_text(sample_html)

        assert page.title == "Walnut Desk Organizer | Oakline"
        assert page.canonical_url == "https://x.test/p/walnut-organizer"
        assert page.image_url == "https://x.test/img/walnut.jpg"
        assert "three compartments" in page.text
        assert "$49.00" in page.text

    def test_strips_noise(self, sample_html):
        text = html_to_text(sample_html).text

        assert "Footer links" not in text
        assert "Shop / Home" not in text
        assert "trackPageView" not in text

    def test_og_title_preferred(self):
        html = (
            '<html><head><title>Fallback</title><meta property="og:title" content="OG Title">'
            '<meta property="og:url" content="https://x.test/og"></head>'
            "<body><p>Body</p></body></html>"
        )
        page = html_to_text(html)

        assert page.title == "OG Title"
        assert page.canonical_url == "https://x.test/og"
        assert page.image_url is None

    def test_empty_document(self):
        page = html_to_text("")
        assert page.text == ""
        assert page.title is None


class TestItemExtractor:
    @pytest.fixture
    def llm(self, sample_llm_response):
        llm = MagicMock()
        llm.model = "gpt-5-mini"
        llm.extract_product = AsyncMock(return_value=ProductExtraction(**sample_llm_response))
        return llm

    async def test_extract(self, settings, llm, sample_html):
        extractor = ItemExtractor(settings, llm=llm)

        with patch(
            "trove.extraction.service.fetch_page",
            AsyncMock(return_value=(sample_html, "https://x.test/p/walnut-organizer")),
        ):
            item = await extractor.extract("https://x.test/p")

        assert item.source_url == "https://x.test/p"
        assert item.title == "Walnut Desk Organizer"
        assert item.extraction_model == "gpt-5-mini"
        assert "three compartments" in item.raw_markdown
        # Model gave no image, so the og:image is used
        assert item.image_url == "https://x.test/img/walnut.jpg"
        llm.extract_product.assert_awaited_once()
        assert llm.extract_product.await_args.kwargs["title_hint"] == "Walnut Desk Organizer | Oakline"

    async def test_model_image_wins(self, settings, llm, sample_html, sample_llm_response):
        sample_llm_response["image_url"] = "https://cdn.x.test/hero.png"
        llm.extract_product.return_value = ProductExtraction(**sample_llm_response)
        extractor = ItemExtractor(settings, llm=llm)

        with patch("trove.extraction.service.fetch_page", AsyncMock(return_value=(sample_html, "https://x.test/p"))):
            item = await extractor.extract("https://x.test/p")

        assert item.image_url == "https://cdn.x.test/hero.png"

    async def test_thin_page_is_rejected(self, settings, llm):
        extractor = ItemExtractor(settings, llm=llm)
        html = "<html><body><p>Sold out</p></body></html>"

        with patch("trove.extraction.service.fetch_page", AsyncMock(return_value=(html, "https://x.test/p"))):
            with pytest.raises(ValueError, match="meaningful content"):
                await extractor.extract("https://x.test/p")

        llm.extract_product.assert_not_awaited()

    @pytest.mark.parametrize(
        "error, message",
        [
            (httpx.ReadTimeout("slow"), "timeout"),
            (httpx.ConnectError("refused"), "Network error"),
        ],
    )
    async def test_fetch_errors_become_value_errors(self, settings, llm, error, message):
        extractor = ItemExtractor(settings, llm=llm)

        with patch("trove.extraction.service.fetch_page", AsyncMock(side_effect=error)):
            with pytest.raises(ValueError, match=message):
                await extractor.extract("https://x.test/p")

    async def test_http_status_error(self, settings, llm):
        request = httpx.Request("GET", "https://x.test/p")
        response = httpx.Response(404, request=request)
        error = httpx.HTTPStatusError("not found", request=request, response=response)
        extractor = ItemExtractor(settings, llm=llm)

        with patch("trove.extraction.service.fetch_page", AsyncMock(side_effect=error)):
            with pytest.raises(ValueError, match="HTTP 404"):
                await extractor.extract("https://x.test/p")
