"""OpenAI client with retry logic using the Responses API."""

import asyncio
import json
import logging
from typing import Optional

from openai import APIConnectionError, APIError, AsyncOpenAI, RateLimitError

from ..config import Settings
from ..items import ProductExtraction
from .prompts import PRODUCT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

# Page text beyond this is dropped before it reaches the model.
MAX_INPUT_CHARS = 60_000


class OpenAIClient:
    """OpenAI API client using the Responses API with exponential backoff retry."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.client = AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = settings.openai_model

    async def _call_with_retry(
        self,
        input_content: str,
        instructions: str,
        max_tokens: int = 2048,
    ) -> str:
        """Make API call with exponential backoff retry."""
        last_error: Exception = RuntimeError("No API call attempted")
        delay = self.settings.retry_base_delay

        input_preview = input_content[:100].replace("\n", " ")
        logger.debug(f"[LLM] Input text ({len(input_content)} chars): {input_preview}...")
        logger.debug(f"[LLM] Model: {self.model}, max_tokens: {max_tokens}")

        for attempt in range(self.settings.max_retries):
            try:
                logger.debug(f"[LLM] API call attempt {attempt + 1}/{self.settings.max_retries}")
                response = await self.client.responses.create(
                    model=self.model,
                    instructions=instructions,
                    input=input_content,
                    max_output_tokens=max_tokens,
                    text={"format": {"type": "json_object"}},
                )
                logger.info(f"[LLM] API call successful on attempt {attempt + 1}")
                return response.output_text
            except (RateLimitError, APIError, APIConnectionError) as e:
                last_error = e
                logger.warning(f"[LLM] API error: {e}, retrying in {delay}s (attempt {attempt + 1})")
                await asyncio.sleep(delay)
                delay *= 2
            except Exception as e:
                # Don't retry on auth errors or unexpected exceptions
                logger.error(f"[LLM] Unrecoverable error: {type(e).__name__}: {e}")
                raise

        logger.error(f"[LLM] All {self.settings.max_retries} attempts failed")
        raise last_error

    def _parse_response(self, response: str) -> dict:
        """Parse JSON response with error handling."""
        try:
            return json.loads(response)
        except json.JSONDecodeError as e:
            logger.error(f"[LLM] Failed to parse response as JSON: {e}")
            raise ValueError(f"LLM returned invalid JSON: {response[:200]}...") from e

    async def extract_product(
        self,
        page_text: str,
        source_url: str,
        title_hint: Optional[str] = None,
    ) -> ProductExtraction:
        """Turn page text into a ``ProductExtraction``.

        Raises:
            ValueError: If the model response is not valid product JSON.
        """
        logger.info(f"[LLM] Extracting product from {source_url} ({len(page_text)} chars)")
        parts = [f"Source URL: {source_url}"]
        if title_hint:
            parts.append(f"Page title: {title_hint}")
        parts.append(page_text[:MAX_INPUT_CHARS])
        # Responses API requires 'json' in input when using json_object format
        parts.append("Respond in JSON format.")

        response = await self._call_with_retry(
            input_content="\n\n".join(parts),
            instructions=PRODUCT_SYSTEM_PROMPT,
        )
        data = self._parse_response(response)
        if data.get("attributes") is None:
            data["attributes"] = {}

        product = ProductExtraction.model_validate(data)
        logger.info(
            f"[LLM] Extracted '{product.title}' (confidence: {product.confidence_score:.2f})"
        )
        return product
