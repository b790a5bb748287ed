"""Async client for the Trove JSON API."""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx
from pydantic import ValidationError as SchemaError

from .config import Settings
from .errors import AssignmentError, ExtractionError, TroveError
from .items import Item

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please try again."


@dataclass
class ItemResult:
    """Outcome of ``POST /items``."""

    item: Item
    duplicate: bool = False
    collections: list[str] = field(default_factory=list)


class TroveClient:
    """Talks to the items and collections endpoints.

    A new ``httpx.AsyncClient`` is opened per call. No timeout is applied
    unless ``request_timeout`` is configured.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.base_url = settings.api_url.rstrip("/")
        self.timeout = settings.request_timeout
        self.headers = {"Content-Type": "application/json"}
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _body(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def create_item(self, url: str) -> ItemResult:
        """POST /items: extract (or dedupe) and persist the item for ``url``.

        Raises:
            ExtractionError: On transport failure, non-2xx or ``success: false``.
        """
        logger.info(f"[EXTRACT] Requesting extraction for {url}")
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/items",
                    json={"url": url},
                    headers=self.headers,
                )
        except httpx.HTTPError as e:
            logger.warning(f"[EXTRACT] Network error for {url}: {e}")
            raise ExtractionError(NETWORK_ERROR_MESSAGE) from e

        data = self._body(resp)
        if resp.status_code >= 400 or not data.get("success"):
            message = data.get("error") or "Extraction failed"
            logger.warning(f"[EXTRACT] HTTP {resp.status_code} for {url}: {message}")
            raise ExtractionError(message, status_code=resp.status_code)

        payload = data.get("data") or {}
        duplicate = bool(data.get("duplicate"))
        if not isinstance(payload, dict):
            logger.error(f"[EXTRACT] Unexpected payload for {url}: {payload!r}")
            raise ExtractionError("Extraction returned an invalid item")
        try:
            item = Item.model_validate(payload if duplicate else payload.get("item") or payload)
        except SchemaError as e:
            logger.error(f"[EXTRACT] Malformed item for {url}: {e}")
            raise ExtractionError("Extraction returned an invalid item") from e

        if duplicate:
            logger.info(f"[EXTRACT] Reusing recent extraction for {url}")
            return ItemResult(item=item, duplicate=True)
        return ItemResult(item=item, collections=list(payload.get("collections") or []))

    async def add_to_collection(
        self,
        collection_id: str,
        item_id: str,
        notes: Optional[str] = None,
    ) -> dict:
        """POST /collections/{id}/items. Upserts on (collection, item).

        Raises:
            AssignmentError: If the assignment was not accepted.
        """
        body: dict = {"item_id": item_id}
        if notes:
            body["notes"] = notes

        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/collections/{collection_id}/items",
                    json=body,
                    headers=self.headers,
                )
        except httpx.HTTPError as e:
            raise AssignmentError(NETWORK_ERROR_MESSAGE, collection_id=collection_id) from e

        data = self._body(resp)
        if resp.status_code >= 400 or not data.get("success"):
            message = data.get("error") or "Failed to assign to collection"
            raise AssignmentError(message, collection_id=collection_id)
        return data.get("data") or {}

    async def list_collection_items(self, collection_id: str) -> list[dict]:
        """GET /collections/{id}/items."""
        return await self._get_list(f"/collections/{collection_id}/items")

    async def list_collections(self) -> list[dict]:
        """GET /collections."""
        return await self._get_list("/collections")

    async def create_collection(self, name: str, description: Optional[str] = None) -> dict:
        """POST /collections."""
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/collections",
                json={"name": name, "description": description},
                headers=self.headers,
            )
        data = self._body(resp)
        if resp.status_code >= 400 or not data.get("success"):
            raise TroveError(data.get("error") or f"Failed to create collection '{name}'")
        return data["data"]

    async def _get_list(self, path: str) -> list[dict]:
        async with self._client() as client:
            resp = await client.get(f"{self.base_url}{path}", headers=self.headers)
        data = self._body(resp)
        if resp.status_code >= 400 or not data.get("success"):
            raise TroveError(data.get("error") or f"GET {path} failed (HTTP {resp.status_code})")
        return data.get("data") or []
