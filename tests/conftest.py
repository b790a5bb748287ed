"""Shared pytest fixtures for Trove tests."""

import asyncio
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from trove.client import ItemResult
from trove.config import Settings
from trove.errors import AssignmentError
from trove.items import ExtractedItem, Item


@pytest.fixture
def settings(tmp_path: Path, monkeypatch) -> Settings:
    """Settings with a temporary database."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-api-key")
    return Settings(
        openai_api_key="test-api-key",
        db_path=tmp_path / "data" / "trove.db",
        api_url="http://test",
        progress_interval=0.01,
        retry_base_delay=0.0,
    )


def make_item(confidence_score: Optional[float] = 0.9, **overrides) -> Item:
    data = {
        "id": "item-1",
        "source_url": "https://x.test/p",
        "title": "Walnut Desk Organizer",
        "brand": "Oakline",
        "price": 49.0,
        "currency": "USD",
        "retailer": "x.test",
        "confidence_score": confidence_score,
    }
    data.update(overrides)
    return Item(**data)


@pytest.fixture
def item_factory() -> Callable[..., Item]:
    return make_item


@pytest.fixture
def sample_item() -> Item:
    return make_item()


@pytest.fixture
def low_confidence_item() -> Item:
    return make_item(confidence_score=0.4, id="item-low")


@pytest.fixture
def sample_extracted() -> ExtractedItem:
    """What the extraction pipeline would hand to the API."""
    return ExtractedItem(
        title="Walnut Desk Organizer",
        brand="Oakline",
        price=49.0,
        currency="USD",
        retailer="x.test",
        image_url="https://x.test/img.jpg",
        category="home",
        tags=["desk", "wood"],
        attributes={"material": "walnut"},
        confidence_score=0.9,
        source_url="https://x.test/p",
        raw_markdown="Walnut Desk Organizer\n$49",
        extraction_model="gpt-5-mini",
    )


@pytest.fixture
def sample_llm_response() -> dict:
    """Sample LLM JSON for a product page."""
    return {
        "title": "Walnut Desk Organizer",
        "brand": "Oakline",
        "price": 49.0,
        "currency": "USD",
        "retailer": "Oakline Store",
        "image_url": None,
        "category": "home",
        "tags": ["desk"],
        "attributes": {"material": "walnut"},
        "confidence_score": 0.86,
    }


@pytest.fixture
def sample_html() -> str:
    """Sample product page HTML."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Walnut Desk Organizer | Oakline</title>
        <link rel="canonical" href="https://x.test/p/walnut-organizer">
        <meta property="og:image" content="https://x.test/img/walnut.jpg">
    </head>
    <body>
        <nav>Shop / Home / Desk</nav>
        <main>
            <h1>Walnut Desk Organizer</h1>
            <p>Solid walnut organizer with three compartments and a phone slot.</p>
            <p>$49.00</p>
        </main>
        <footer>Footer links</footer>
        <script>trackPageView()</script>
    </body>
    </html>
    """


class FakeTroveClient:
    """Stand-in for ``TroveClient`` whose extractions are resolved by the test.

    Each ``create_item`` call parks on a future appended to ``extractions``.
    Assignments to ids in ``failing_collections`` raise ``AssignmentError``.
    """

    def __init__(self):
        self.extractions: list[asyncio.Future] = []
        self.failing_collections: set[str] = set()
        self.create_item = AsyncMock(side_effect=self._create_item)
        self.add_to_collection = AsyncMock(side_effect=self._add_to_collection)

    async def _create_item(self, url: str) -> ItemResult:
        future = asyncio.get_running_loop().create_future()
        self.extractions.append(future)
        return await future

    async def _add_to_collection(self, collection_id: str, item_id: str, notes=None) -> dict:
        await asyncio.sleep(0)
        if collection_id in self.failing_collections:
            raise AssignmentError(
                f"Collection {collection_id} is unavailable", collection_id=collection_id
            )
        return {"collection_id": collection_id, "item_id": item_id, "notes": notes}

    def resolve(self, item: Item, index: int = -1) -> None:
        self.extractions[index].set_result(ItemResult(item=item))

    def reject(self, error: Exception, index: int = -1) -> None:
        self.extractions[index].set_exception(error)


@pytest.fixture
def fake_client() -> FakeTroveClient:
    return FakeTroveClient()


@pytest.fixture
def wait_for() -> Callable:
    """Poll until ``predicate()`` is true, yielding to the event loop."""

    async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached before timeout")
            await asyncio.sleep(0.005)

    return _wait_for


@pytest.fixture
def mock_extractor(sample_extracted: ExtractedItem) -> MagicMock:
    """ItemExtractor replacement returning ``sample_extracted`` for any URL."""
    extractor = MagicMock()
    extractor.extract = AsyncMock(
        side_effect=lambda url: sample_extracted.model_copy(update={"source_url": url})
    )
    return extractor


@pytest.fixture
def api_app(settings: Settings, mock_extractor: MagicMock):
    """Trove API app with a stubbed extractor."""
    from trove.api import create_app

    return create_app(settings, extractor=mock_extractor)


@pytest.fixture
async def api_db(api_app, settings: Settings):
    """Initialize the database the way the lifespan would."""
    from trove.api.db import get_db, init_db

    await init_db(settings.db_path, settings.default_collection)
    api_app.state.db = await get_db(settings.db_path)
    yield api_app.state.db
    await api_app.state.db.close()


@pytest.fixture
async def api_client(api_app, api_db):
    """httpx client talking to the API in-process."""
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def api_transport(api_app, api_db) -> httpx.ASGITransport:
    """Transport for pointing a ``TroveClient`` at the in-process API."""
    return httpx.ASGITransport(app=api_app)
