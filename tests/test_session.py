"""Tests for CaptureSession against a fake API client."""

import asyncio
from unittest.mock import call

import pytest

from trove.capture import (
    CaptureSession,
    Capturing,
    Complete,
    Error,
    ExtractionComplete,
    ExtractionFailed,
    ExtractionInProgress,
    Initializing,
    NoIntent,
    PendingIntent,
)
from trove.capture.machine import VALIDATION_MESSAGE
from trove.capture.models import NO_URL_MESSAGE
from trove.client import NETWORK_ERROR_MESSAGE
from trove.errors import ExtractionError

URL = "https://x.test/p"


@pytest.fixture
async def make_session(fake_client, settings):
    """Build sessions wired to recording callbacks; close them afterwards."""
    sessions = []

    def _make(url=URL, **kwargs):
        events = {"success": [], "error": [], "validation": []}
        session = CaptureSession(
            fake_client,
            settings,
            url=url,
            on_success=lambda item, ids: events["success"].append((item, ids)),
            on_error=events["error"].append,
            on_validation_error=events["validation"].append,
            **kwargs,
        )
        session.events = events
        sessions.append(session)
        return session

    yield _make

    for session in sessions:
        session.close()


async def started(session, fake_client, wait_for, requests=1):
    """Start the session and wait for the extraction request to go out."""
    session.start()
    await wait_for(lambda: len(fake_client.extractions) >= requests)


class TestHappyPaths:
    async def test_save_after_extraction_completes(self, make_session, fake_client, wait_for, sample_item):
        """Extraction finishes first; the save uses the context at click time."""
        session = make_session()
        await started(session, fake_client, wait_for)

        session.update_context(notes="draft")
        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.extraction, ExtractionComplete))
        assert session.progress.progress == 100

        session.update_context(notes="For the office", selected_collection_ids=["inbox"])
        session.trigger_save()
        await session.wait_until_idle()

        assert session.state == Complete(item=sample_item, collection_ids=frozenset({"inbox"}))
        fake_client.add_to_collection.assert_awaited_once_with("inbox", "item-1", "For the office")
        assert session.events["success"] == [(sample_item, frozenset({"inbox"}))]

    async def test_save_before_extraction_completes(self, make_session, fake_client, wait_for, sample_item):
        """Save is queued and fires on completion with the context captured at click."""
        session = make_session()
        await started(session, fake_client, wait_for)

        session.update_context(notes="gift", selected_collection_ids=["inbox", "gifts"])
        session.trigger_save()
        assert isinstance(session.intent, PendingIntent)
        assert isinstance(session.state, Capturing)

        session.update_context(notes="changed my mind")
        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.state, Complete))
        await session.wait_until_idle()

        assert fake_client.add_to_collection.await_count == 2
        fake_client.add_to_collection.assert_has_awaits(
            [call("gifts", "item-1", "gift"), call("inbox", "item-1", "gift")],
            any_order=True,
        )
        assert session.state.collection_ids == frozenset({"inbox", "gifts"})

    async def test_duplicate_save_clicks_execute_once(self, make_session, fake_client, wait_for, sample_item):
        session = make_session()
        await started(session, fake_client, wait_for)

        session.update_context(selected_collection_ids=["inbox"])
        session.trigger_save()
        session.update_context(selected_collection_ids=["wishlist"])
        session.trigger_save()
        session.trigger_save()

        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.state, Complete))
        await session.wait_until_idle()
        session.trigger_save()

        fake_client.add_to_collection.assert_awaited_once_with("inbox", "item-1", None)
        assert len(session.events["success"]) == 1

    async def test_saving_with_notes_only(self, make_session, fake_client, wait_for, sample_item):
        session = make_session()
        await started(session, fake_client, wait_for)
        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.extraction, ExtractionComplete))

        session.update_context(notes="remember this")
        session.trigger_save()
        await session.wait_until_idle()

        assert session.state == Complete(item=sample_item, collection_ids=frozenset())
        fake_client.add_to_collection.assert_not_awaited()

    async def test_low_confidence_item_is_flagged(
        self, make_session, fake_client, wait_for, low_confidence_item
    ):
        session = make_session()
        await started(session, fake_client, wait_for)

        fake_client.resolve(low_confidence_item)
        await wait_for(lambda: isinstance(session.extraction, ExtractionComplete))

        assert session.extraction.needs_review is True

    async def test_on_change_sees_every_snapshot(self, make_session, fake_client, wait_for, sample_item):
        stages = []
        session = make_session(on_change=lambda snap: stages.append(snap.state.stage))
        await started(session, fake_client, wait_for)

        assert stages[:3] == ["initializing", "capturing", "capturing"]

    async def test_save_requested_right_after_start(self, make_session, fake_client, wait_for, sample_item):
        """Context and save arrive before the first tick, as the CLI does it."""
        session = make_session()
        session.start()
        session.update_context(notes="gift idea", selected_collection_ids=["inbox"])
        session.trigger_save()

        assert isinstance(session.state, Initializing)
        assert isinstance(session.intent, PendingIntent)

        await wait_for(lambda: len(fake_client.extractions) == 1)
        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.state, Complete))

        fake_client.add_to_collection.assert_awaited_once_with("inbox", "item-1", "gift idea")
        assert session.events["success"] == [(sample_item, frozenset({"inbox"}))]


class TestValidation:
    async def test_save_without_context_is_rejected(self, make_session, fake_client, wait_for):
        session = make_session()
        await started(session, fake_client, wait_for)

        session.trigger_save()

        assert session.events["validation"] == [VALIDATION_MESSAGE]
        assert session.intent == NoIntent()
        assert isinstance(session.extraction, ExtractionInProgress)


class TestFailures:
    async def test_extraction_failure_then_retry(self, make_session, fake_client, wait_for, sample_item):
        session = make_session()
        await started(session, fake_client, wait_for)
        session.update_context(selected_collection_ids=["inbox"])
        session.trigger_save()

        fake_client.reject(ExtractionError("Extraction failed: page too short", status_code=422))
        await wait_for(lambda: isinstance(session.extraction, ExtractionFailed))

        assert session.extraction.error == "Extraction failed: page too short"
        assert session.progress.failed is True

        session.retry()
        await wait_for(lambda: len(fake_client.extractions) == 2)
        assert session.progress.failed is False

        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.state, Complete))
        fake_client.add_to_collection.assert_awaited_once_with("inbox", "item-1", None)

    async def test_partial_save_failure_then_retry(self, make_session, fake_client, wait_for, sample_item):
        fake_client.failing_collections.add("broken")
        session = make_session()
        await started(session, fake_client, wait_for)
        fake_client.resolve(sample_item)
        await wait_for(lambda: isinstance(session.extraction, ExtractionComplete))

        session.update_context(notes="n", selected_collection_ids=["inbox", "broken"])
        session.trigger_save()
        await session.wait_until_idle()

        assert session.state == Error(message="Collection broken is unavailable", can_retry=True)
        assert session.events["error"] == ["Collection broken is unavailable"]
        assert fake_client.add_to_collection.await_count == 2

        fake_client.failing_collections.clear()
        session.retry()
        assert isinstance(session.state, Initializing)
        assert session.context.notes == "n"
        assert session.intent == NoIntent()

        # The item extracted before the failed save is reused
        await wait_for(lambda: isinstance(session.extraction, ExtractionComplete))
        assert session.extraction.item == sample_item
        assert session.progress.progress == 100
        assert not session.progress.running
        assert fake_client.create_item.await_count == 1

        session.trigger_save()
        await session.wait_until_idle()

        assert isinstance(session.state, Complete)
        # inbox assigned twice; the API upserts
        assert fake_client.add_to_collection.await_count == 4

    async def test_unexpected_extraction_error_marks_failed(self, make_session, fake_client, wait_for):
        session = make_session()
        await started(session, fake_client, wait_for)

        fake_client.reject(AttributeError("'str' object has no attribute 'get'"))
        await wait_for(lambda: isinstance(session.extraction, ExtractionFailed))

        assert session.extraction.error == NETWORK_ERROR_MESSAGE
        assert session.progress.failed is True
        assert not session.progress.running

        session.retry()
        await wait_for(lambda: len(fake_client.extractions) == 2)

    async def test_save_after_failed_extraction_reports_error(self, make_session, fake_client, wait_for):
        session = make_session()
        await started(session, fake_client, wait_for)
        fake_client.reject(ExtractionError("Network error. Please try again."))
        await wait_for(lambda: isinstance(session.extraction, ExtractionFailed))

        session.update_context(selected_collection_ids=["inbox"])
        session.trigger_save()

        assert session.events["error"] == ["Extraction failed. Please retry."]
        fake_client.add_to_collection.assert_not_awaited()


class TestLifecycle:
    async def test_close_discards_late_result_without_cancelling(
        self, make_session, fake_client, wait_for, sample_item
    ):
        session = make_session()
        await started(session, fake_client, wait_for)
        session.update_context(selected_collection_ids=["inbox"])
        session.trigger_save()

        session.close()
        assert not session.progress.running

        request = fake_client.extractions[0]
        assert not request.cancelled()
        fake_client.resolve(sample_item)
        await asyncio.sleep(0.02)

        assert isinstance(session.extraction, ExtractionInProgress)
        fake_client.add_to_collection.assert_not_awaited()
        assert session.events["success"] == []

    async def test_reset_ignores_abandoned_extraction(
        self, make_session, fake_client, wait_for, sample_item, item_factory
    ):
        session = make_session()
        await started(session, fake_client, wait_for)
        session.update_context(notes="old", selected_collection_ids=["inbox"])
        session.trigger_save()

        session.reset()
        assert session.context.notes == ""
        assert session.intent == NoIntent()
        await wait_for(lambda: len(fake_client.extractions) == 2)

        fake_client.resolve(item_factory(id="stale"), index=0)
        await asyncio.sleep(0.02)
        assert isinstance(session.extraction, ExtractionInProgress)

        fake_client.resolve(sample_item, index=1)
        await wait_for(lambda: isinstance(session.extraction, ExtractionComplete))
        assert session.extraction.item.id == "item-1"
        fake_client.add_to_collection.assert_not_awaited()

    async def test_missing_url_falls_back_to_manual_entry(
        self, make_session, fake_client, wait_for, sample_item
    ):
        session = make_session(url=None)
        assert session.state == Error(message=NO_URL_MESSAGE, can_retry=False)

        session.start()
        assert session.state == Error(message=NO_URL_MESSAGE, can_retry=False)
        session.retry()
        assert isinstance(session.state, Error)

        session.start(URL)
        await wait_for(lambda: len(fake_client.extractions) == 1)
        fake_client.create_item.assert_awaited_once_with(URL)
