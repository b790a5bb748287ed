"""Capture state machine as a pure reducer.

``transition(snapshot, event)`` returns the next snapshot and the side
effects the caller must run. The reducer never performs I/O and never
raises; events that do not apply to the current state are ignored.

After every event the reducer settles the auto-save rule: when extraction
is complete and a save is pending, the session moves to ``saving`` in the
same transition that committed the completed extraction.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Union

from ..items import Item, needs_review
from .intent import arm_on_completion, request_before_completion
from .models import (
    NO_URL_MESSAGE,
    CaptureContext,
    CaptureSnapshot,
    Capturing,
    Complete,
    Error,
    ExtractionComplete,
    ExtractionFailed,
    ExtractionInProgress,
    ExtractionPending,
    Initializing,
    NoIntent,
    PendingIntent,
    Saving,
)

logger = logging.getLogger(__name__)

# Delay between entering ``capturing{pending}`` and issuing the request.
EXTRACTION_START_DELAY = 0.1

VALIDATION_MESSAGE = "Please add context or select a collection"
EXTRACTION_FAILED_MESSAGE = "Extraction failed. Please retry."


# Events


@dataclass(frozen=True)
class Start:
    url: str


@dataclass(frozen=True)
class Tick:
    generation: int


@dataclass(frozen=True)
class ExtractionProgressed:
    generation: int
    progress: float


@dataclass(frozen=True)
class ExtractionResolved:
    generation: int
    item: Item


@dataclass(frozen=True)
class ExtractionRejected:
    generation: int
    error: str


@dataclass(frozen=True)
class ContextUpdated:
    notes: Optional[str] = None
    selected_collection_ids: Optional[frozenset[str]] = None


@dataclass(frozen=True)
class SaveRequested:
    pass


@dataclass(frozen=True)
class SaveResolved:
    generation: int


@dataclass(frozen=True)
class SaveRejected:
    generation: int
    message: str


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class ResetRequested:
    pass


Event = Union[
    Start,
    Tick,
    ExtractionProgressed,
    ExtractionResolved,
    ExtractionRejected,
    ContextUpdated,
    SaveRequested,
    SaveResolved,
    SaveRejected,
    RetryRequested,
    ResetRequested,
]


# Effects


@dataclass(frozen=True)
class ScheduleTick:
    generation: int
    delay: float


@dataclass(frozen=True)
class BeginExtraction:
    generation: int
    url: str


@dataclass(frozen=True)
class ExecuteSave:
    generation: int
    item: Item
    context: CaptureContext


@dataclass(frozen=True)
class NotifyValidationError:
    message: str


@dataclass(frozen=True)
class NotifyError:
    message: str


@dataclass(frozen=True)
class NotifySuccess:
    item: Item
    collection_ids: frozenset[str]


Effect = Union[
    ScheduleTick, BeginExtraction, ExecuteSave, NotifyValidationError, NotifyError, NotifySuccess
]

Result = tuple[CaptureSnapshot, list[Effect]]


def initial_snapshot(url: Optional[str] = None) -> CaptureSnapshot:
    """Snapshot for a session that has not started.

    Without a URL the session is parked in a non-retryable error so the
    caller can fall back to manual entry.
    """
    if url:
        return CaptureSnapshot(url=url)
    return CaptureSnapshot(state=Error(message=NO_URL_MESSAGE, can_retry=False))


def transition(snapshot: CaptureSnapshot, event: Event) -> Result:
    """Apply one event and return ``(next_snapshot, effects)``."""
    if isinstance(event, Start):
        result = _start(snapshot, event)
    elif isinstance(event, Tick):
        result = _tick(snapshot, event)
    elif isinstance(event, ExtractionProgressed):
        result = _progressed(snapshot, event)
    elif isinstance(event, ExtractionResolved):
        result = _extraction_resolved(snapshot, event)
    elif isinstance(event, ExtractionRejected):
        result = _extraction_rejected(snapshot, event)
    elif isinstance(event, ContextUpdated):
        result = _context_updated(snapshot, event)
    elif isinstance(event, SaveRequested):
        result = _save_requested(snapshot)
    elif isinstance(event, SaveResolved):
        result = _save_resolved(snapshot, event)
    elif isinstance(event, SaveRejected):
        result = _save_rejected(snapshot, event)
    elif isinstance(event, RetryRequested):
        result = _retry(snapshot)
    elif isinstance(event, ResetRequested):
        result = _reset(snapshot)
    else:
        raise TypeError(f"Unknown capture event: {event!r}")

    return _settle(*result)


def run(snapshot: CaptureSnapshot, events: Iterable[Event]) -> Result:
    """Fold a sequence of events, collecting every effect in order."""
    effects: list[Effect] = []
    for event in events:
        snapshot, emitted = transition(snapshot, event)
        effects.extend(emitted)
    return snapshot, effects


def _ignored(snapshot: CaptureSnapshot, event: object) -> Result:
    stage = snapshot.state.stage if snapshot.state else "none"
    logger.debug(f"[CAPTURE] Ignored {type(event).__name__} in stage '{stage}'")
    return snapshot, []


def _is_stale(snapshot: CaptureSnapshot, generation: int) -> bool:
    return generation != snapshot.generation


def _begin(snapshot: CaptureSnapshot, url: str) -> Result:
    generation = snapshot.generation + 1
    logger.debug(f"[CAPTURE] Initializing capture of {url} (generation {generation})")
    return (
        replace(snapshot, state=Initializing(url=url), url=url, generation=generation),
        [ScheduleTick(generation=generation, delay=0.0)],
    )


def _start(snapshot: CaptureSnapshot, event: Start) -> Result:
    if isinstance(snapshot.state, Saving):
        return _ignored(snapshot, event)
    fresh = replace(snapshot, context=CaptureContext(), intent=NoIntent())
    return _begin(fresh, event.url)


def _tick(snapshot: CaptureSnapshot, event: Tick) -> Result:
    if _is_stale(snapshot, event.generation):
        return _ignored(snapshot, event)

    state = snapshot.state
    if isinstance(state, Initializing):
        return (
            replace(snapshot, state=Capturing(url=state.url, extraction=ExtractionPending())),
            [ScheduleTick(generation=snapshot.generation, delay=EXTRACTION_START_DELAY)],
        )
    if isinstance(state, Capturing) and isinstance(state.extraction, ExtractionPending):
        logger.debug(f"[CAPTURE] Extraction started for {state.url}")
        return (
            replace(snapshot, state=replace(state, extraction=ExtractionInProgress(progress=0.0))),
            [BeginExtraction(generation=snapshot.generation, url=state.url)],
        )
    return _ignored(snapshot, event)


def _progressed(snapshot: CaptureSnapshot, event: ExtractionProgressed) -> Result:
    state = snapshot.state
    if (
        _is_stale(snapshot, event.generation)
        or not isinstance(state, Capturing)
        or not isinstance(state.extraction, ExtractionInProgress)
    ):
        return snapshot, []

    progress = max(0.0, min(100.0, event.progress))
    return replace(snapshot, state=replace(state, extraction=ExtractionInProgress(progress))), []


def _extraction_resolved(snapshot: CaptureSnapshot, event: ExtractionResolved) -> Result:
    state = snapshot.state
    if (
        _is_stale(snapshot, event.generation)
        or not isinstance(state, Capturing)
        or not isinstance(state.extraction, (ExtractionPending, ExtractionInProgress))
    ):
        return _ignored(snapshot, event)

    flagged = needs_review(event.item.confidence_score)
    logger.info(
        f"[CAPTURE] Extraction complete: '{event.item.title}' "
        f"(confidence: {event.item.confidence_score}, needs review: {flagged})"
    )
    extraction = ExtractionComplete(item=event.item, needs_review=flagged)
    return (
        replace(
            snapshot,
            state=replace(state, extraction=extraction),
            intent=arm_on_completion(snapshot.intent, snapshot.context),
        ),
        [],
    )


def _extraction_rejected(snapshot: CaptureSnapshot, event: ExtractionRejected) -> Result:
    state = snapshot.state
    if (
        _is_stale(snapshot, event.generation)
        or not isinstance(state, Capturing)
        or not isinstance(state.extraction, (ExtractionPending, ExtractionInProgress))
    ):
        return _ignored(snapshot, event)

    logger.warning(f"[CAPTURE] Extraction failed for {state.url}: {event.error}")
    return replace(snapshot, state=replace(state, extraction=ExtractionFailed(error=event.error))), []


def _context_updated(snapshot: CaptureSnapshot, event: ContextUpdated) -> Result:
    context = snapshot.context.updated(
        notes=event.notes,
        selected_collection_ids=event.selected_collection_ids,
    )
    return replace(snapshot, context=context), []


def _save_requested(snapshot: CaptureSnapshot) -> Result:
    state = snapshot.state
    if not isinstance(state, (Initializing, Capturing)):
        return _ignored(snapshot, SaveRequested())

    context = snapshot.context
    if not context.is_save_eligible:
        logger.info("[CAPTURE] Save rejected: no notes or collections")
        return snapshot, [NotifyValidationError(VALIDATION_MESSAGE)]

    # Extraction has not been issued yet
    extraction = state.extraction if isinstance(state, Capturing) else ExtractionPending()
    if isinstance(extraction, ExtractionComplete):
        return _enter_saving(snapshot, state, extraction.item, context)

    if isinstance(extraction, (ExtractionPending, ExtractionInProgress)):
        intent = request_before_completion(snapshot.intent, context)
        if intent is snapshot.intent:
            logger.debug("[CAPTURE] Save already requested, ignoring repeat")
        else:
            logger.info("[CAPTURE] Save requested before extraction finished, waiting")
        return replace(snapshot, intent=intent), []

    return snapshot, [NotifyError(EXTRACTION_FAILED_MESSAGE)]


def _enter_saving(
    snapshot: CaptureSnapshot, state: Capturing, item: Item, context: CaptureContext
) -> Result:
    ids = ", ".join(sorted(context.selected_collection_ids)) or "none"
    logger.info(f"[CAPTURE] Saving item {item.id} (collections: {ids})")
    return (
        replace(snapshot, state=Saving(url=state.url, item=item, context=context)),
        [ExecuteSave(generation=snapshot.generation, item=item, context=context)],
    )


def _save_resolved(snapshot: CaptureSnapshot, event: SaveResolved) -> Result:
    state = snapshot.state
    if _is_stale(snapshot, event.generation) or not isinstance(state, Saving):
        return _ignored(snapshot, event)

    collection_ids = state.context.selected_collection_ids
    logger.info(f"[CAPTURE] Capture complete for item {state.item.id}")
    return (
        replace(snapshot, state=Complete(item=state.item, collection_ids=collection_ids)),
        [NotifySuccess(item=state.item, collection_ids=collection_ids)],
    )


def _save_rejected(snapshot: CaptureSnapshot, event: SaveRejected) -> Result:
    if _is_stale(snapshot, event.generation) or not isinstance(snapshot.state, Saving):
        return _ignored(snapshot, event)

    logger.error(f"[CAPTURE] Save failed: {event.message}")
    return (
        replace(snapshot, state=Error(message=event.message, can_retry=True)),
        [NotifyError(event.message)],
    )


def _retry(snapshot: CaptureSnapshot) -> Result:
    state = snapshot.state

    if isinstance(state, Capturing) and isinstance(state.extraction, ExtractionFailed):
        generation = snapshot.generation + 1
        logger.info(f"[CAPTURE] Retrying extraction for {state.url}")
        return (
            replace(
                snapshot,
                state=Capturing(url=state.url, extraction=ExtractionPending()),
                generation=generation,
            ),
            [ScheduleTick(generation=generation, delay=EXTRACTION_START_DELAY)],
        )

    if isinstance(state, Error) and state.can_retry and snapshot.url:
        # The extracted item is re-derived by resubmitting the URL. The
        # user's context survives; the intent does not.
        logger.info(f"[CAPTURE] Restarting capture for {snapshot.url}")
        return _begin(replace(snapshot, intent=NoIntent()), snapshot.url)

    return _ignored(snapshot, RetryRequested())


def _reset(snapshot: CaptureSnapshot) -> Result:
    if isinstance(snapshot.state, Saving):
        logger.warning("[CAPTURE] Reset refused while saving")
        return snapshot, []

    cleared = replace(snapshot, context=CaptureContext(), intent=NoIntent())
    if not snapshot.url:
        return (
            replace(
                cleared,
                state=Error(message=NO_URL_MESSAGE, can_retry=False),
                generation=snapshot.generation + 1,
            ),
            [],
        )
    return _begin(cleared, snapshot.url)


def _settle(snapshot: CaptureSnapshot, effects: list[Effect]) -> Result:
    state = snapshot.state
    intent = snapshot.intent
    if (
        isinstance(state, Capturing)
        and isinstance(state.extraction, ExtractionComplete)
        and isinstance(intent, PendingIntent)
    ):
        logger.info("[CAPTURE] Extraction finished with a pending save, saving now")
        saved, emitted = _enter_saving(snapshot, state, state.extraction.item, intent.context)
        return saved, effects + emitted
    return snapshot, effects
