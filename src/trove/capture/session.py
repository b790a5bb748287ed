"""Capture session: runs the state machine against the real world.

A ``CaptureSession`` owns one snapshot, feeds it events from user actions
and from finished network calls, and executes the effects the reducer asks
for. All mutation happens on the event loop thread, one event at a time.

Closing the session flips its liveness flag. Timers and the progress
simulation are cancelled; network calls already in flight are left to
finish, and their results are discarded.
"""

import asyncio
import logging
import time
from typing import Callable, Coroutine, Iterable, Optional

from ..client import NETWORK_ERROR_MESSAGE, TroveClient
from ..config import Settings
from ..errors import ExtractionError, SaveExecutionError
from ..items import Item
from . import machine
from .executor import CollectionAssigner
from .models import (
    CaptureContext,
    CaptureSnapshot,
    CaptureState,
    Capturing,
    Error,
    ExtractionState,
    SaveIntent,
)
from .progress import ProgressSimulator

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Item, frozenset[str]], None]
MessageCallback = Callable[[str], None]
ChangeCallback = Callable[[CaptureSnapshot], None]


class CaptureSession:
    """Handle for one URL-to-saved-item flow."""

    def __init__(
        self,
        client: TroveClient,
        settings: Optional[Settings] = None,
        *,
        url: Optional[str] = None,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[MessageCallback] = None,
        on_validation_error: Optional[MessageCallback] = None,
        on_change: Optional[ChangeCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.assigner = CollectionAssigner(client)
        self.on_success = on_success
        self.on_error = on_error
        self.on_validation_error = on_validation_error
        self.on_change = on_change

        interval = settings.progress_interval if settings else 0.1
        self.progress = ProgressSimulator(interval=interval, clock=clock)

        self.snapshot = machine.initial_snapshot(url)
        self._alive = True
        self._network_tasks: set[asyncio.Task] = set()
        self._timer_tasks: set[asyncio.Task] = set()
        # Item kept from a save that failed, reused when that save is retried
        self._reusable_item: Optional[Item] = None

    # State accessors

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def state(self) -> Optional[CaptureState]:
        return self.snapshot.state

    @property
    def context(self) -> CaptureContext:
        return self.snapshot.context

    @property
    def intent(self) -> SaveIntent:
        return self.snapshot.intent

    @property
    def extraction(self) -> Optional[ExtractionState]:
        state = self.snapshot.state
        return state.extraction if isinstance(state, Capturing) else None

    # User actions

    def start(self, url: Optional[str] = None) -> None:
        """Start capturing ``url`` (or the URL the session was created with)."""
        url = url or self.snapshot.url
        if not url:
            self.dispatch(machine.ResetRequested())
            return
        self.progress.stop()
        self._reusable_item = None
        self.dispatch(machine.Start(url=url))

    def update_context(
        self,
        notes: Optional[str] = None,
        selected_collection_ids: Optional[Iterable[str]] = None,
    ) -> None:
        ids = frozenset(selected_collection_ids) if selected_collection_ids is not None else None
        self.dispatch(machine.ContextUpdated(notes=notes, selected_collection_ids=ids))

    def trigger_save(self) -> None:
        self.dispatch(machine.SaveRequested())

    def retry(self) -> None:
        state = self.snapshot.state
        if not (isinstance(state, Error) and state.can_retry):
            self._reusable_item = None
        self.dispatch(machine.RetryRequested())

    def reset(self) -> None:
        """Discard context, intent and extraction ("Add Another")."""
        generation = self.snapshot.generation
        self.dispatch(machine.ResetRequested())
        if self.snapshot.generation != generation:
            self._reusable_item = None
            self.progress.stop()

    def close(self) -> None:
        """Tear the session down. Further results are ignored."""
        if not self._alive:
            return
        self._alive = False
        self.progress.stop()
        for task in list(self._timer_tasks):
            task.cancel()
        logger.debug(
            f"[CAPTURE] Session closed with {len(self._network_tasks)} request(s) still in flight"
        )

    async def wait_until_idle(self) -> None:
        """Wait until no timer or network call is outstanding."""
        while self._alive and (self._network_tasks or self._timer_tasks):
            pending = list(self._network_tasks | self._timer_tasks)
            await asyncio.gather(*pending, return_exceptions=True)

    # Event loop plumbing

    def dispatch(self, event: machine.Event) -> None:
        """Apply one event and run the resulting effects."""
        if not self._alive:
            logger.debug(f"[CAPTURE] Dropped {type(event).__name__} after teardown")
            return

        self.snapshot, effects = machine.transition(self.snapshot, event)
        if self.on_change is not None:
            self.on_change(self.snapshot)
        for effect in effects:
            self._run_effect(effect)

    def _run_effect(self, effect: machine.Effect) -> None:
        if isinstance(effect, machine.ScheduleTick):
            self._spawn(self._tick_after(effect.generation, effect.delay), self._timer_tasks)
        elif isinstance(effect, machine.BeginExtraction):
            self._begin_extraction(effect)
        elif isinstance(effect, machine.ExecuteSave):
            self._spawn(self._save(effect), self._network_tasks)
        elif isinstance(effect, machine.NotifyValidationError):
            if self.on_validation_error is not None:
                self.on_validation_error(effect.message)
        elif isinstance(effect, machine.NotifyError):
            if self.on_error is not None:
                self.on_error(effect.message)
        elif isinstance(effect, machine.NotifySuccess):
            if self.on_success is not None:
                self.on_success(effect.item, effect.collection_ids)
        else:
            raise TypeError(f"Unknown capture effect: {effect!r}")

    def _spawn(self, coro: Coroutine, bucket: set[asyncio.Task]) -> None:
        task = asyncio.create_task(coro)
        bucket.add(task)
        task.add_done_callback(bucket.discard)

    async def _tick_after(self, generation: int, delay: float) -> None:
        await asyncio.sleep(delay)
        self.dispatch(machine.Tick(generation=generation))

    def _begin_extraction(self, effect: machine.BeginExtraction) -> None:
        generation = effect.generation

        def on_progress(progress: float, stalled: bool) -> None:
            self.dispatch(machine.ExtractionProgressed(generation=generation, progress=progress))

        self.progress.on_update = on_progress
        item, self._reusable_item = self._reusable_item, None
        if item is not None and item.source_url == effect.url:
            logger.info(f"[CAPTURE] Reusing extracted item {item.id} for retry")
            self.progress.start(already_complete=True)
            self._spawn(self._reuse(generation, item), self._network_tasks)
            return

        self.progress.start()
        self._spawn(self._extract(generation, effect.url), self._network_tasks)

    async def _reuse(self, generation: int, item: Item) -> None:
        await asyncio.sleep(0)
        self.dispatch(machine.ExtractionResolved(generation=generation, item=item))

    async def _extract(self, generation: int, url: str) -> None:
        try:
            result = await self.client.create_item(url)
        except ExtractionError as e:
            if self._is_current(generation):
                self.progress.fail()
            self.dispatch(machine.ExtractionRejected(generation=generation, error=str(e)))
            return
        except Exception:
            logger.exception(f"[EXTRACT] Unexpected error extracting {url}")
            if self._is_current(generation):
                self.progress.fail()
            self.dispatch(machine.ExtractionRejected(generation=generation, error=NETWORK_ERROR_MESSAGE))
            return

        if self._is_current(generation):
            self.progress.complete()
        self.dispatch(machine.ExtractionResolved(generation=generation, item=result.item))

    async def _save(self, effect: machine.ExecuteSave) -> None:
        try:
            await self.assigner.assign(effect.item, effect.context)
        except SaveExecutionError as e:
            if self._is_current(effect.generation):
                self._reusable_item = effect.item
            self.dispatch(machine.SaveRejected(generation=effect.generation, message=str(e)))
            return
        self.dispatch(machine.SaveResolved(generation=effect.generation))

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self.snapshot.generation
