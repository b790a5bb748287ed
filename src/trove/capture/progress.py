"""Synthetic extraction progress.

The extraction endpoint reports nothing until it finishes, so progress is
estimated from elapsed time:

- 0 -> 80% over the first 5 seconds
- 80 -> 82% over the next 5 seconds, flagged as stalled
- frozen at 82% after 10 seconds

and jumps to 100% the moment the real result arrives.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

RAMP_MS = 5000
FREEZE_MS = 10000
RAMP_CEILING = 80.0
STALL_CEILING = 82.0
COMPLETE = 100.0

ProgressCallback = Callable[[float, bool], None]


def progress_at(elapsed_ms: float) -> tuple[float, bool]:
    """Return ``(progress, stalled)`` after ``elapsed_ms`` without a result."""
    if elapsed_ms < RAMP_MS:
        return RAMP_CEILING * max(elapsed_ms, 0) / RAMP_MS, False
    if elapsed_ms < FREEZE_MS:
        stall_elapsed = elapsed_ms - RAMP_MS
        increment = (STALL_CEILING - RAMP_CEILING) * stall_elapsed / (FREEZE_MS - RAMP_MS)
        return RAMP_CEILING + increment, True
    return STALL_CEILING, True


class ProgressSimulator:
    """Drives ``progress_at`` from a monotonic clock on a fixed interval."""

    def __init__(
        self,
        interval: float = 0.1,
        on_update: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self.on_update = on_update
        self.clock = clock
        self.progress = 0.0
        self.stalled = False
        self.failed = False
        self._started_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_complete(self) -> bool:
        return self.progress >= COMPLETE

    def start(self, already_complete: bool = False) -> None:
        """Begin a fresh run.

        With ``already_complete`` (a cached or duplicate result), progress is
        set to 100 without animating.
        """
        self.stop()
        self.progress = 0.0
        self.stalled = False
        self.failed = False
        self._started_at = self.clock()

        if already_complete:
            self._finish()
            return

        self._task = asyncio.create_task(self._run(), name="capture-progress")

    def sample(self) -> float:
        """Recompute progress from elapsed time. Never moves backwards."""
        if self._started_at is None or self.failed or self.is_complete:
            return self.progress

        elapsed_ms = (self.clock() - self._started_at) * 1000
        progress, stalled = progress_at(elapsed_ms)
        if stalled and not self.stalled:
            logger.debug(f"[EXTRACT] Extraction stalled after {elapsed_ms:.0f}ms")
        self.progress = max(self.progress, progress)
        self.stalled = stalled
        self._notify()
        return self.progress

    def complete(self) -> None:
        """The real result arrived."""
        self.stop()
        self._finish()

    def fail(self) -> None:
        """The extraction errored: freeze where we are."""
        self.stop()
        self.failed = True
        self.stalled = False
        self._notify()

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.sample()

    def _finish(self) -> None:
        self.progress = COMPLETE
        self.stalled = False
        self._notify()

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.progress, self.stalled)
