"""State types for a capture session.

Every type here is an immutable dataclass. Transitions build new instances,
so a session only ever exposes a complete, consistent snapshot.
"""

from dataclasses import dataclass, field, replace
from typing import ClassVar, Iterable, Optional, Union

from ..items import Item

NO_URL_MESSAGE = "No URL provided"


@dataclass(frozen=True)
class CaptureContext:
    """Notes and collection choices entered by the user."""

    notes: str = ""
    selected_collection_ids: frozenset[str] = field(default_factory=frozenset)
    is_dirty: bool = False

    @property
    def is_save_eligible(self) -> bool:
        return bool(self.notes.strip()) or bool(self.selected_collection_ids)

    def updated(
        self,
        notes: Optional[str] = None,
        selected_collection_ids: Optional[Iterable[str]] = None,
    ) -> "CaptureContext":
        """Return a dirty copy with the given fields replaced."""
        changes: dict = {"is_dirty": True}
        if notes is not None:
            changes["notes"] = notes
        if selected_collection_ids is not None:
            changes["selected_collection_ids"] = frozenset(selected_collection_ids)
        return replace(self, **changes)


# Extraction sub-state


@dataclass(frozen=True)
class ExtractionPending:
    status: ClassVar[str] = "pending"


@dataclass(frozen=True)
class ExtractionInProgress:
    status: ClassVar[str] = "in_progress"

    progress: float = 0.0


@dataclass(frozen=True)
class ExtractionComplete:
    status: ClassVar[str] = "complete"

    item: Item
    needs_review: bool


@dataclass(frozen=True)
class ExtractionFailed:
    status: ClassVar[str] = "failed"

    error: str


ExtractionState = Union[
    ExtractionPending, ExtractionInProgress, ExtractionComplete, ExtractionFailed
]


# Capture state


@dataclass(frozen=True)
class Initializing:
    stage: ClassVar[str] = "initializing"

    url: str


@dataclass(frozen=True)
class Capturing:
    stage: ClassVar[str] = "capturing"

    url: str
    extraction: ExtractionState = field(default_factory=ExtractionPending)


@dataclass(frozen=True)
class Saving:
    stage: ClassVar[str] = "saving"

    url: str
    item: Item
    context: CaptureContext


@dataclass(frozen=True)
class Complete:
    stage: ClassVar[str] = "complete"

    item: Item
    collection_ids: frozenset[str]


@dataclass(frozen=True)
class Error:
    stage: ClassVar[str] = "error"

    message: str
    can_retry: bool


CaptureState = Union[Initializing, Capturing, Saving, Complete, Error]


# Save intent


@dataclass(frozen=True)
class NoIntent:
    kind: ClassVar[str] = "none"


@dataclass(frozen=True)
class PendingIntent:
    """User asked to save before extraction finished."""

    kind: ClassVar[str] = "pending"

    context: CaptureContext


@dataclass(frozen=True)
class ReadyIntent:
    """Extraction finished before the user asked to save."""

    kind: ClassVar[str] = "ready"

    context: CaptureContext


SaveIntent = Union[NoIntent, PendingIntent, ReadyIntent]


@dataclass(frozen=True)
class CaptureSnapshot:
    """Everything a session knows at one instant.

    ``generation`` increases whenever a new extraction run begins (start,
    reset, retry). Asynchronous results carry the generation they were
    issued under and are dropped when it no longer matches.
    """

    state: Optional[CaptureState] = None
    context: CaptureContext = field(default_factory=CaptureContext)
    intent: SaveIntent = field(default_factory=NoIntent)
    url: Optional[str] = None
    generation: int = 0
