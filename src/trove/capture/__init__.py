"""Capture flow: state machine, save intent, progress and collection assignment."""

from .executor import CollectionAssigner
from .machine import initial_snapshot, transition
from .models import (
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
    ReadyIntent,
    Saving,
)
from .progress import ProgressSimulator, progress_at
from .session import CaptureSession

__all__ = [
    "CaptureContext",
    "CaptureSession",
    "CaptureSnapshot",
    "Capturing",
    "CollectionAssigner",
    "Complete",
    "Error",
    "ExtractionComplete",
    "ExtractionFailed",
    "ExtractionInProgress",
    "ExtractionPending",
    "Initializing",
    "NoIntent",
    "PendingIntent",
    "ProgressSimulator",
    "ReadyIntent",
    "Saving",
    "initial_snapshot",
    "progress_at",
    "transition",
]
