"""Save-intent tracking.

The intent records whether the user asked to save relative to extraction
completion. It only moves forward (none -> pending or none -> ready) until
the session is reset.
"""

from .models import CaptureContext, NoIntent, PendingIntent, ReadyIntent, SaveIntent


def arm_on_completion(intent: SaveIntent, context: CaptureContext) -> SaveIntent:
    """Extraction just completed: arm ``ready`` with the current context if idle."""
    if isinstance(intent, NoIntent):
        return ReadyIntent(context=context)
    return intent


def request_before_completion(intent: SaveIntent, context: CaptureContext) -> SaveIntent:
    """User clicked save while extraction is still running.

    Only the first request is recorded; repeated clicks keep the original
    snapshot so a single save is executed later.
    """
    if isinstance(intent, NoIntent):
        return PendingIntent(context=context)
    return intent
