"""Item schema shared by the API and the capture flow."""

from .schema import (
    CONFIDENCE_THRESHOLD,
    ExtractedItem,
    Item,
    ProductExtraction,
    needs_review,
)

__all__ = [
    "CONFIDENCE_THRESHOLD",
    "ExtractedItem",
    "Item",
    "ProductExtraction",
    "needs_review",
]
