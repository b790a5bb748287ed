"""Pydantic models for catalogued items."""

from typing import Any, Optional

from pydantic import BaseModel, Field

# Items scored below this are flagged for review by both the API and the
# capture flow.
CONFIDENCE_THRESHOLD = 0.7


def needs_review(confidence_score: Optional[float]) -> bool:
    """Whether an extraction with this score should be reviewed by the user.

    A missing score is treated as fully confident.
    """
    score = 1.0 if confidence_score is None else confidence_score
    return score < CONFIDENCE_THRESHOLD


class ProductExtraction(BaseModel):
    """Structured product data returned by the LLM."""

    title: str = Field(description="The product name or title")
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    retailer: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    confidence_score: float = Field(ge=0, le=1)


class ExtractedItem(ProductExtraction):
    """Extraction plus provenance, ready to be persisted."""

    source_url: str
    raw_markdown: str = ""
    extraction_model: Optional[str] = None
    item_type: str = "product"


class Item(BaseModel):
    """A persisted item as served by the API."""

    id: str
    source_url: str
    title: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    retailer: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[list[str]] = None
    item_type: str = "product"
    attributes: dict[str, Any] = Field(default_factory=dict)
    confidence_score: Optional[float] = None
    raw_markdown: Optional[str] = None
    extraction_model: Optional[str] = None
    current_snapshot_id: Optional[str] = None
    last_extracted_at: Optional[float] = None
    created_at: Optional[float] = None

    @property
    def needs_review(self) -> bool:
        return needs_review(self.confidence_score)
