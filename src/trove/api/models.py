"""Pydantic request schemas for the Trove API."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CollectionAssignmentIn(BaseModel):
    """Collection to add a new item to."""

    id: str
    position: Optional[int] = None
    notes: Optional[str] = None


class CreateItemIn(BaseModel):
    """Body of ``POST /items``."""

    url: str = ""
    collections: list[CollectionAssignmentIn] = Field(default_factory=list)

    @field_validator("url")
    @classmethod
    def url_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) > 2048:
            raise ValueError("URL exceeds 2048 character limit")
        return v


class AddCollectionItemIn(BaseModel):
    """Body of ``POST /collections/{id}/items``."""

    item_id: str
    position: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=10_000)


class CreateCollectionIn(BaseModel):
    """Body of ``POST /collections``."""

    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v
